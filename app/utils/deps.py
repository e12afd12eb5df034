from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError
from pydantic import ValidationError
from sqlalchemy.orm import Session
from app.core.constants import RoleEnum
from app.core.database import get_db  # noqa: F401  re-exported for routers
from app.core.security import decode_access_token
from app.crud.user import user as user_crud
from app.schemas.token import TokenPayload
from app.schemas.user import UserContext

http_bearer = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user_with_context(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials = Depends(http_bearer)
) -> UserContext:
    """Resolve the bearer token to an active, unblocked user.

    Candidates who get blocked mid-exam lose access on their next call even
    though their token is still valid.
    """
    try:
        token_data = TokenPayload(**decode_access_token(credentials.credentials))
    except ExpiredSignatureError:
        raise _unauthorized("Session expired, please sign in again")
    except (JWTError, ValidationError):
        raise _unauthorized("Could not validate credentials")

    user = user_crud.get(db, id=token_data.user_id)
    if not user:
        raise _unauthorized("User not found")

    if not user.is_active or user.is_blocked:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is blocked or inactive",
        )

    # the stored role wins over a stale token claim
    return UserContext(user=user, role=user.role)


def require_role(*roles: RoleEnum):
    """Dependency that checks the caller holds one of the given roles."""
    allowed = set(roles)

    def _verify_role(context: UserContext = Depends(get_current_user_with_context)) -> UserContext:
        if context.role == RoleEnum.SUPER_DEV or context.role in allowed:
            return context
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action."
        )
    return _verify_role


require_operator = require_role(RoleEnum.ADMIN)
require_grader = require_role(RoleEnum.ADMIN, RoleEnum.INSTRUCTOR)
require_monitor = require_role(RoleEnum.ADMIN, RoleEnum.PROCTOR)
