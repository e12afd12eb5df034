import logging
from typing import List

from sqlalchemy.orm import Session

from app.core.decorators import closes_transaction
from app.core.exceptions import ConflictException, NotFoundException
from app.crud.user import user as crud_user
from app.schemas.user import User, UserCreate, UserUpdate, UserContext
from app.utils.permission import PermissionHelper as permission_helper

logger = logging.getLogger(__name__)


class UserService:

    @closes_transaction
    def create_user(self, db: Session, current_user_context: UserContext, user_in: UserCreate) -> User:
        permission_helper.require_operator(current_user_context)
        if crud_user.get_by_email(db, email=user_in.email):
            raise ConflictException("A user with this email already exists.")
        data = user_in.model_dump()
        data["created_by"] = current_user_context.actor_id
        user = crud_user.create(db, obj_in=data)
        logger.info(f"User {user.id} ({user.role.value}) created by {current_user_context.actor_id}")
        return User.model_validate(user)

    @closes_transaction
    def update_user(self, db: Session, current_user_context: UserContext, user_id: int, user_in: UserUpdate) -> User:
        permission_helper.require_operator(current_user_context)
        user = crud_user.get(db, id=user_id)
        if not user:
            raise NotFoundException("User not found.")
        data = user_in.model_dump(exclude_unset=True)
        data["updated_by"] = current_user_context.actor_id
        return User.model_validate(crud_user.update(db, db_obj=user, obj_in=data))

    @closes_transaction
    def list_users(self, db: Session, current_user_context: UserContext, skip: int = 0, limit: int = 100) -> List[User]:
        if not permission_helper.is_monitor(current_user_context):
            permission_helper.require_grader(current_user_context)
        return [User.model_validate(u) for u in crud_user.get_multi(db, skip=skip, limit=limit)]

    def get_me(self, current_user_context: UserContext) -> User:
        return User.model_validate(current_user_context.user)


user_service = UserService()
