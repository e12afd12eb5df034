from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.constants import AuditActionEnum
from app.crud.base import PaginatedResponse
from app.schemas.audit import AuditLog
from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.user import UserContext
from app.services.audit import audit_service

router = APIRouter()

@router.get("/", response_model=APIResponse[PaginatedResponse[AuditLog]])
async def list_audit_logs(
    db: Session = Depends(deps.get_db),
    context: UserContext = Depends(deps.require_operator),
    action: Optional[AuditActionEnum] = Query(None),
    attempt_id: Optional[int] = Query(None),
    exam_id: Optional[int] = Query(None),
    candidate_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    page = audit_service.list_logs(
        db, action=action, attempt_id=attempt_id, exam_id=exam_id, candidate_id=candidate_id, skip=skip, limit=limit
    )
    return APIResponse(message="Audit logs retrieved successfully", data=page)
