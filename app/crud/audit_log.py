from sqlalchemy.orm import Session
from typing import List, Optional, Tuple

from app.core.constants import AuditActionEnum
from app.crud.base import CRUDBase
from app.models.audit_log import AuditLog
from app.schemas.audit import AuditLog as AuditLogSchema

class CRUDAuditLog(CRUDBase[AuditLog, AuditLogSchema, AuditLogSchema]):
    def list_filtered(
        self,
        db: Session,
        *,
        action: Optional[AuditActionEnum] = None,
        attempt_id: Optional[int] = None,
        exam_id: Optional[int] = None,
        candidate_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[AuditLog], int]:
        query = self.query(db)
        if action is not None:
            query = query.filter(AuditLog.action == action)
        if attempt_id is not None:
            query = query.filter(AuditLog.attempt_id == attempt_id)
        if exam_id is not None:
            query = query.filter(AuditLog.exam_id == exam_id)
        if candidate_id is not None:
            query = query.filter(AuditLog.candidate_id == candidate_id)
        total = query.count()
        items = query.order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit).all()
        return items, total

audit_log = CRUDAuditLog(AuditLog)
