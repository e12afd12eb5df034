import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.constants import AuditActionEnum
from app.core.decorators import closes_transaction
from app.crud.audit_log import audit_log as crud_audit_log
from app.crud.base import PaginatedResponse
from app.models.audit_log import AuditLog
from app.schemas.audit import AuditLog as AuditLogSchema
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


class AuditService:

    def log(
        self,
        db: Session,
        *,
        action: AuditActionEnum,
        actor_id: str,
        candidate_id: Optional[int] = None,
        exam_id: Optional[int] = None,
        attempt_id: Optional[int] = None,
        previous_attempt_id: Optional[int] = None,
        entity_name: Optional[str] = None,
        entity_id: Optional[int] = None,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> AuditLog:
        """Stage an audit row in the caller's transaction; the caller commits."""
        entry = AuditLog(
            action=action,
            actor_id=actor_id,
            candidate_id=candidate_id,
            exam_id=exam_id,
            attempt_id=attempt_id,
            previous_attempt_id=previous_attempt_id,
            entity_name=entity_name,
            entity_id=entity_id,
            reason=reason,
            details=details,
            occurred_at=occurred_at or utcnow(),
        )
        db.add(entry)
        logger.info(f"Audit {action.value} by {actor_id} (attempt={attempt_id}, exam={exam_id}, candidate={candidate_id})")
        return entry

    @closes_transaction
    def list_logs(
        self,
        db: Session,
        *,
        action: Optional[AuditActionEnum] = None,
        attempt_id: Optional[int] = None,
        exam_id: Optional[int] = None,
        candidate_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> PaginatedResponse[AuditLogSchema]:
        items, total = crud_audit_log.list_filtered(
            db,
            action=action,
            attempt_id=attempt_id,
            exam_id=exam_id,
            candidate_id=candidate_id,
            skip=skip,
            limit=limit,
        )
        return PaginatedResponse[AuditLogSchema].build(
            [AuditLogSchema.model_validate(item) for item in items], total, skip, limit
        )


audit_service = AuditService()
