import logging
import threading
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.constants import (
    AttemptEventTypeEnum,
    AttemptStatusEnum,
    AuditActionEnum,
    LIVE_ATTEMPT_STATUSES,
)
from app.core.decorators import closes_transaction, retry_on_stale
from app.core.exceptions import ConflictException, NotFoundException, ValidationFailedException
from app.crud.attempt import attempt as crud_attempt
from app.crud.attempt_override import attempt_override as crud_attempt_override
from app.crud.base import PaginatedResponse
from app.crud.exam import exam as crud_exam
from app.crud.user import user as crud_user
from app.models.attempt import Attempt
from app.models.attempt_override import AttemptOverride
from app.schemas.attempt import Attempt as AttemptSchema, AttemptTimer
from app.schemas.attempt_control import (
    AddTimeResult,
    AllowNewAttemptRequest,
    AttemptMonitorRow,
    AttemptOverride as AttemptOverrideSchema,
    ExpirySweepResult,
)
from app.schemas.user import UserContext
from app.services.attempt import attempt_service
from app.services.audit import audit_service
from app.utils.permission import PermissionHelper as permission_helper
from app.utils.time import utcnow
from app.utils.timer import bank_running_time

logger = logging.getLogger(__name__)

_sweep_lock = threading.Lock()


class AttemptControlService:
    """Operator controls over live attempts and the periodic expiry sweep."""

    def _monitor_row(self, attempt: Attempt, now: datetime) -> AttemptMonitorRow:
        row = AttemptMonitorRow.model_validate(attempt)
        row.candidate_name = attempt.candidate.full_name if attempt.candidate else None
        row.exam_title = attempt.exam.title if attempt.exam else None
        row.remaining_seconds = attempt_service.remaining(attempt, now)
        row.can_force_end = attempt.status in LIVE_ATTEMPT_STATUSES
        row.can_resume = attempt.status == AttemptStatusEnum.PAUSED
        row.can_add_time = attempt.status in LIVE_ATTEMPT_STATUSES
        return row

    @closes_transaction
    def list_attempts(
        self,
        db: Session,
        current_user_context: UserContext,
        *,
        status: Optional[AttemptStatusEnum] = None,
        exam_id: Optional[int] = None,
        candidate_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
        now: Optional[datetime] = None,
    ) -> PaginatedResponse[AttemptMonitorRow]:
        if not permission_helper.is_monitor(current_user_context):
            permission_helper.require_operator(current_user_context)
        now = now or utcnow()
        statuses = [status] if status else list(LIVE_ATTEMPT_STATUSES)
        items, total = crud_attempt.list_filtered(
            db, statuses=statuses, exam_id=exam_id, candidate_id=candidate_id, skip=skip, limit=limit
        )
        return PaginatedResponse[AttemptMonitorRow].build(
            [self._monitor_row(a, now) for a in items], total, skip, limit
        )

    @closes_transaction
    def pause_attempt(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *,
        reason: Optional[str] = None, now: Optional[datetime] = None,
    ) -> AttemptSchema:
        permission_helper.require_operator(current_user_context)
        return attempt_service.pause_attempt(db, current_user_context, attempt_id, reason=reason, now=now)

    @closes_transaction
    def resume_attempt(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *,
        reason: Optional[str] = None, now: Optional[datetime] = None,
    ) -> AttemptTimer:
        permission_helper.require_operator(current_user_context)
        return attempt_service.resume_attempt(db, current_user_context, attempt_id, reason=reason, now=now)

    @closes_transaction
    @retry_on_stale
    def force_end(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *,
        reason: str, now: Optional[datetime] = None,
    ) -> AttemptSchema:
        permission_helper.require_operator(current_user_context)
        now = now or utcnow()
        attempt = attempt_service.require_attempt(db, attempt_id, for_update=True)
        if not attempt.is_live:
            raise ConflictException(
                f"Cannot force-end an attempt with status '{attempt.status.value}'. Only live attempts can be force-ended."
            )
        previous_status = attempt.status
        bank_running_time(attempt, now)
        attempt.status = AttemptStatusEnum.FORCE_SUBMITTED
        attempt.force_submitted_by = current_user_context.actor_id
        attempt.force_submitted_at = now
        attempt.submitted_at = now
        attempt.updated_by = current_user_context.actor_id
        attempt_service.record_event(
            db, attempt, AttemptEventTypeEnum.FORCE_ENDED, now, {"reason": reason}, current_user_context.actor_id
        )
        audit_service.log(
            db,
            action=AuditActionEnum.ATTEMPT_FORCE_SUBMITTED,
            actor_id=current_user_context.actor_id,
            candidate_id=attempt.candidate_id,
            exam_id=attempt.exam_id,
            attempt_id=attempt.id,
            reason=reason,
            details={"previous_status": previous_status.value, "consumed_seconds": attempt.consumed_seconds},
            occurred_at=now,
        )
        db.commit()
        logger.info(f"Attempt {attempt.id} force-ended by {current_user_context.actor_id}")

        attempt_service.trigger_grading(db, attempt.id)
        return AttemptSchema.model_validate(attempt_service.require_attempt(db, attempt_id))

    @closes_transaction
    def add_time(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *,
        extra_minutes: int, reason: Optional[str] = None, now: Optional[datetime] = None,
    ) -> AddTimeResult:
        permission_helper.require_operator(current_user_context)
        if extra_minutes < 1:
            raise ValidationFailedException.for_field("extra_minutes", "extra_minutes must be greater than 0.")
        if extra_minutes > settings.MAX_EXTRA_MINUTES:
            raise ValidationFailedException.for_field(
                "extra_minutes", f"extra_minutes cannot exceed {settings.MAX_EXTRA_MINUTES}."
            )
        now = now or utcnow()
        attempt = attempt_service.require_attempt(db, attempt_id)
        if not attempt.is_live:
            raise ConflictException(
                f"Cannot add time to an attempt with status '{attempt.status.value}'. Only live attempts can receive extra time."
            )

        extra_seconds = extra_minutes * 60
        if crud_attempt.add_extra_time(db, id=attempt_id, seconds=extra_seconds) == 0:
            db.rollback()
            raise ConflictException("Attempt ended before the extra time could be added.")
        attempt = attempt_service.require_attempt(db, attempt_id)
        db.refresh(attempt)
        attempt_service.record_event(
            db, attempt, AttemptEventTypeEnum.TIME_ADDED, now,
            {"extra_minutes": extra_minutes, "extra_seconds": extra_seconds, "reason": reason},
            current_user_context.actor_id,
        )
        audit_service.log(
            db,
            action=AuditActionEnum.ATTEMPT_TIME_ADDED,
            actor_id=current_user_context.actor_id,
            candidate_id=attempt.candidate_id,
            exam_id=attempt.exam_id,
            attempt_id=attempt.id,
            reason=reason,
            details={"extra_minutes": extra_minutes, "total_extra_seconds": attempt.extra_time_seconds},
            occurred_at=now,
        )
        result = AddTimeResult(
            attempt_id=attempt.id,
            extra_time_seconds=attempt.extra_time_seconds,
            remaining_seconds=attempt_service.remaining(attempt, now),
        )
        db.commit()
        logger.info(f"{extra_minutes} minute(s) added to attempt {attempt_id} by {current_user_context.actor_id}")
        return result

    @closes_transaction
    @retry_on_stale
    def cancel_attempt(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *,
        reason: str, now: Optional[datetime] = None,
    ) -> AttemptSchema:
        permission_helper.require_operator(current_user_context)
        now = now or utcnow()
        attempt = attempt_service.require_attempt(db, attempt_id, for_update=True)
        if not attempt.is_live:
            raise ConflictException(f"Cannot cancel an attempt with status '{attempt.status.value}'.")
        bank_running_time(attempt, now)
        attempt.status = AttemptStatusEnum.CANCELLED
        attempt.updated_by = current_user_context.actor_id
        attempt_service.record_event(
            db, attempt, AttemptEventTypeEnum.CANCELLED, now, {"reason": reason}, current_user_context.actor_id
        )
        audit_service.log(
            db,
            action=AuditActionEnum.ATTEMPT_CANCELLED,
            actor_id=current_user_context.actor_id,
            candidate_id=attempt.candidate_id,
            exam_id=attempt.exam_id,
            attempt_id=attempt.id,
            reason=reason,
            occurred_at=now,
        )
        db.commit()
        logger.info(f"Attempt {attempt.id} cancelled by {current_user_context.actor_id}")
        return AttemptSchema.model_validate(attempt)

    @closes_transaction
    def allow_new_attempt(
        self, db: Session, current_user_context: UserContext, override_in: AllowNewAttemptRequest, *,
        now: Optional[datetime] = None,
    ) -> AttemptOverrideSchema:
        permission_helper.require_operator(current_user_context)
        now = now or utcnow()
        if not override_in.reason or not override_in.reason.strip():
            raise ValidationFailedException.for_field("reason", "A reason is required.")
        if not crud_exam.get(db, id=override_in.exam_id):
            raise NotFoundException("Exam not found.")
        if not crud_user.get(db, id=override_in.candidate_id):
            raise NotFoundException("Candidate not found.")

        live = crud_attempt.get_live(db, candidate_id=override_in.candidate_id, exam_id=override_in.exam_id)
        if live:
            raise ConflictException("Candidate still has a live attempt for this exam.")
        if crud_attempt_override.get_unused(db, candidate_id=override_in.candidate_id, exam_id=override_in.exam_id):
            raise ConflictException("Candidate already has an unused attempt override for this exam.")

        override = AttemptOverride(
            candidate_id=override_in.candidate_id,
            exam_id=override_in.exam_id,
            granted_by=current_user_context.actor_id,
            reason=override_in.reason.strip(),
            granted_at=now,
            is_used=False,
            created_by=current_user_context.actor_id,
        )
        db.add(override)
        db.flush()
        recent, _ = crud_attempt.list_filtered(
            db, exam_id=override_in.exam_id, candidate_id=override_in.candidate_id, limit=1
        )
        audit_service.log(
            db,
            action=AuditActionEnum.ATTEMPT_NEW_ALLOWED,
            actor_id=current_user_context.actor_id,
            candidate_id=override_in.candidate_id,
            exam_id=override_in.exam_id,
            previous_attempt_id=recent[0].id if recent else None,
            entity_name="AttemptOverride",
            entity_id=override.id,
            reason=override.reason,
            occurred_at=now,
        )
        db.commit()
        db.refresh(override)
        logger.info(
            f"New attempt allowed for candidate {override.candidate_id} on exam {override.exam_id} "
            f"by {current_user_context.actor_id}"
        )
        return AttemptOverrideSchema.model_validate(override)

    @closes_transaction
    def expire_overdue(self, db: Session, *, now: Optional[datetime] = None) -> ExpirySweepResult:
        """Expire every live attempt whose clock, exam window or activity has run out.

        Single-flight per process: an overlapping call returns an empty result.
        """
        if not _sweep_lock.acquire(blocking=False):
            logger.warning("Expiry sweep already running; skipping")
            return ExpirySweepResult(expired_count=0)
        try:
            return self._sweep(db, now or utcnow())
        finally:
            _sweep_lock.release()

    def _sweep(self, db: Session, now: datetime) -> ExpirySweepResult:
        expired_ids: List[int] = []
        for candidate in crud_attempt.get_live_attempts(db):
            if attempt_service.overdue_reason(candidate, now) is None:
                continue
            try:
                attempt = crud_attempt.get_for_update(db, id=candidate.id)
                # re-check under the lock; a concurrent submit or add_time may have won
                reason = attempt_service.overdue_reason(attempt, now) if attempt else None
                if reason is None:
                    db.commit()
                    continue
                attempt_service.expire(db, attempt, reason, now)
                db.commit()
                expired_ids.append(attempt.id)
            except StaleDataError:
                db.rollback()
                logger.warning(f"Attempt {candidate.id} changed during expiry sweep; left for the next run")
            except SQLAlchemyError:
                db.rollback()
                logger.exception(f"Failed to expire attempt {candidate.id}")

        for attempt_id in expired_ids:
            attempt_service.trigger_grading(db, attempt_id)

        if expired_ids:
            logger.info(f"Expiry sweep expired {len(expired_ids)} attempt(s): {expired_ids}")
        return ExpirySweepResult(expired_count=len(expired_ids), attempt_ids=expired_ids)


attempt_control_service = AttemptControlService()
