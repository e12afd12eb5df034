import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.constants import (
    SYSTEM_ACTOR,
    AttemptEventTypeEnum,
    AttemptStatusEnum,
    AuditActionEnum,
    ExpiryReasonEnum,
    QuestionTypeEnum,
    RUNNING_ATTEMPT_STATUSES,
)
from app.core.decorators import closes_transaction, retry_on_stale
from app.core.exceptions import (
    AppException,
    ConflictException,
    NotEligibleException,
    NotFoundException,
    UnauthorizedException,
    ValidationFailedException,
)
from app.crud.attempt import attempt as crud_attempt
from app.crud.attempt_answer import attempt_answer as crud_attempt_answer
from app.crud.attempt_override import attempt_override as crud_attempt_override
from app.crud.exam import exam as crud_exam
from app.crud.exam_assignment import exam_assignment as crud_exam_assignment
from app.crud.question import question as crud_question
from app.models.attempt import Attempt
from app.models.attempt_answer import AttemptAnswer
from app.models.attempt_event import AttemptEvent
from app.models.exam import Exam
from app.models.question import Question
from app.schemas.attempt import (
    AnswerSave,
    Attempt as AttemptSchema,
    AttemptAnswer as AttemptAnswerSchema,
    AttemptDetail,
    AttemptEventCreate,
    AttemptStart,
    AttemptStartResult,
    AttemptTimer,
)
from app.schemas.question import CandidateQuestion
from app.schemas.user import UserContext
from app.services.audit import audit_service
from app.utils.permission import PermissionHelper as permission_helper
from app.utils.time import utcnow
from app.utils.timer import bank_running_time, elapsed_active_seconds, remaining_seconds, start_clock

logger = logging.getLogger(__name__)


class AttemptService:
    """Candidate side of the attempt lifecycle plus the expiry rules shared with attempt control."""

    def _require_exam(self, db: Session, exam_id: int) -> Exam:
        exam = crud_exam.get_with_questions(db, id=exam_id)
        if not exam:
            raise NotFoundException("Exam not found.")
        return exam

    def require_attempt(self, db: Session, attempt_id: int, *, for_update: bool = False) -> Attempt:
        attempt = crud_attempt.get_for_update(db, id=attempt_id) if for_update else crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise NotFoundException("Attempt not found.")
        return attempt

    def _require_exam_open(self, exam: Exam, now: datetime):
        if not exam.is_active:
            raise NotEligibleException("Exam is not active.")
        if not exam.is_published:
            raise NotEligibleException("Exam is not published.")
        if exam.start_at and now < exam.start_at:
            raise NotEligibleException(f"Exam has not started yet. It starts at {exam.start_at:%Y-%m-%d %H:%M} UTC.")
        if exam.end_at and now >= exam.end_at:
            raise NotEligibleException(f"Exam has ended. It ended at {exam.end_at:%Y-%m-%d %H:%M} UTC.")

    def _require_access_code(self, exam: Exam, access_code: Optional[str]):
        if not exam.access_code:
            return
        if not access_code:
            raise NotEligibleException("Access code is required for this exam.")
        if access_code != exam.access_code:
            raise NotEligibleException("Invalid access code.")

    def _require_assignment(self, db: Session, exam: Exam, candidate_id: int, now: datetime):
        assignment = crud_exam_assignment.get_active(db, exam_id=exam.id, candidate_id=candidate_id)
        if not assignment:
            raise NotEligibleException("You are not assigned to this exam.")
        if not assignment.covers(now):
            raise NotEligibleException("Your scheduled window for this exam is not open.")

    def exam_window_closed(self, exam: Exam, now: datetime) -> bool:
        return exam.end_at is not None and now >= exam.end_at

    def remaining(self, attempt: Attempt, now: datetime) -> int:
        exam_end_at = attempt.exam.end_at if attempt.exam is not None else None
        return remaining_seconds(attempt, now, exam_end_at)

    def overdue_reason(self, attempt: Attempt, now: datetime) -> Optional[ExpiryReasonEnum]:
        """Why a live attempt must expire at ``now``, or None while it may continue."""
        if not attempt.is_live:
            return None
        if attempt.exam is not None and self.exam_window_closed(attempt.exam, now):
            return ExpiryReasonEnum.EXAM_WINDOW_CLOSED

        overshoot = elapsed_active_seconds(attempt, now) - attempt.total_allowed_seconds
        last_seen = attempt.last_activity_at or attempt.started_at
        if overshoot >= 0:
            deadline = now - timedelta(seconds=overshoot) if attempt.is_running else now
            if last_seen and (deadline - last_seen).total_seconds() > settings.DISCONNECT_GRACE_SECONDS:
                return ExpiryReasonEnum.TIMER_EXPIRED_WHILE_DISCONNECTED
            return ExpiryReasonEnum.TIMER_EXPIRED_WHILE_ACTIVE

        timeout = settings.ATTEMPT_INACTIVITY_TIMEOUT_SECONDS
        if timeout > 0 and attempt.is_running and last_seen:
            if (now - last_seen).total_seconds() >= timeout:
                return ExpiryReasonEnum.INACTIVITY
        return None

    def record_event(
        self,
        db: Session,
        attempt: Attempt,
        event_type: AttemptEventTypeEnum,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None,
        actor_id: Optional[str] = None,
    ) -> AttemptEvent:
        event = AttemptEvent(
            attempt_id=attempt.id,
            event_type=event_type,
            event_metadata=metadata,
            occurred_at=now,
            created_by=actor_id,
        )
        db.add(event)
        return event

    def expire(self, db: Session, attempt: Attempt, reason: ExpiryReasonEnum, now: datetime):
        """Stage the EXPIRED transition; the caller commits."""
        bank_running_time(attempt, now)
        attempt.status = AttemptStatusEnum.EXPIRED
        attempt.expiry_reason = reason
        attempt.submitted_at = now
        attempt.updated_by = SYSTEM_ACTOR
        self.record_event(db, attempt, AttemptEventTypeEnum.TIMED_OUT, now, {"reason": reason.value}, SYSTEM_ACTOR)
        audit_service.log(
            db,
            action=AuditActionEnum.ATTEMPT_EXPIRED,
            actor_id=SYSTEM_ACTOR,
            candidate_id=attempt.candidate_id,
            exam_id=attempt.exam_id,
            attempt_id=attempt.id,
            reason=reason.value,
            occurred_at=now,
        )
        logger.info(f"Attempt {attempt.id} expired ({reason.value})")

    def expire_now(self, db: Session, attempt: Attempt, reason: ExpiryReasonEnum, now: datetime):
        self.expire(db, attempt, reason, now)
        db.commit()
        self.trigger_grading(db, attempt.id)

    def trigger_grading(self, db: Session, attempt_id: int):
        """Start grading after the terminal transition is committed.

        A failure here leaves the attempt without a session; the pending-grading
        job picks it up later.
        """
        from app.services.grading import grading_service

        try:
            grading_service.initiate_grading(db, attempt_id)
        except AppException as e:
            db.rollback()
            logger.warning(f"Grading not started for attempt {attempt_id}: {e.detail}")
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Grading initiation failed for attempt {attempt_id}")

    def _require_running(self, db: Session, attempt: Attempt, now: datetime):
        if not attempt.is_live:
            raise ConflictException(f"Attempt is already {attempt.status.value}.")
        reason = self.overdue_reason(attempt, now)
        if reason:
            self.expire_now(db, attempt, reason, now)
            raise ConflictException("Attempt time has expired.")
        if attempt.status not in RUNNING_ATTEMPT_STATUSES:
            raise ConflictException("Attempt is paused.")

    def _start_result(self, attempt: Attempt, exam: Exam, now: datetime, resumed: bool) -> AttemptStartResult:
        return AttemptStartResult(
            attempt=AttemptSchema.model_validate(attempt),
            remaining_seconds=self.remaining(attempt, now),
            resumed=resumed,
            questions=[CandidateQuestion.model_validate(q) for q in exam.questions if q.deleted_at is None],
        )

    @closes_transaction
    @retry_on_stale
    def start_attempt(
        self,
        db: Session,
        current_user_context: UserContext,
        start_in: AttemptStart,
        *,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AttemptStartResult:
        now = now or utcnow()
        if not permission_helper.is_candidate(current_user_context):
            raise UnauthorizedException("Only candidates can start exam attempts.")
        candidate_id = current_user_context.user.id

        exam = self._require_exam(db, start_in.exam_id)
        self._require_exam_open(exam, now)
        self._require_access_code(exam, start_in.access_code)
        self._require_assignment(db, exam, candidate_id, now)

        existing = crud_attempt.get_live(db, candidate_id=candidate_id, exam_id=exam.id)
        if existing:
            reason = self.overdue_reason(existing, now)
            if reason is None:
                existing.last_activity_at = now
                db.commit()
                logger.info(f"Candidate {candidate_id} resumed attempt {existing.id} on exam {exam.id}")
                return self._start_result(existing, exam, now, resumed=True)
            self.expire_now(db, existing, reason, now)

        if not settings.ALLOW_CONCURRENT_ATTEMPTS:
            if crud_attempt.get_live_elsewhere(db, candidate_id=candidate_id, exam_id=exam.id):
                raise NotEligibleException("You already have another exam in progress.")

        attempts_used = crud_attempt.count_for_pair(db, candidate_id=candidate_id, exam_id=exam.id)
        override = None
        if exam.max_attempts > 0 and attempts_used >= exam.max_attempts:
            override = crud_attempt_override.get_unused(db, candidate_id=candidate_id, exam_id=exam.id)
            if not override:
                raise NotEligibleException(f"Maximum attempts ({exam.max_attempts}) reached for this exam.")

        attempt = Attempt(
            candidate_id=candidate_id,
            exam_id=exam.id,
            attempt_number=attempts_used + 1,
            status=AttemptStatusEnum.NOT_STARTED,
            started_at=now,
            last_activity_at=now,
            base_duration_seconds=exam.duration_seconds,
            extra_time_seconds=0,
            consumed_seconds=0,
            override_id=override.id if override else None,
            ip_address=ip_address,
            device_info=start_in.device_info,
            created_by=current_user_context.actor_id,
        )
        start_clock(attempt, now)
        db.add(attempt)
        try:
            db.flush()
        except IntegrityError:
            # a concurrent start won the live-attempt unique index
            db.rollback()
            existing = crud_attempt.get_live(db, candidate_id=candidate_id, exam_id=exam.id)
            if existing is None:
                raise
            logger.info(f"Concurrent start for candidate {candidate_id} on exam {exam.id}; returning attempt {existing.id}")
            return self._start_result(existing, exam, now, resumed=True)

        if override:
            override.is_used = True
            override.used_attempt_id = attempt.id
            override.used_at = now
        self.record_event(
            db, attempt, AttemptEventTypeEnum.STARTED, now,
            {"attempt_number": attempt.attempt_number, "override_id": attempt.override_id},
            current_user_context.actor_id,
        )
        db.commit()
        db.refresh(attempt)
        logger.info(f"Candidate {candidate_id} started attempt {attempt.id} (#{attempt.attempt_number}) on exam {exam.id}")
        return self._start_result(attempt, exam, now, resumed=False)

    def _validate_answer(self, question: Question, answer_in: AnswerSave):
        if question.is_objective:
            if answer_in.selected_option_ids is None:
                raise ValidationFailedException.for_field("selected_option_ids", "This question needs selected options.")
            option_ids = {o["id"] for o in (question.options or [])}
            if not set(answer_in.selected_option_ids) <= option_ids:
                raise ValidationFailedException.for_field("selected_option_ids", "Selected options do not belong to this question.")
            if question.question_type != QuestionTypeEnum.MULTIPLE_CHOICE and len(set(answer_in.selected_option_ids)) > 1:
                raise ValidationFailedException.for_field("selected_option_ids", "Only one option may be selected.")
        elif answer_in.text_answer is None:
            raise ValidationFailedException.for_field("text_answer", "This question needs a text answer.")

    @closes_transaction
    @retry_on_stale
    def save_answer(
        self,
        db: Session,
        current_user_context: UserContext,
        attempt_id: int,
        answer_in: AnswerSave,
        *,
        now: Optional[datetime] = None,
    ) -> AttemptAnswerSchema:
        now = now or utcnow()
        attempt = self.require_attempt(db, attempt_id, for_update=True)
        permission_helper.require_attempt_owner(current_user_context, attempt)
        self._require_running(db, attempt, now)

        question = crud_question.get_in_exam(db, exam_id=attempt.exam_id, question_id=answer_in.question_id)
        if not question:
            raise ValidationFailedException.for_field("question_id", "Question does not belong to this exam.")
        self._validate_answer(question, answer_in)

        answer = crud_attempt_answer.get_by_attempt_and_question(db, attempt_id=attempt.id, question_id=question.id)
        if answer is None:
            answer = AttemptAnswer(
                attempt_id=attempt.id,
                question_id=question.id,
                created_by=current_user_context.actor_id,
            )
            db.add(answer)
        answer.selected_option_ids = (
            sorted(set(answer_in.selected_option_ids)) if answer_in.selected_option_ids is not None else None
        )
        answer.text_answer = answer_in.text_answer
        answer.answered_at = now
        answer.updated_by = current_user_context.actor_id

        if attempt.status == AttemptStatusEnum.NOT_STARTED:
            attempt.status = AttemptStatusEnum.IN_PROGRESS
        attempt.last_activity_at = now
        self.record_event(
            db, attempt, AttemptEventTypeEnum.ANSWER_SAVED, now,
            {"question_id": question.id}, current_user_context.actor_id,
        )
        db.commit()
        db.refresh(answer)
        return AttemptAnswerSchema.model_validate(answer)

    def _timer(self, attempt: Attempt, now: datetime) -> AttemptTimer:
        return AttemptTimer(
            attempt_id=attempt.id,
            status=attempt.status,
            remaining_seconds=self.remaining(attempt, now),
            is_running=attempt.is_running,
            server_time=now,
        )

    @closes_transaction
    @retry_on_stale
    def log_event(
        self,
        db: Session,
        current_user_context: UserContext,
        attempt_id: int,
        event_in: AttemptEventCreate,
        *,
        now: Optional[datetime] = None,
    ) -> AttemptTimer:
        """Record client activity; heartbeats only refresh last_activity_at."""
        now = now or utcnow()
        attempt = self.require_attempt(db, attempt_id, for_update=True)
        permission_helper.require_attempt_owner(current_user_context, attempt)
        if not attempt.is_live:
            raise ConflictException(f"Attempt is already {attempt.status.value}.")

        attempt.last_activity_at = now
        if event_in.event_type != AttemptEventTypeEnum.HEARTBEAT:
            self.record_event(db, attempt, event_in.event_type, now, event_in.metadata, current_user_context.actor_id)
        db.commit()
        return self._timer(attempt, now)

    @closes_transaction
    def heartbeat(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *, now: Optional[datetime] = None
    ) -> AttemptTimer:
        return self.log_event(
            db, current_user_context, attempt_id,
            AttemptEventCreate(event_type=AttemptEventTypeEnum.HEARTBEAT), now=now,
        )

    @closes_transaction
    @retry_on_stale
    def get_timer(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *, now: Optional[datetime] = None
    ) -> AttemptTimer:
        now = now or utcnow()
        attempt = self.require_attempt(db, attempt_id)
        permission_helper.require_attempt_view(current_user_context, attempt)
        reason = self.overdue_reason(attempt, now)
        if reason:
            attempt = self.require_attempt(db, attempt_id, for_update=True)
            reason = self.overdue_reason(attempt, now)
            if reason:
                self.expire_now(db, attempt, reason, now)
                attempt = self.require_attempt(db, attempt_id)
        return self._timer(attempt, now)

    @closes_transaction
    @retry_on_stale
    def submit_attempt(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *, now: Optional[datetime] = None
    ) -> AttemptSchema:
        now = now or utcnow()
        attempt = self.require_attempt(db, attempt_id, for_update=True)
        permission_helper.require_attempt_owner(current_user_context, attempt)
        if not attempt.is_live:
            raise ConflictException(f"Attempt is already {attempt.status.value}.")
        reason = self.overdue_reason(attempt, now)
        if reason:
            self.expire_now(db, attempt, reason, now)
            raise ConflictException("Attempt time has expired; it was closed automatically.")

        bank_running_time(attempt, now)
        attempt.status = AttemptStatusEnum.SUBMITTED
        attempt.submitted_at = now
        attempt.last_activity_at = now
        attempt.updated_by = current_user_context.actor_id
        self.record_event(db, attempt, AttemptEventTypeEnum.SUBMITTED, now, None, current_user_context.actor_id)
        db.commit()
        logger.info(f"Attempt {attempt.id} submitted by candidate {attempt.candidate_id}")

        self.trigger_grading(db, attempt.id)
        return AttemptSchema.model_validate(self.require_attempt(db, attempt_id))

    @closes_transaction
    @retry_on_stale
    def pause_attempt(
        self,
        db: Session,
        current_user_context: UserContext,
        attempt_id: int,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AttemptSchema:
        """Stop the clock; operators may pause any attempt, candidates only their own."""
        now = now or utcnow()
        attempt = self.require_attempt(db, attempt_id, for_update=True)
        is_operator = permission_helper.is_operator(current_user_context)
        if not is_operator:
            permission_helper.require_attempt_owner(current_user_context, attempt)
        self._require_running(db, attempt, now)

        bank_running_time(attempt, now)
        attempt.status = AttemptStatusEnum.PAUSED
        attempt.paused_by = current_user_context.actor_id
        attempt.paused_at = now
        attempt.updated_by = current_user_context.actor_id
        self.record_event(
            db, attempt, AttemptEventTypeEnum.PAUSED, now,
            {"reason": reason, "by_operator": is_operator}, current_user_context.actor_id,
        )
        if is_operator:
            audit_service.log(
                db,
                action=AuditActionEnum.ATTEMPT_PAUSED,
                actor_id=current_user_context.actor_id,
                candidate_id=attempt.candidate_id,
                exam_id=attempt.exam_id,
                attempt_id=attempt.id,
                reason=reason,
                details={"consumed_seconds": attempt.consumed_seconds},
                occurred_at=now,
            )
        db.commit()
        logger.info(f"Attempt {attempt.id} paused by {current_user_context.actor_id}")
        return AttemptSchema.model_validate(attempt)

    @closes_transaction
    @retry_on_stale
    def resume_attempt(
        self,
        db: Session,
        current_user_context: UserContext,
        attempt_id: int,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AttemptTimer:
        """Restart a paused clock; a candidate may only lift a pause they placed themselves."""
        now = now or utcnow()
        attempt = self.require_attempt(db, attempt_id, for_update=True)
        is_operator = permission_helper.is_operator(current_user_context)
        if not is_operator:
            permission_helper.require_attempt_owner(current_user_context, attempt)
            if attempt.status == AttemptStatusEnum.PAUSED and attempt.paused_by != current_user_context.actor_id:
                raise UnauthorizedException("This attempt was paused by an administrator.")

        if attempt.status != AttemptStatusEnum.PAUSED:
            raise ConflictException(
                f"Cannot resume an attempt with status '{attempt.status.value}'. Only paused attempts can be resumed."
            )
        if attempt.exam is not None and self.exam_window_closed(attempt.exam, now):
            self.expire_now(db, attempt, ExpiryReasonEnum.EXAM_WINDOW_CLOSED, now)
            raise ConflictException("Cannot resume: the exam schedule has ended.")
        if self.remaining(attempt, now) <= 0:
            self.expire_now(db, attempt, ExpiryReasonEnum.TIMER_EXPIRED_WHILE_ACTIVE, now)
            raise ConflictException("Cannot resume: the attempt time has already expired.")

        start_clock(attempt, now)
        attempt.status = AttemptStatusEnum.IN_PROGRESS
        attempt.resume_count = (attempt.resume_count or 0) + 1
        attempt.paused_by = None
        attempt.paused_at = None
        attempt.last_activity_at = now
        attempt.updated_by = current_user_context.actor_id
        event_type = AttemptEventTypeEnum.ADMIN_RESUMED if is_operator else AttemptEventTypeEnum.RESUMED
        self.record_event(
            db, attempt, event_type, now,
            {"resume_count": attempt.resume_count, "reason": reason}, current_user_context.actor_id,
        )
        if is_operator:
            audit_service.log(
                db,
                action=AuditActionEnum.ATTEMPT_RESUMED,
                actor_id=current_user_context.actor_id,
                candidate_id=attempt.candidate_id,
                exam_id=attempt.exam_id,
                attempt_id=attempt.id,
                reason=reason,
                details={"resume_count": attempt.resume_count},
                occurred_at=now,
            )
        db.commit()
        logger.info(f"Attempt {attempt.id} resumed by {current_user_context.actor_id} (resume #{attempt.resume_count})")
        return self._timer(attempt, now)

    @closes_transaction
    def get_attempt_detail(
        self, db: Session, current_user_context: UserContext, attempt_id: int, *, now: Optional[datetime] = None
    ) -> AttemptDetail:
        now = now or utcnow()
        attempt = crud_attempt.get_detail(db, id=attempt_id)
        if not attempt:
            raise NotFoundException("Attempt not found.")
        permission_helper.require_attempt_view(current_user_context, attempt)
        detail = AttemptDetail.model_validate(attempt)
        detail.remaining_seconds = self.remaining(attempt, now)
        return detail


attempt_service = AttemptService()
