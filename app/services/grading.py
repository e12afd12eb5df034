import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.constants import (
    SYSTEM_ACTOR,
    AuditActionEnum,
    GradingStatusEnum,
    GRADABLE_ATTEMPT_STATUSES,
)
from app.core.decorators import closes_transaction, retry_on_stale
from app.core.exceptions import (
    AppException,
    ConflictException,
    IncompleteException,
    NotFoundException,
    UnauthorizedException,
    ValidationFailedException,
)
from app.crud.attempt import attempt as crud_attempt
from app.crud.attempt_answer import attempt_answer as crud_attempt_answer
from app.crud.base import PaginatedResponse
from app.crud.graded_answer import graded_answer as crud_graded_answer
from app.crud.grading_session import grading_session as crud_grading_session
from app.crud.question import question as crud_question
from app.models.attempt_answer import AttemptAnswer
from app.models.graded_answer import GradedAnswer
from app.models.grading_session import GradingSession
from app.models.question import Question
from app.schemas.grading import (
    BulkGradeItemResult,
    BulkGradeResult,
    BulkManualGrade,
    GradingSession as GradingSessionSchema,
    GradingSessionSummary,
    ManualGrade,
    PendingGradingResult,
    Regrade,
)
from app.schemas.user import UserContext
from app.services.audit import audit_service
from app.utils.permission import PermissionHelper as permission_helper
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

UNANSWERED_COMMENT = "Unanswered"


def _to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class GradingService:

    def _require_session(self, db: Session, session_id: int, *, for_update: bool = False) -> GradingSession:
        if for_update:
            session = crud_grading_session.get_for_update(db, id=session_id)
        else:
            session = crud_grading_session.get_detail(db, id=session_id)
        if not session:
            raise NotFoundException("Grading session not found.")
        return session

    def _require_question(self, db: Session, session: GradingSession, question_id: int) -> Question:
        question = crud_question.get_in_exam(db, exam_id=session.attempt.exam_id, question_id=question_id)
        if not question:
            raise ValidationFailedException.for_field("question_id", "Question does not belong to this exam.")
        return question

    def _require_open(self, session: GradingSession):
        if session.is_completed:
            raise ConflictException("Grading session is already completed.")

    def _validate_score(self, question: Question, score) -> Decimal:
        score = _to_decimal(score)
        if not score.is_finite():
            raise ValidationFailedException.for_field("score", "Score must be a finite number.")
        if score < 0 or score > _to_decimal(question.points):
            raise ValidationFailedException.for_field(
                "score", f"Score must be between 0 and {question.points} for question {question.id}."
            )
        return score

    def _snapshot(self, row: GradedAnswer, answer: Optional[AttemptAnswer]):
        if answer is not None:
            row.selected_option_ids = list(answer.selected_option_ids) if answer.selected_option_ids is not None else None
            row.text_answer = answer.text_answer

    def _grade_objective(self, row: GradedAnswer, question: Question, answer: Optional[AttemptAnswer], now: datetime):
        if answer is None or not answer.selected_option_ids:
            row.score = Decimal("0")
            row.is_correct = False
            row.grader_comment = UNANSWERED_COMMENT
        else:
            # exact set match, all or nothing
            correct = set(answer.selected_option_ids) == set(question.correct_option_ids or [])
            row.score = _to_decimal(question.points) if correct else Decimal("0")
            row.is_correct = correct
        row.graded_by = SYSTEM_ACTOR
        row.graded_at = now

    def _missing_question_ids(self, db: Session, session: GradingSession) -> List[int]:
        graded = {ga.question_id for ga in session.graded_answers if ga.is_graded}
        questions = crud_question.get_by_exam(db, session.attempt.exam_id)
        return [q.id for q in questions if q.id not in graded]

    def _recompute(self, db: Session, session: GradingSession) -> bool:
        """Refresh total_score; returns True when every question carries a grade."""
        total = sum((_to_decimal(ga.score) for ga in session.graded_answers if ga.is_graded), Decimal("0"))
        session.total_score = total
        fully_graded = not self._missing_question_ids(db, session)
        exam = session.attempt.exam
        session.is_passed = total >= _to_decimal(exam.pass_score) if fully_graded else None
        return fully_graded

    def _complete(self, db: Session, session: GradingSession, actor_id: str, now: datetime):
        session.status = GradingStatusEnum.COMPLETED
        session.graded_by = actor_id
        session.graded_at = now
        session.updated_by = actor_id
        attempt = session.attempt
        attempt.total_score = session.total_score
        attempt.is_passed = session.is_passed
        audit_service.log(
            db,
            action=AuditActionEnum.GRADING_COMPLETED,
            actor_id=actor_id,
            candidate_id=attempt.candidate_id,
            exam_id=attempt.exam_id,
            attempt_id=attempt.id,
            entity_name="GradingSession",
            entity_id=session.id,
            details={"total_score": float(session.total_score), "is_passed": session.is_passed},
            occurred_at=now,
        )
        logger.info(f"Grading session {session.id} completed: total={session.total_score} passed={session.is_passed}")

    def _after_grade_change(self, db: Session, session: GradingSession, actor_id: str, now: datetime):
        fully_graded = self._recompute(db, session)
        if session.is_completed:
            # scores changed after completion; keep the attempt's mirror in sync
            session.attempt.total_score = session.total_score
            session.attempt.is_passed = session.is_passed
        elif fully_graded:
            self._complete(db, session, actor_id, now)
        elif session.status == GradingStatusEnum.AUTO_GRADED:
            session.status = GradingStatusEnum.MANUAL_PENDING

    def _auto_grade(self, db: Session, session_id: int, now: datetime) -> GradingSession:
        """Grade objective questions and open rows for the rest; repeat runs add no duplicates."""
        session = self._require_session(db, session_id, for_update=True)
        if session.status != GradingStatusEnum.PENDING:
            return session

        attempt = session.attempt
        questions = crud_question.get_by_exam(db, attempt.exam_id)
        answers: Dict[int, AttemptAnswer] = crud_attempt_answer.get_map_by_attempt(db, attempt.id)
        existing = {ga.question_id for ga in session.graded_answers}

        for question in questions:
            if question.id in existing:
                continue
            answer = answers.get(question.id)
            row = GradedAnswer(
                question_id=question.id,
                max_points=question.points,
                is_manually_graded=False,
                created_by=SYSTEM_ACTOR,
            )
            self._snapshot(row, answer)
            if question.is_objective:
                self._grade_objective(row, question, answer, now)
            session.graded_answers.append(row)

        fully_graded = self._recompute(db, session)
        session.status = GradingStatusEnum.AUTO_GRADED if fully_graded else GradingStatusEnum.MANUAL_PENDING
        session.updated_by = SYSTEM_ACTOR
        db.flush()
        logger.info(f"Auto-graded session {session.id}: status={session.status.value} total={session.total_score}")
        return session

    @closes_transaction
    def initiate_grading(
        self, db: Session, attempt_id: int, *, actor_id: str = SYSTEM_ACTOR, now: Optional[datetime] = None
    ) -> GradingSessionSchema:
        now = now or utcnow()
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise NotFoundException("Attempt not found.")
        if attempt.status not in GRADABLE_ATTEMPT_STATUSES:
            raise ConflictException(f"Attempt with status '{attempt.status.value}' cannot be graded.")
        if crud_grading_session.get_by_attempt(db, attempt.id):
            raise ConflictException("A grading session already exists for this attempt.")

        session = GradingSession(
            attempt_id=attempt.id,
            status=GradingStatusEnum.PENDING,
            total_score=Decimal("0"),
            created_by=actor_id,
        )
        db.add(session)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise ConflictException("A grading session already exists for this attempt.")
        audit_service.log(
            db,
            action=AuditActionEnum.GRADING_STARTED,
            actor_id=actor_id,
            candidate_id=attempt.candidate_id,
            exam_id=attempt.exam_id,
            attempt_id=attempt.id,
            entity_name="GradingSession",
            entity_id=session.id,
            occurred_at=now,
        )
        db.commit()
        session_id = session.id

        self._auto_grade(db, session_id, now)
        db.commit()
        return GradingSessionSchema.model_validate(self._require_session(db, session_id))

    def _apply_manual_grade(
        self, db: Session, session: GradingSession, grade_in: ManualGrade, actor_id: str, now: datetime
    ) -> Optional[Decimal]:
        """Upsert one graded row; returns the previous score."""
        question = self._require_question(db, session, grade_in.question_id)
        score = self._validate_score(question, grade_in.score)

        row = crud_graded_answer.get_by_session_and_question(
            db, grading_session_id=session.id, question_id=question.id
        )
        previous = row.score if row else None
        if row is None:
            row = GradedAnswer(question_id=question.id, max_points=question.points, created_by=actor_id)
            answer = crud_attempt_answer.get_by_attempt_and_question(
                db, attempt_id=session.attempt_id, question_id=question.id
            )
            self._snapshot(row, answer)
            session.graded_answers.append(row)
        row.score = score
        row.is_correct = score == _to_decimal(question.points)
        row.is_manually_graded = True
        if grade_in.comment is not None:
            row.grader_comment = grade_in.comment
        row.graded_by = actor_id
        row.graded_at = now
        row.updated_by = actor_id
        return previous

    @closes_transaction
    @retry_on_stale
    def submit_manual_grade(
        self,
        db: Session,
        current_user_context: UserContext,
        session_id: int,
        grade_in: ManualGrade,
        *,
        now: Optional[datetime] = None,
    ) -> GradingSessionSchema:
        permission_helper.require_grader(current_user_context)
        now = now or utcnow()
        actor_id = current_user_context.actor_id
        session = self._require_session(db, session_id, for_update=True)
        self._require_open(session)

        previous = self._apply_manual_grade(db, session, grade_in, actor_id, now)
        audit_service.log(
            db,
            action=AuditActionEnum.GRADING_MANUAL_GRADE,
            actor_id=actor_id,
            candidate_id=session.attempt.candidate_id,
            exam_id=session.attempt.exam_id,
            attempt_id=session.attempt_id,
            entity_name="GradingSession",
            entity_id=session.id,
            details={
                "question_id": grade_in.question_id,
                "old_score": float(previous) if previous is not None else None,
                "new_score": grade_in.score,
            },
            occurred_at=now,
        )
        self._after_grade_change(db, session, actor_id, now)
        db.commit()
        logger.info(f"Manual grade on session {session.id} question {grade_in.question_id} by {actor_id}")
        return GradingSessionSchema.model_validate(self._require_session(db, session_id))

    @closes_transaction
    @retry_on_stale
    def bulk_submit_manual_grades(
        self,
        db: Session,
        current_user_context: UserContext,
        session_id: int,
        bulk_in: BulkManualGrade,
        *,
        now: Optional[datetime] = None,
    ) -> BulkGradeResult:
        permission_helper.require_grader(current_user_context)
        now = now or utcnow()
        actor_id = current_user_context.actor_id
        session = self._require_session(db, session_id, for_update=True)
        self._require_open(session)

        results: List[BulkGradeItemResult] = []
        for grade_in in bulk_in.grades:
            try:
                with db.begin_nested():
                    self._apply_manual_grade(db, session, grade_in, actor_id, now)
                results.append(BulkGradeItemResult(question_id=grade_in.question_id, success=True))
            except AppException as e:
                results.append(BulkGradeItemResult(question_id=grade_in.question_id, success=False, error=e.detail))

        succeeded = [r.question_id for r in results if r.success]
        if succeeded:
            audit_service.log(
                db,
                action=AuditActionEnum.GRADING_MANUAL_GRADE,
                actor_id=actor_id,
                candidate_id=session.attempt.candidate_id,
                exam_id=session.attempt.exam_id,
                attempt_id=session.attempt_id,
                entity_name="GradingSession",
                entity_id=session.id,
                details={"bulk": True, "question_ids": succeeded},
                occurred_at=now,
            )
            self._after_grade_change(db, session, actor_id, now)
        db.commit()
        logger.info(f"Bulk grading on session {session.id}: {len(succeeded)} ok, {len(results) - len(succeeded)} failed")
        return BulkGradeResult(
            session=GradingSessionSchema.model_validate(self._require_session(db, session_id)),
            results=results,
            succeeded=len(succeeded),
            failed=len(results) - len(succeeded),
        )

    @closes_transaction
    @retry_on_stale
    def complete_grading(
        self, db: Session, current_user_context: UserContext, session_id: int, *, now: Optional[datetime] = None
    ) -> GradingSessionSchema:
        permission_helper.require_grader(current_user_context)
        now = now or utcnow()
        session = self._require_session(db, session_id, for_update=True)
        self._require_open(session)

        missing = self._missing_question_ids(db, session)
        if missing:
            raise IncompleteException(
                f"{len(missing)} question(s) still need a grade.",
                details={"ungraded_question_ids": missing},
            )
        self._recompute(db, session)
        self._complete(db, session, current_user_context.actor_id, now)
        db.commit()
        return GradingSessionSchema.model_validate(self._require_session(db, session_id))

    @closes_transaction
    @retry_on_stale
    def regrade(
        self,
        db: Session,
        current_user_context: UserContext,
        session_id: int,
        regrade_in: Regrade,
        *,
        now: Optional[datetime] = None,
    ) -> GradingSessionSchema:
        permission_helper.require_grader(current_user_context)
        now = now or utcnow()
        actor_id = current_user_context.actor_id
        session = self._require_session(db, session_id, for_update=True)
        row = crud_graded_answer.get_by_session_and_question(
            db, grading_session_id=session.id, question_id=regrade_in.question_id
        )
        if not row:
            raise NotFoundException("No graded answer exists for this question.")
        question = self._require_question(db, session, regrade_in.question_id)
        score = self._validate_score(question, regrade_in.score)

        old_score = row.score
        old_comment = row.grader_comment
        row.score = score
        row.is_correct = score == _to_decimal(question.points)
        row.is_manually_graded = True
        if regrade_in.comment is not None:
            row.grader_comment = regrade_in.comment
        row.graded_by = actor_id
        row.graded_at = now
        row.updated_by = actor_id

        old_total = session.total_score
        self._after_grade_change(db, session, actor_id, now)
        audit_service.log(
            db,
            action=AuditActionEnum.GRADING_REGRADED,
            actor_id=actor_id,
            candidate_id=session.attempt.candidate_id,
            exam_id=session.attempt.exam_id,
            attempt_id=session.attempt_id,
            entity_name="GradedAnswer",
            entity_id=row.id,
            reason=regrade_in.reason,
            details={
                "question_id": regrade_in.question_id,
                "old_score": float(old_score) if old_score is not None else None,
                "new_score": float(score),
                "old_comment": old_comment,
                "old_total": float(old_total) if old_total is not None else None,
                "new_total": float(session.total_score),
            },
            occurred_at=now,
        )
        db.commit()
        logger.info(f"Regraded session {session.id} question {regrade_in.question_id}: {old_score} -> {score} by {actor_id}")
        return GradingSessionSchema.model_validate(self._require_session(db, session_id))

    @closes_transaction
    def process_pending_grading_sessions(self, db: Session, *, now: Optional[datetime] = None) -> PendingGradingResult:
        """Catch-up job: open missing sessions and auto-grade every PENDING one."""
        now = now or utcnow()
        processed = 0
        failed = 0

        for attempt_id in crud_attempt.get_finished_without_session_ids(db):
            try:
                self.initiate_grading(db, attempt_id, now=now)
                processed += 1
            except AppException as e:
                db.rollback()
                failed += 1
                logger.warning(f"Could not open grading for attempt {attempt_id}: {e.detail}")
            except SQLAlchemyError:
                db.rollback()
                failed += 1
                logger.exception(f"Could not open grading for attempt {attempt_id}")

        for session_id in crud_grading_session.get_pending_ids(db):
            try:
                self._auto_grade(db, session_id, now)
                db.commit()
                processed += 1
            except SQLAlchemyError:
                db.rollback()
                failed += 1
                logger.exception(f"Auto-grading failed for session {session_id}")

        if processed or failed:
            logger.info(f"Pending grading run: {processed} processed, {failed} failed")
        return PendingGradingResult(processed=processed, failed=failed)

    def _require_session_view(self, current_user_context: UserContext, session: GradingSession):
        if permission_helper.is_grader(current_user_context):
            return
        if permission_helper.owns_attempt(current_user_context, session.attempt) and session.is_completed:
            return
        raise UnauthorizedException("You do not have permission to view this grading session.")

    @closes_transaction
    def get_session(self, db: Session, current_user_context: UserContext, session_id: int) -> GradingSessionSchema:
        session = self._require_session(db, session_id)
        self._require_session_view(current_user_context, session)
        return GradingSessionSchema.model_validate(session)

    @closes_transaction
    def get_session_by_attempt(self, db: Session, current_user_context: UserContext, attempt_id: int) -> GradingSessionSchema:
        session = crud_grading_session.get_by_attempt(db, attempt_id)
        if not session:
            raise NotFoundException("No grading session exists for this attempt.")
        self._require_session_view(current_user_context, session)
        return GradingSessionSchema.model_validate(session)

    @closes_transaction
    def list_sessions(
        self,
        db: Session,
        current_user_context: UserContext,
        *,
        status: Optional[GradingStatusEnum] = None,
        exam_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> PaginatedResponse[GradingSessionSummary]:
        permission_helper.require_grader(current_user_context)
        items, total = crud_grading_session.list_filtered(db, status=status, exam_id=exam_id, skip=skip, limit=limit)
        return PaginatedResponse[GradingSessionSummary].build(
            [GradingSessionSummary.model_validate(s) for s in items], total, skip, limit
        )

    @closes_transaction
    def get_manual_grading_queue(
        self,
        db: Session,
        current_user_context: UserContext,
        *,
        exam_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> PaginatedResponse[GradingSessionSummary]:
        return self.list_sessions(
            db, current_user_context,
            status=GradingStatusEnum.MANUAL_PENDING, exam_id=exam_id, skip=skip, limit=limit,
        )


grading_service = GradingService()
