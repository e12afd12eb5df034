import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.constants import AuditActionEnum, RoleEnum
from app.core.decorators import closes_transaction
from app.core.exceptions import (
    AppException,
    ConflictException,
    NotEligibleException,
    NotFoundException,
    ValidationFailedException,
)
from app.crud.attempt import attempt as crud_attempt
from app.crud.exam import exam as crud_exam
from app.crud.exam_assignment import exam_assignment as crud_exam_assignment
from app.crud.user import user as crud_user
from app.models.exam_assignment import ExamAssignment
from app.schemas.exam_assignment import (
    AssignmentCreate,
    AssignmentResult,
    AssignmentSkip,
    ExamAssignment as ExamAssignmentSchema,
    UnassignItemResult,
    UnassignMany,
)
from app.schemas.user import UserContext
from app.services.audit import audit_service
from app.utils.permission import PermissionHelper as permission_helper
from app.utils.time import as_naive_utc, utcnow

logger = logging.getLogger(__name__)


class ExamAssignmentService:

    @closes_transaction
    def assign(
        self, db: Session, current_user_context: UserContext, assign_in: AssignmentCreate, *,
        now: Optional[datetime] = None,
    ) -> AssignmentResult:
        permission_helper.require_operator(current_user_context)
        now = now or utcnow()
        actor_id = current_user_context.actor_id
        schedule_from = as_naive_utc(assign_in.schedule_from) if assign_in.schedule_from else None
        schedule_to = as_naive_utc(assign_in.schedule_to) if assign_in.schedule_to else None
        if schedule_from and schedule_to and schedule_from >= schedule_to:
            raise ValidationFailedException.for_field("schedule_to", "schedule_to must be after schedule_from.")

        exam = crud_exam.get(db, id=assign_in.exam_id)
        if not exam:
            raise NotFoundException("Exam not found.")
        if not exam.is_published:
            raise NotEligibleException("Only published exams can be assigned.")

        candidate_ids = list(dict.fromkeys(assign_in.candidate_ids))
        users = {u.id: u for u in crud_user.get_many(db, candidate_ids)}
        created, updated = 0, 0
        skipped: List[AssignmentSkip] = []

        for candidate_id in candidate_ids:
            user = users.get(candidate_id)
            if not user:
                skipped.append(AssignmentSkip(candidate_id=candidate_id, reason="Candidate not found."))
                continue
            if user.role != RoleEnum.CANDIDATE:
                skipped.append(AssignmentSkip(candidate_id=candidate_id, reason="User is not a candidate."))
                continue
            if user.is_blocked or not user.is_active:
                skipped.append(AssignmentSkip(candidate_id=candidate_id, reason="Candidate is blocked or inactive."))
                continue

            existing = crud_exam_assignment.get_active(db, exam_id=exam.id, candidate_id=candidate_id)
            if existing:
                if crud_attempt.exists_for_pair(db, candidate_id=candidate_id, exam_id=exam.id):
                    skipped.append(AssignmentSkip(candidate_id=candidate_id, reason="Candidate has already started this exam."))
                    continue
                existing.schedule_from = schedule_from
                existing.schedule_to = schedule_to
                existing.updated_by = actor_id
                updated += 1
                continue

            assignment = ExamAssignment(
                exam_id=exam.id,
                candidate_id=candidate_id,
                schedule_from=schedule_from,
                schedule_to=schedule_to,
                is_active=True,
                assigned_by=actor_id,
                assigned_at=now,
                created_by=actor_id,
            )
            db.add(assignment)
            db.flush()
            audit_service.log(
                db,
                action=AuditActionEnum.ASSIGNMENT_CREATED,
                actor_id=actor_id,
                candidate_id=candidate_id,
                exam_id=exam.id,
                entity_name="ExamAssignment",
                entity_id=assignment.id,
                details={
                    "schedule_from": schedule_from.isoformat() if schedule_from else None,
                    "schedule_to": schedule_to.isoformat() if schedule_to else None,
                },
                occurred_at=now,
            )
            created += 1

        db.commit()
        logger.info(f"Exam {exam.id} assigned by {actor_id}: {created} created, {updated} updated, {len(skipped)} skipped")
        return AssignmentResult(created=created, updated=updated, skipped=skipped)

    def _deactivate(self, db: Session, exam_id: int, candidate_id: int, actor_id: str, now: datetime):
        assignment = crud_exam_assignment.get_active(db, exam_id=exam_id, candidate_id=candidate_id)
        if not assignment:
            raise NotFoundException("No active assignment for this candidate and exam.")
        if crud_attempt.exists_for_pair(db, candidate_id=candidate_id, exam_id=exam_id):
            raise ConflictException("Cannot unassign a candidate who has already attempted this exam.")
        assignment.is_active = False
        assignment.updated_by = actor_id
        audit_service.log(
            db,
            action=AuditActionEnum.ASSIGNMENT_REMOVED,
            actor_id=actor_id,
            candidate_id=candidate_id,
            exam_id=exam_id,
            entity_name="ExamAssignment",
            entity_id=assignment.id,
            occurred_at=now,
        )

    @closes_transaction
    def unassign(
        self, db: Session, current_user_context: UserContext, exam_id: int, candidate_id: int, *,
        now: Optional[datetime] = None,
    ) -> None:
        permission_helper.require_operator(current_user_context)
        self._deactivate(db, exam_id, candidate_id, current_user_context.actor_id, now or utcnow())
        db.commit()
        logger.info(f"Candidate {candidate_id} unassigned from exam {exam_id} by {current_user_context.actor_id}")

    @closes_transaction
    def unassign_many(
        self, db: Session, current_user_context: UserContext, unassign_in: UnassignMany, *,
        now: Optional[datetime] = None,
    ) -> List[UnassignItemResult]:
        permission_helper.require_operator(current_user_context)
        now = now or utcnow()
        results: List[UnassignItemResult] = []
        for candidate_id in dict.fromkeys(unassign_in.candidate_ids):
            try:
                self._deactivate(db, unassign_in.exam_id, candidate_id, current_user_context.actor_id, now)
                results.append(UnassignItemResult(candidate_id=candidate_id, success=True))
            except AppException as e:
                results.append(UnassignItemResult(candidate_id=candidate_id, success=False, error=e.detail))
        db.commit()
        return results

    @closes_transaction
    def list_assignments(
        self, db: Session, current_user_context: UserContext, exam_id: int, *, active_only: bool = True
    ) -> List[ExamAssignmentSchema]:
        if not permission_helper.is_monitor(current_user_context):
            permission_helper.require_grader(current_user_context)
        return [
            ExamAssignmentSchema.model_validate(a)
            for a in crud_exam_assignment.get_by_exam(db, exam_id, active_only=active_only)
        ]


exam_assignment_service = ExamAssignmentService()
