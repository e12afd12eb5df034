import pytest

from app.core.constants import AuditActionEnum, RoleEnum
from app.core.exceptions import (
    ConflictException,
    NotEligibleException,
    NotFoundException,
    UnauthorizedException,
    ValidationFailedException,
)
from app.crud.exam_assignment import exam_assignment as crud_exam_assignment
from app.schemas.attempt import AttemptStart
from app.schemas.exam_assignment import AssignmentCreate, UnassignMany
from app.services.attempt import attempt_service
from app.services.audit import audit_service
from app.services.exam_assignment import exam_assignment_service
from tests.helpers.clock import T0, at


class TestAssign:
    def test_assign_skips_ineligible_users(self, db_session, admin, candidate, instructor, make_user, context_for, exam):
        blocked = make_user(RoleEnum.CANDIDATE, is_blocked=True)
        result = exam_assignment_service.assign(
            db_session, context_for(admin),
            AssignmentCreate(exam_id=exam.id, candidate_ids=[candidate.id, instructor.id, blocked.id, 999999]),
            now=T0,
        )
        assert result.created == 1
        assert result.updated == 0
        assert {s.candidate_id for s in result.skipped} == {instructor.id, blocked.id, 999999}
        assert crud_exam_assignment.get_active(db_session, exam_id=exam.id, candidate_id=candidate.id) is not None
        assert audit_service.list_logs(db_session, action=AuditActionEnum.ASSIGNMENT_CREATED).total == 1

    def test_reassign_updates_schedule(self, db_session, admin, candidate, context_for, exam):
        ctx = context_for(admin)
        exam_assignment_service.assign(db_session, ctx, AssignmentCreate(exam_id=exam.id, candidate_ids=[candidate.id]))
        result = exam_assignment_service.assign(
            db_session, ctx,
            AssignmentCreate(exam_id=exam.id, candidate_ids=[candidate.id], schedule_from=at(minutes=30)),
        )
        assert result.created == 0
        assert result.updated == 1
        assignment = crud_exam_assignment.get_active(db_session, exam_id=exam.id, candidate_id=candidate.id)
        assert assignment.schedule_from == at(minutes=30)

    def test_schedule_must_be_ordered(self, db_session, admin, candidate, context_for, exam):
        with pytest.raises(ValidationFailedException):
            exam_assignment_service.assign(
                db_session, context_for(admin),
                AssignmentCreate(
                    exam_id=exam.id, candidate_ids=[candidate.id],
                    schedule_from=at(minutes=30), schedule_to=at(minutes=10),
                ),
            )

    def test_unpublished_exam_cannot_be_assigned(self, db_session, admin, candidate, context_for, make_exam):
        exam = make_exam(is_published=False)
        with pytest.raises(NotEligibleException):
            exam_assignment_service.assign(
                db_session, context_for(admin), AssignmentCreate(exam_id=exam.id, candidate_ids=[candidate.id])
            )

    def test_only_operators_assign(self, db_session, instructor, candidate, context_for, exam):
        with pytest.raises(UnauthorizedException):
            exam_assignment_service.assign(
                db_session, context_for(instructor), AssignmentCreate(exam_id=exam.id, candidate_ids=[candidate.id])
            )


class TestUnassign:
    def test_unassign_blocks_future_starts(self, db_session, admin, candidate, context_for, assigned_exam):
        exam_assignment_service.unassign(db_session, context_for(admin), assigned_exam.id, candidate.id, now=T0)

        assert crud_exam_assignment.get_active(db_session, exam_id=assigned_exam.id, candidate_id=candidate.id) is None
        with pytest.raises(NotEligibleException):
            attempt_service.start_attempt(
                db_session, context_for(candidate), AttemptStart(exam_id=assigned_exam.id), now=at(minutes=1)
            )

    def test_cannot_unassign_after_attempt(self, db_session, admin, candidate, context_for, assigned_exam):
        attempt_service.start_attempt(db_session, context_for(candidate), AttemptStart(exam_id=assigned_exam.id), now=T0)

        with pytest.raises(ConflictException):
            exam_assignment_service.unassign(db_session, context_for(admin), assigned_exam.id, candidate.id)

        assignment = crud_exam_assignment.get_active(db_session, exam_id=assigned_exam.id, candidate_id=candidate.id)
        assert assignment is not None
        assert assignment.is_active is True

    def test_unassign_missing_assignment(self, db_session, admin, candidate, context_for, exam):
        with pytest.raises(NotFoundException):
            exam_assignment_service.unassign(db_session, context_for(admin), exam.id, candidate.id)

    def test_unassign_many_reports_each_candidate(self, db_session, admin, candidate, make_user, context_for, assigned_exam, assign):
        other = make_user(RoleEnum.CANDIDATE)
        assign(assigned_exam, other)
        attempt_service.start_attempt(db_session, context_for(other), AttemptStart(exam_id=assigned_exam.id), now=T0)

        results = exam_assignment_service.unassign_many(
            db_session, context_for(admin), UnassignMany(exam_id=assigned_exam.id, candidate_ids=[candidate.id, other.id])
        )

        outcome = {r.candidate_id: r.success for r in results}
        assert outcome == {candidate.id: True, other.id: False}
        remaining = exam_assignment_service.list_assignments(db_session, context_for(admin), assigned_exam.id)
        assert [a.candidate_id for a in remaining] == [other.id]
