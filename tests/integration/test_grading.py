from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.core.constants import AttemptStatusEnum, AuditActionEnum, GradingStatusEnum
from app.core.exceptions import (
    ConflictException,
    IncompleteException,
    NotFoundException,
    UnauthorizedException,
    ValidationFailedException,
)
from app.crud.attempt import attempt as crud_attempt
from app.crud.grading_session import grading_session as crud_grading_session
from app.models.audit_log import AuditLog
from app.models.graded_answer import GradedAnswer
from app.models.grading_session import GradingSession
from app.schemas.attempt import AnswerSave, AttemptStart
from app.schemas.grading import BulkManualGrade, ManualGrade, Regrade
from app.services.attempt import attempt_service
from app.services.audit import audit_service
from app.services.grading import grading_service
from tests.helpers.clock import T0, at


def _sit_exam(db, ctx, exam, answers, *, submit=True):
    """Start, answer by position and submit; returns the attempt id."""
    attempt_id = attempt_service.start_attempt(db, ctx, AttemptStart(exam_id=exam.id), now=T0).attempt.id
    questions = {q.position: q for q in exam.questions}
    for position, value in answers.items():
        question = questions[position]
        if isinstance(value, str):
            answer_in = AnswerSave(question_id=question.id, text_answer=value)
        else:
            answer_in = AnswerSave(question_id=question.id, selected_option_ids=value)
        attempt_service.save_answer(db, ctx, attempt_id, answer_in, now=at(minutes=position))
    if submit:
        attempt_service.submit_attempt(db, ctx, attempt_id, now=at(minutes=20))
    return attempt_id


def _essay(exam):
    return next(q for q in exam.questions if not q.is_objective)


@pytest.fixture
def submitted(db_session, candidate, context_for, assigned_exam):
    """Two objective answers right, one wrong, essay awaiting a grader."""
    attempt_id = _sit_exam(
        db_session, context_for(candidate), assigned_exam,
        {1: [1], 2: [2], 3: [1], 4: "Each row carries a version column compared on update."},
    )
    return crud_grading_session.get_by_attempt(db_session, attempt_id)


class TestAutoGrading:
    def test_objective_questions_graded_on_submit(self, db_session, submitted):
        assert submitted.status == GradingStatusEnum.MANUAL_PENDING
        assert submitted.total_score == Decimal("2")
        assert submitted.is_passed is None

        rows = {ga.question_id: ga for ga in submitted.graded_answers}
        assert len(rows) == 4
        essay_row = next(ga for ga in rows.values() if ga.text_answer)
        assert essay_row.score is None
        assert sorted(ga.is_correct for ga in rows.values() if ga.score is not None) == [False, True, True]

    def test_unanswered_objective_scores_zero(self, db_session, candidate, context_for, make_exam, assign):
        exam = make_exam(essay=False)
        assign(exam, candidate)
        attempt_id = _sit_exam(db_session, context_for(candidate), exam, {1: [1]})

        session = crud_grading_session.get_by_attempt(db_session, attempt_id)
        assert session.status == GradingStatusEnum.AUTO_GRADED
        assert session.total_score == Decimal("1")
        assert session.is_passed is False
        unanswered = [ga for ga in session.graded_answers if ga.grader_comment == "Unanswered"]
        assert len(unanswered) == 2

    def test_multiple_choice_needs_exact_set(self, db_session, candidate, context_for, make_exam, assign):
        from app.core.constants import QuestionTypeEnum
        from app.models.question import Question

        exam = make_exam(essay=False)
        exam.questions.append(
            Question(
                position=5,
                question_text="Pick both",
                question_type=QuestionTypeEnum.MULTIPLE_CHOICE,
                points=Decimal("2"),
                options=[{"id": 1, "text": "A"}, {"id": 2, "text": "B"}, {"id": 3, "text": "C"}],
                correct_option_ids=[1, 2],
            )
        )
        db_session.commit()
        assign(exam, candidate)
        attempt_id = _sit_exam(db_session, context_for(candidate), exam, {5: [1]})

        session = crud_grading_session.get_by_attempt(db_session, attempt_id)
        row = next(ga for ga in session.graded_answers if ga.max_points == Decimal("2"))
        assert row.score == Decimal("0")
        assert row.is_correct is False

    def test_initiate_twice_conflicts(self, db_session, submitted):
        with pytest.raises(ConflictException):
            grading_service.initiate_grading(db_session, submitted.attempt_id)

    def test_live_attempt_cannot_be_graded(self, db_session, candidate, context_for, assigned_exam):
        attempt_id = _sit_exam(db_session, context_for(candidate), assigned_exam, {}, submit=False)
        with pytest.raises(ConflictException):
            grading_service.initiate_grading(db_session, attempt_id)

    def test_missing_attempt(self, db_session):
        with pytest.raises(NotFoundException):
            grading_service.initiate_grading(db_session, 999999)


class TestManualGrading:
    def test_completion_refused_while_essay_ungraded(self, db_session, instructor, context_for, assigned_exam, submitted):
        with pytest.raises(IncompleteException) as exc_info:
            grading_service.complete_grading(db_session, context_for(instructor), submitted.id)
        assert exc_info.value.details == {"ungraded_question_ids": [_essay(assigned_exam).id]}

    def test_grading_last_question_completes_session(self, db_session, instructor, context_for, assigned_exam, submitted):
        session = grading_service.submit_manual_grade(
            db_session, context_for(instructor), submitted.id,
            ManualGrade(question_id=_essay(assigned_exam).id, score=2, comment="Clear"),
            now=at(minutes=90),
        )
        assert session.status == GradingStatusEnum.COMPLETED
        assert session.total_score == 4
        assert session.is_passed is True
        assert session.graded_by == str(instructor.id)

        attempt = crud_attempt.get(db_session, id=submitted.attempt_id)
        assert attempt.total_score == Decimal("4")
        assert attempt.is_passed is True

    def test_low_essay_score_fails(self, db_session, instructor, context_for, assigned_exam, submitted):
        session = grading_service.submit_manual_grade(
            db_session, context_for(instructor), submitted.id,
            ManualGrade(question_id=_essay(assigned_exam).id, score=0.5),
        )
        assert session.total_score == 2.5
        assert session.is_passed is False

    def test_score_must_fit_question_points(self, db_session, instructor, context_for, assigned_exam, submitted):
        with pytest.raises(ValidationFailedException):
            grading_service.submit_manual_grade(
                db_session, context_for(instructor), submitted.id,
                ManualGrade(question_id=_essay(assigned_exam).id, score=3),
            )

    def test_non_finite_score_rejected(self, db_session, instructor, context_for, assigned_exam, submitted):
        essay_id = _essay(assigned_exam).id
        with pytest.raises(PydanticValidationError):
            ManualGrade(question_id=essay_id, score=float("nan"))
        with pytest.raises(PydanticValidationError):
            Regrade(question_id=essay_id, score=float("inf"), reason="Recount")

        for score in (float("nan"), float("inf")):
            with pytest.raises(ValidationFailedException) as exc_info:
                grading_service.submit_manual_grade(
                    db_session, context_for(instructor), submitted.id,
                    ManualGrade.model_construct(question_id=essay_id, score=score, comment=None),
                )
            assert exc_info.value.details["validation_errors"][0]["field"] == "score"
        assert not db_session.in_transaction()

        row = next(ga for ga in crud_grading_session.get_detail(db_session, id=submitted.id).graded_answers
                   if ga.question_id == essay_id)
        assert row.score is None

    def test_candidate_cannot_grade(self, db_session, candidate, context_for, assigned_exam, submitted):
        with pytest.raises(UnauthorizedException):
            grading_service.submit_manual_grade(
                db_session, context_for(candidate), submitted.id,
                ManualGrade(question_id=_essay(assigned_exam).id, score=2),
            )

    def test_completed_session_refuses_manual_grade(self, db_session, instructor, context_for, assigned_exam, submitted):
        ctx = context_for(instructor)
        essay_id = _essay(assigned_exam).id
        grading_service.submit_manual_grade(db_session, ctx, submitted.id, ManualGrade(question_id=essay_id, score=2))
        with pytest.raises(ConflictException):
            grading_service.submit_manual_grade(db_session, ctx, submitted.id, ManualGrade(question_id=essay_id, score=1))

    def test_bulk_applies_valid_items(self, db_session, instructor, context_for, assigned_exam, submitted):
        result = grading_service.bulk_submit_manual_grades(
            db_session, context_for(instructor), submitted.id,
            BulkManualGrade(grades=[
                ManualGrade(question_id=_essay(assigned_exam).id, score=1.5),
                ManualGrade(question_id=999999, score=1),
            ]),
        )
        assert result.succeeded == 1
        assert result.failed == 1
        assert result.results[1].success is False
        assert result.session.status == GradingStatusEnum.COMPLETED
        assert result.session.total_score == 3.5

    def test_candidate_sees_session_only_once_completed(self, db_session, candidate, instructor, context_for, assigned_exam, submitted):
        with pytest.raises(UnauthorizedException):
            grading_service.get_session(db_session, context_for(candidate), submitted.id)
        grading_service.submit_manual_grade(
            db_session, context_for(instructor), submitted.id,
            ManualGrade(question_id=_essay(assigned_exam).id, score=2),
        )
        assert grading_service.get_session(db_session, context_for(candidate), submitted.id).is_passed is True

    def test_queue_lists_manual_pending(self, db_session, instructor, context_for, assigned_exam, submitted):
        page = grading_service.get_manual_grading_queue(db_session, context_for(instructor), exam_id=assigned_exam.id)
        assert [s.id for s in page.items] == [submitted.id]


class TestRegrade:
    def _complete(self, db, ctx, exam, session):
        grading_service.submit_manual_grade(db, ctx, session.id, ManualGrade(question_id=_essay(exam).id, score=2))

    def test_regrade_keeps_session_completed(self, db_session, instructor, context_for, assigned_exam, submitted):
        ctx = context_for(instructor)
        self._complete(db_session, ctx, assigned_exam, submitted)

        session = grading_service.regrade(
            db_session, ctx, submitted.id,
            Regrade(question_id=_essay(assigned_exam).id, score=0.5, reason="Misread the rubric"),
        )
        assert session.status == GradingStatusEnum.COMPLETED
        assert session.total_score == 2.5
        assert session.is_passed is False
        attempt = crud_attempt.get(db_session, id=submitted.attempt_id)
        assert attempt.total_score == Decimal("2.5")
        assert attempt.is_passed is False

        entry = audit_service.list_logs(db_session, action=AuditActionEnum.GRADING_REGRADED).items[0]
        assert entry.reason == "Misread the rubric"
        assert entry.details["old_score"] == 2.0
        assert entry.details["new_score"] == 0.5
        assert entry.details["old_total"] == 4.0

    def test_regrade_objective_override(self, db_session, instructor, context_for, assigned_exam, submitted):
        ctx = context_for(instructor)
        third = next(q for q in assigned_exam.questions if q.position == 3)
        session = grading_service.regrade(
            db_session, ctx, submitted.id, Regrade(question_id=third.id, score=1, reason="Ambiguous wording")
        )
        row = next(ga for ga in session.graded_answers if ga.question_id == third.id)
        assert row.is_correct is True
        assert row.is_manually_graded is True
        assert session.status == GradingStatusEnum.MANUAL_PENDING

    def test_regrade_requires_existing_row(self, db_session, instructor, context_for, submitted):
        with pytest.raises(NotFoundException):
            grading_service.regrade(
                db_session, context_for(instructor), submitted.id, Regrade(question_id=999999, score=1, reason="x")
            )


class TestPendingGrading:
    def test_opens_missing_sessions_once(self, db_session, candidate, context_for, assigned_exam):
        attempt_id = _sit_exam(db_session, context_for(candidate), assigned_exam, {1: [1]}, submit=False)
        attempt = crud_attempt.get(db_session, id=attempt_id)
        # finished without grading, as if initiation had failed
        attempt.status = AttemptStatusEnum.SUBMITTED
        attempt.running_since = None
        db_session.commit()

        first = grading_service.process_pending_grading_sessions(db_session)
        second = grading_service.process_pending_grading_sessions(db_session)

        assert first.processed == 1
        assert second.processed == 0
        assert db_session.query(GradingSession).filter(GradingSession.attempt_id == attempt_id).count() == 1

    def test_grades_pending_sessions(self, db_session, candidate, context_for, make_exam, assign):
        exam = make_exam(essay=False)
        assign(exam, candidate)
        attempt_id = _sit_exam(db_session, context_for(candidate), exam, {1: [1], 2: [2], 3: [3]}, submit=False)
        attempt = crud_attempt.get(db_session, id=attempt_id)
        attempt.status = AttemptStatusEnum.SUBMITTED
        attempt.running_since = None
        db_session.add(GradingSession(attempt_id=attempt_id, status=GradingStatusEnum.PENDING, total_score=0))
        db_session.commit()

        result = grading_service.process_pending_grading_sessions(db_session)

        assert result.processed == 1
        session = crud_grading_session.get_by_attempt(db_session, attempt_id)
        assert session.status == GradingStatusEnum.AUTO_GRADED
        assert session.total_score == Decimal("3")
        assert len(session.graded_answers) == 3


class TestImmutability:
    def test_graded_answer_snapshot_is_frozen(self, db_session, submitted):
        row = db_session.query(GradedAnswer).filter(GradedAnswer.grading_session_id == submitted.id).first()
        row.text_answer = "rewritten after the fact"
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()

    def test_audit_rows_cannot_be_edited(self, db_session, submitted):
        entry = db_session.query(AuditLog).first()
        entry.reason = "tampered"
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()

    def test_audit_rows_cannot_be_deleted(self, db_session, submitted):
        entry = db_session.query(AuditLog).first()
        db_session.delete(entry)
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()
