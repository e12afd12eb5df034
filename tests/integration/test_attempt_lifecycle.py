import pytest
from sqlalchemy.orm import Session

from app.core.constants import AttemptEventTypeEnum, AttemptStatusEnum, ExpiryReasonEnum, RoleEnum
from app.core.exceptions import (
    ConflictException,
    NotEligibleException,
    UnauthorizedException,
    ValidationFailedException,
)
from app.crud.attempt import attempt as crud_attempt
from app.crud.attempt_event import attempt_event as crud_attempt_event
from app.crud.grading_session import grading_session as crud_grading_session
from app.schemas.attempt import AnswerSave, AttemptEventCreate, AttemptStart
from app.services.attempt import attempt_service
from tests.helpers.clock import T0, at


def _start(db: Session, ctx, exam, now=T0, **kwargs):
    return attempt_service.start_attempt(db, ctx, AttemptStart(exam_id=exam.id, **kwargs), now=now)


class TestStartAttempt:
    def test_start_creates_fresh_attempt(self, db_session, candidate, context_for, assigned_exam):
        result = _start(db_session, context_for(candidate), assigned_exam)

        assert result.resumed is False
        assert result.attempt.status == AttemptStatusEnum.NOT_STARTED
        assert result.attempt.attempt_number == 1
        assert result.remaining_seconds == 3600
        assert len(result.questions) == 4
        assert "correct_option_ids" not in result.questions[0].model_dump()

        events = crud_attempt_event.get_by_attempt(db_session, result.attempt.id)
        assert [e.event_type for e in events] == [AttemptEventTypeEnum.STARTED]

    def test_second_start_resumes_live_attempt(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        first = _start(db_session, ctx, assigned_exam)
        second = _start(db_session, ctx, assigned_exam, now=at(minutes=1))

        assert second.resumed is True
        assert second.attempt.id == first.attempt.id
        assert second.remaining_seconds == 3540
        _, total = crud_attempt.list_filtered(db_session, exam_id=assigned_exam.id)
        assert total == 1

    def test_racing_start_returns_winning_attempt(self, db_session, candidate, context_for, make_exam, assign, monkeypatch):
        exam = make_exam(max_attempts=0)
        assign(exam, candidate)
        ctx = context_for(candidate)
        first = _start(db_session, ctx, exam)

        # the losing request checked for a live attempt before the winner inserted one
        real_get_live = crud_attempt.get_live
        calls = []

        def get_live_after_race(db, **kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                return None
            return real_get_live(db, **kwargs)

        monkeypatch.setattr(crud_attempt, "get_live", get_live_after_race)
        second = _start(db_session, ctx, exam, now=at(minutes=1))

        assert len(calls) == 2
        assert second.resumed is True
        assert second.attempt.id == first.attempt.id
        assert not db_session.in_transaction()
        _, total = crud_attempt.list_filtered(db_session, exam_id=exam.id)
        assert total == 1

    def test_start_requires_assignment(self, db_session, candidate, context_for, exam):
        with pytest.raises(NotEligibleException):
            _start(db_session, context_for(candidate), exam)

    def test_start_rejects_non_candidate(self, db_session, admin, context_for, assigned_exam):
        with pytest.raises(UnauthorizedException):
            _start(db_session, context_for(admin), assigned_exam)

    def test_start_rejects_unpublished_exam(self, db_session, candidate, context_for, make_exam, assign):
        exam = make_exam(is_published=False)
        assign(exam, candidate)
        with pytest.raises(NotEligibleException):
            _start(db_session, context_for(candidate), exam)

    def test_start_outside_exam_window(self, db_session, candidate, context_for, make_exam, assign):
        exam = make_exam(start_at=at(minutes=30), end_at=at(minutes=120))
        assign(exam, candidate)
        with pytest.raises(NotEligibleException):
            _start(db_session, context_for(candidate), exam)
        with pytest.raises(NotEligibleException):
            _start(db_session, context_for(candidate), exam, now=at(minutes=120))

    def test_start_outside_assignment_schedule(self, db_session, candidate, context_for, exam, assign):
        assign(exam, candidate, schedule_from=at(minutes=60))
        with pytest.raises(NotEligibleException):
            _start(db_session, context_for(candidate), exam)

    def test_access_code(self, db_session, candidate, context_for, make_exam, assign):
        exam = make_exam(access_code="OPEN-SESAME")
        assign(exam, candidate)
        ctx = context_for(candidate)
        with pytest.raises(NotEligibleException):
            _start(db_session, ctx, exam)
        with pytest.raises(NotEligibleException):
            _start(db_session, ctx, exam, access_code="wrong")
        assert _start(db_session, ctx, exam, access_code="OPEN-SESAME").resumed is False

    def test_max_attempts_counts_cancelled_attempts(self, db_session, candidate, admin, context_for, assigned_exam):
        from app.services.attempt_control import attempt_control_service

        first = _start(db_session, context_for(candidate), assigned_exam)
        attempt_control_service.cancel_attempt(
            db_session, context_for(admin), first.attempt.id, reason="Wrong room", now=at(minutes=5)
        )
        with pytest.raises(NotEligibleException):
            _start(db_session, context_for(candidate), assigned_exam, now=at(minutes=6))

    def test_overdue_live_attempt_is_expired_before_a_new_one(self, db_session, candidate, context_for, make_exam, assign):
        exam = make_exam(max_attempts=2)
        assign(exam, candidate)
        ctx = context_for(candidate)
        first = _start(db_session, ctx, exam)

        second = _start(db_session, ctx, exam, now=at(minutes=70))

        assert second.resumed is False
        assert second.attempt.attempt_number == 2
        old = crud_attempt.get(db_session, id=first.attempt.id)
        assert old.status == AttemptStatusEnum.EXPIRED
        assert crud_grading_session.get_by_attempt(db_session, old.id) is not None

    def test_one_live_exam_at_a_time(self, db_session, candidate, context_for, make_exam, assign):
        exam_a, exam_b = make_exam(), make_exam()
        assign(exam_a, candidate)
        assign(exam_b, candidate)
        ctx = context_for(candidate)
        _start(db_session, ctx, exam_a)
        with pytest.raises(NotEligibleException):
            _start(db_session, ctx, exam_b)


class TestAnswers:
    def test_first_answer_moves_attempt_in_progress(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        question = assigned_exam.questions[0]

        answer = attempt_service.save_answer(
            db_session, ctx, attempt_id, AnswerSave(question_id=question.id, selected_option_ids=[2]), now=at(minutes=1)
        )
        assert answer.selected_option_ids == [2]
        assert crud_attempt.get(db_session, id=attempt_id).status == AttemptStatusEnum.IN_PROGRESS

    def test_answer_is_upserted(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        question = assigned_exam.questions[0]

        first = attempt_service.save_answer(
            db_session, ctx, attempt_id, AnswerSave(question_id=question.id, selected_option_ids=[2]), now=at(minutes=1)
        )
        second = attempt_service.save_answer(
            db_session, ctx, attempt_id, AnswerSave(question_id=question.id, selected_option_ids=[1]), now=at(minutes=2)
        )
        assert second.id == first.id
        assert second.selected_option_ids == [1]

    def test_answer_must_belong_to_exam(self, db_session, candidate, context_for, assigned_exam, make_exam):
        other = make_exam()
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        with pytest.raises(ValidationFailedException):
            attempt_service.save_answer(
                db_session, ctx, attempt_id,
                AnswerSave(question_id=other.questions[0].id, selected_option_ids=[1]), now=at(minutes=1),
            )

    def test_unknown_option_rejected(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        with pytest.raises(ValidationFailedException):
            attempt_service.save_answer(
                db_session, ctx, attempt_id,
                AnswerSave(question_id=assigned_exam.questions[0].id, selected_option_ids=[9]), now=at(minutes=1),
            )

    def test_only_owner_can_answer(self, db_session, candidate, make_user, context_for, assigned_exam):
        intruder = make_user(RoleEnum.CANDIDATE)
        attempt_id = _start(db_session, context_for(candidate), assigned_exam).attempt.id
        with pytest.raises(UnauthorizedException):
            attempt_service.save_answer(
                db_session, context_for(intruder), attempt_id,
                AnswerSave(question_id=assigned_exam.questions[0].id, selected_option_ids=[1]), now=at(minutes=1),
            )

    def test_answer_after_time_is_up_expires_attempt(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        attempt_service.heartbeat(db_session, ctx, attempt_id, now=at(minutes=59))
        with pytest.raises(ConflictException):
            attempt_service.save_answer(
                db_session, ctx, attempt_id,
                AnswerSave(question_id=assigned_exam.questions[0].id, selected_option_ids=[1]), now=at(minutes=61),
            )
        attempt = crud_attempt.get(db_session, id=attempt_id)
        assert attempt.status == AttemptStatusEnum.EXPIRED
        assert attempt.expiry_reason == ExpiryReasonEnum.TIMER_EXPIRED_WHILE_ACTIVE


class TestEventsAndTimer:
    def test_heartbeat_is_not_stored(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id

        timer = attempt_service.heartbeat(db_session, ctx, attempt_id, now=at(minutes=10))

        assert timer.remaining_seconds == 3000
        assert crud_attempt_event.get_by_attempt(db_session, attempt_id, event_type=AttemptEventTypeEnum.HEARTBEAT) == []
        assert crud_attempt.get(db_session, id=attempt_id).last_activity_at == at(minutes=10)

    def test_client_event_is_recorded(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        attempt_service.log_event(
            db_session, ctx, attempt_id,
            AttemptEventCreate(event_type=AttemptEventTypeEnum.TAB_SWITCHED, metadata={"count": 1}),
            now=at(minutes=3),
        )
        events = crud_attempt_event.get_by_attempt(db_session, attempt_id, event_type=AttemptEventTypeEnum.TAB_SWITCHED)
        assert len(events) == 1
        assert events[0].event_metadata == {"count": 1}

    def test_server_event_types_rejected_from_clients(self):
        with pytest.raises(ValueError):
            AttemptEventCreate(event_type=AttemptEventTypeEnum.SUBMITTED)

    def test_heartbeat_never_expires(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        timer = attempt_service.heartbeat(db_session, ctx, attempt_id, now=at(minutes=90))
        assert timer.remaining_seconds == 0
        assert timer.status == AttemptStatusEnum.NOT_STARTED

    def test_timer_read_expires_overdue_attempt(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        timer = attempt_service.get_timer(db_session, ctx, attempt_id, now=at(minutes=61))
        assert timer.status == AttemptStatusEnum.EXPIRED
        assert timer.remaining_seconds == 0


class TestSubmit:
    def test_submit_closes_attempt_and_starts_grading(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id

        attempt = attempt_service.submit_attempt(db_session, ctx, attempt_id, now=at(minutes=20))

        assert attempt.status == AttemptStatusEnum.SUBMITTED
        assert attempt.submitted_at == at(minutes=20)
        assert attempt.consumed_seconds == 1200
        assert crud_grading_session.get_by_attempt(db_session, attempt_id) is not None

    def test_submit_twice_conflicts(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        attempt_service.submit_attempt(db_session, ctx, attempt_id, now=at(minutes=20))
        with pytest.raises(ConflictException):
            attempt_service.submit_attempt(db_session, ctx, attempt_id, now=at(minutes=21))

    def test_late_submit_becomes_expiry(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        with pytest.raises(ConflictException):
            attempt_service.submit_attempt(db_session, ctx, attempt_id, now=at(minutes=65))
        assert crud_attempt.get(db_session, id=attempt_id).status == AttemptStatusEnum.EXPIRED


class TestPauseResume:
    def test_candidate_pause_freezes_clock(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id

        paused = attempt_service.pause_attempt(db_session, ctx, attempt_id, now=at(minutes=10))
        assert paused.status == AttemptStatusEnum.PAUSED
        assert paused.paused_by == str(candidate.id)

        timer = attempt_service.get_timer(db_session, ctx, attempt_id, now=at(minutes=200))
        assert timer.remaining_seconds == 3000
        assert timer.is_running is False

        resumed = attempt_service.resume_attempt(db_session, ctx, attempt_id, now=at(minutes=200))
        assert resumed.status == AttemptStatusEnum.IN_PROGRESS
        assert resumed.remaining_seconds == 3000

        later = attempt_service.get_timer(db_session, ctx, attempt_id, now=at(minutes=210))
        assert later.remaining_seconds == 2400
        assert crud_attempt.get(db_session, id=attempt_id).resume_count == 1

    def test_paused_attempt_rejects_answers(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        attempt_service.pause_attempt(db_session, ctx, attempt_id, now=at(minutes=1))
        with pytest.raises(ConflictException):
            attempt_service.save_answer(
                db_session, ctx, attempt_id,
                AnswerSave(question_id=assigned_exam.questions[0].id, selected_option_ids=[1]), now=at(minutes=2),
            )

    def test_candidate_cannot_lift_operator_pause(self, db_session, candidate, admin, context_for, assigned_exam):
        from app.services.attempt_control import attempt_control_service

        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        attempt_control_service.pause_attempt(db_session, context_for(admin), attempt_id, reason="Fire drill", now=at(minutes=5))

        with pytest.raises(UnauthorizedException):
            attempt_service.resume_attempt(db_session, ctx, attempt_id, now=at(minutes=30))

        timer = attempt_control_service.resume_attempt(db_session, context_for(admin), attempt_id, now=at(minutes=30))
        assert timer.remaining_seconds == 3300
        events = crud_attempt_event.get_by_attempt(db_session, attempt_id, event_type=AttemptEventTypeEnum.ADMIN_RESUMED)
        assert len(events) == 1

    def test_resume_requires_pause(self, db_session, candidate, context_for, assigned_exam):
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, assigned_exam).attempt.id
        with pytest.raises(ConflictException):
            attempt_service.resume_attempt(db_session, ctx, attempt_id, now=at(minutes=1))

    def test_resume_after_exam_window_expires(self, db_session, candidate, context_for, make_exam, assign):
        exam = make_exam(end_at=at(minutes=30))
        assign(exam, candidate)
        ctx = context_for(candidate)
        attempt_id = _start(db_session, ctx, exam).attempt.id
        attempt_service.pause_attempt(db_session, ctx, attempt_id, now=at(minutes=10))

        with pytest.raises(ConflictException):
            attempt_service.resume_attempt(db_session, ctx, attempt_id, now=at(minutes=31))

        attempt = crud_attempt.get(db_session, id=attempt_id)
        assert attempt.status == AttemptStatusEnum.EXPIRED
        assert attempt.expiry_reason == ExpiryReasonEnum.EXAM_WINDOW_CLOSED
