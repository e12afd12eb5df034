from fastapi.testclient import TestClient

from tests.helpers.asserts import api_call, assert_error


def _started_attempt(client, headers, exam_id) -> dict:
    return api_call(client, "POST", "/attempts/start", headers=headers, json={"exam_id": exam_id}).json()["data"]


class TestAttemptControlEndpoints:
    def test_candidate_is_forbidden(self, client: TestClient, candidate, auth_headers):
        response = client.get("/attempt-control/attempts", headers=auth_headers(candidate))
        assert_error(response, 403, "FORBIDDEN")

    def test_proctor_monitors_live_attempts(self, client: TestClient, candidate, proctor, auth_headers, assigned_exam):
        _started_attempt(client, auth_headers(candidate), assigned_exam.id)
        page = api_call(client, "GET", "/attempt-control/attempts", headers=auth_headers(proctor)).json()["data"]
        assert page["total"] == 1
        assert page["items"][0]["candidate_name"] == "Ada Candidate"

    def test_proctor_cannot_force_end(self, client: TestClient, candidate, proctor, auth_headers, assigned_exam):
        attempt_id = _started_attempt(client, auth_headers(candidate), assigned_exam.id)["attempt"]["id"]
        response = client.post(
            f"/attempt-control/attempts/{attempt_id}/force-end", headers=auth_headers(proctor), json={"reason": "x"}
        )
        assert_error(response, 403, "FORBIDDEN")

    def test_add_time_and_force_end(self, client: TestClient, candidate, admin, auth_headers, assigned_exam):
        attempt_id = _started_attempt(client, auth_headers(candidate), assigned_exam.id)["attempt"]["id"]
        admin_headers = auth_headers(admin)

        added = api_call(
            client, "POST", f"/attempt-control/attempts/{attempt_id}/add-time",
            headers=admin_headers, json={"extra_minutes": 15, "reason": "Accessibility accommodation"},
        ).json()["data"]
        assert added["extra_time_seconds"] == 900

        ended = api_call(
            client, "POST", f"/attempt-control/attempts/{attempt_id}/force-end",
            headers=admin_headers, json={"reason": "Invigilator decision"},
        ).json()["data"]
        assert ended["status"] == "force_submitted"

        logs = api_call(client, "GET", "/audit/", headers=admin_headers).json()["data"]
        actions = {entry["action"] for entry in logs["items"]}
        assert {"attempt.time_added", "attempt.force_submitted"} <= actions

    def test_add_time_validation(self, client: TestClient, candidate, admin, auth_headers, assigned_exam):
        attempt_id = _started_attempt(client, auth_headers(candidate), assigned_exam.id)["attempt"]["id"]
        response = client.post(
            f"/attempt-control/attempts/{attempt_id}/add-time", headers=auth_headers(admin), json={"extra_minutes": 0}
        )
        error = assert_error(response, 422, "VALIDATION_ERROR")
        assert error["details"]["validation_errors"][0]["field"] == "extra_minutes"

    def test_pause_and_resume(self, client: TestClient, candidate, admin, auth_headers, assigned_exam):
        attempt_id = _started_attempt(client, auth_headers(candidate), assigned_exam.id)["attempt"]["id"]
        admin_headers = auth_headers(admin)
        paused = api_call(
            client, "POST", f"/attempt-control/attempts/{attempt_id}/pause", headers=admin_headers, json={"reason": "Fire alarm"}
        ).json()["data"]
        assert paused["status"] == "paused"

        response = client.post(f"/attempts/{attempt_id}/resume", headers=auth_headers(candidate), json={})
        assert_error(response, 403, "FORBIDDEN")

        timer = api_call(
            client, "POST", f"/attempt-control/attempts/{attempt_id}/resume", headers=admin_headers, json={}
        ).json()["data"]
        assert timer["status"] == "in_progress"

    def test_expire_overdue_endpoint(self, client: TestClient, admin, auth_headers):
        result = api_call(client, "POST", "/attempt-control/expire-overdue", headers=auth_headers(admin)).json()["data"]
        assert result["expired_count"] == 0


class TestGradingEndpoints:
    def test_incomplete_grading_reports_missing_questions(self, client: TestClient, candidate, instructor, auth_headers, assigned_exam):
        headers = auth_headers(candidate)
        attempt_id = _started_attempt(client, headers, assigned_exam.id)["attempt"]["id"]
        api_call(client, "POST", f"/attempts/{attempt_id}/submit", headers=headers)

        grader = auth_headers(instructor)
        session = api_call(client, "GET", f"/grading/attempts/{attempt_id}", headers=grader).json()["data"]
        response = client.post(f"/grading/sessions/{session['id']}/complete", headers=grader)
        error = assert_error(response, 409, "INCOMPLETE")
        essay_id = next(q.id for q in assigned_exam.questions if not q.is_objective)
        assert error["details"]["ungraded_question_ids"] == [essay_id]

        graded = api_call(
            client, "POST", f"/grading/sessions/{session['id']}/grades", headers=grader,
            json={"question_id": essay_id, "score": 2},
        ).json()["data"]
        assert graded["status"] == "completed"
        assert graded["is_passed"] is False

    def test_nan_score_is_a_validation_error(self, client: TestClient, candidate, instructor, auth_headers, assigned_exam):
        headers = auth_headers(candidate)
        attempt_id = _started_attempt(client, headers, assigned_exam.id)["attempt"]["id"]
        api_call(client, "POST", f"/attempts/{attempt_id}/submit", headers=headers)

        grader = auth_headers(instructor)
        session = api_call(client, "GET", f"/grading/attempts/{attempt_id}", headers=grader).json()["data"]
        essay_id = next(q.id for q in assigned_exam.questions if not q.is_objective)
        response = client.post(
            f"/grading/sessions/{session['id']}/grades",
            headers={**grader, "Content-Type": "application/json"},
            content='{"question_id": %d, "score": NaN}' % essay_id,
        )
        error = assert_error(response, 422, "VALIDATION_ERROR")
        assert error["details"]["validation_errors"][0]["field"] == "score"

    def test_suggestion_endpoint_uses_configured_provider(self, client: TestClient, candidate, instructor, auth_headers, assigned_exam):
        headers = auth_headers(candidate)
        started = _started_attempt(client, headers, assigned_exam.id)
        attempt_id = started["attempt"]["id"]
        essay_id = next(q["id"] for q in started["questions"] if q["question_type"] == "essay")
        api_call(
            client, "POST", f"/attempts/{attempt_id}/answers", headers=headers,
            json={"question_id": essay_id, "text_answer": "every update compares the version column"},
        )
        api_call(client, "POST", f"/attempts/{attempt_id}/submit", headers=headers)

        grader = auth_headers(instructor)
        session = api_call(client, "GET", f"/grading/attempts/{attempt_id}", headers=grader).json()["data"]
        suggestion = api_call(
            client, "POST", f"/grading/sessions/{session['id']}/questions/{essay_id}/suggestion", headers=grader
        ).json()["data"]
        assert suggestion["provider"] == "mock"
        assert suggestion["suggested_score"] == 1.33

    def test_queue_requires_grader(self, client: TestClient, proctor, auth_headers):
        response = client.get("/grading/queue", headers=auth_headers(proctor))
        assert_error(response, 403, "FORBIDDEN")


class TestAssignmentEndpoints:
    def test_assign_and_list(self, client: TestClient, admin, candidate, auth_headers, exam):
        headers = auth_headers(admin)
        result = api_call(
            client, "POST", "/assignments/", headers=headers,
            json={"exam_id": exam.id, "candidate_ids": [candidate.id]},
        ).json()["data"]
        assert result["created"] == 1

        listed = api_call(client, "GET", f"/assignments/exams/{exam.id}", headers=headers).json()["data"]
        assert [a["candidate_id"] for a in listed] == [candidate.id]

    def test_unassign_after_attempt_conflicts(self, client: TestClient, admin, candidate, auth_headers, assigned_exam):
        _started_attempt(client, auth_headers(candidate), assigned_exam.id)
        response = client.delete(
            f"/assignments/exams/{assigned_exam.id}/candidates/{candidate.id}", headers=auth_headers(admin)
        )
        assert_error(response, 409, "CONFLICT")
