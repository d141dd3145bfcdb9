"""
Tests for the HTTP surface: status codes, payloads and error mapping.
"""

import pytest
from sqlalchemy.exc import OperationalError

from conftest import option_id


@pytest.fixture
def started(client, make_test, alice):
    test, q1, q2 = make_test()
    response = client.post("/api/attempts", json={"test_id": test.id}, headers=alice)
    assert response.status_code == 201
    return test, q1, q2, response.json()["attempt"]


class TestStartAttemptEndpoint:
    def test_start_returns_new_attempt(self, started):
        test, q1, q2, attempt = started
        assert attempt["status"] == "active"
        assert attempt["total_questions"] == 2
        assert attempt["total_unanswered"] == 2
        assert attempt["max_score"] == 8
        assert attempt["passed"] is None
        assert attempt["is_expired"] is False
        assert [a["question_id"] for a in attempt["answers"]] == [q1.id, q2.id]

    def test_duplicate_start_returns_409_with_existing_attempt(self, client, started, alice):
        test, _, _, attempt = started
        response = client.post("/api/attempts", json={"test_id": test.id}, headers=alice)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "CONFLICT"
        assert body["attempt"]["id"] == attempt["id"]

    def test_start_after_deadline_auto_submits(self, client, started, alice, clock):
        test, _, _, attempt = started
        clock.advance(minutes=31)

        response = client.post("/api/attempts", json={"test_id": test.id}, headers=alice)

        assert response.status_code == 200
        body = response.json()
        assert body["auto_submitted"] is True
        assert body["attempt"]["id"] == attempt["id"]
        assert body["attempt"]["status"] == "finalized"

    def test_start_marks_test_history(self, client, started):
        test, _, _, _ = started
        assert client.get("/api/tests/{}".format(test.id)).json()["has_history"] is True

    def test_missing_identity_is_401(self, client, make_test):
        test, _, _ = make_test()
        response = client.post("/api/attempts", json={"test_id": test.id})
        assert response.status_code == 401

    def test_unknown_test_is_404(self, client, alice):
        response = client.post("/api/attempts",
                               json={"test_id": "6f1c4f4e-2d7a-4a53-8a55-7d9f6a9d2b10"},
                               headers=alice)
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_malformed_test_id_is_400_naming_field(self, client, alice):
        response = client.post("/api/attempts", json={"test_id": "abc"}, headers=alice)
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "test_id"


class TestAnswerAndSubmitEndpoints:
    def test_answer_then_submit(self, client, started, alice, clock):
        _, q1, q2, attempt = started
        url = "/api/attempts/{}".format(attempt["id"])

        response = client.put(url + "/answers", headers=alice,
                              json={"question_id": q1.id, "selected_option": option_id(q1, 2)})
        assert response.status_code == 200
        assert response.json()["attempt"]["total_answered"] == 1

        client.put(url + "/answers", headers=alice,
                   json={"question_id": q2.id, "selected_option": option_id(q2, 1)})
        clock.advance(minutes=4)

        response = client.put(url + "/submit", headers=alice)
        assert response.status_code == 200
        result = response.json()["attempt"]
        assert result["status"] == "finalized"
        assert result["total_score"] == 3
        assert result["percentage"] == 37.5
        assert result["passed"] is False

        again = client.put(url + "/submit", headers=alice)
        assert again.status_code == 409

    def test_answer_after_deadline_returns_finalized_attempt(self, client, started, alice, clock):
        _, q1, _, attempt = started
        clock.advance(minutes=45)

        response = client.put("/api/attempts/{}/answers".format(attempt["id"]), headers=alice,
                              json={"question_id": q1.id, "selected_option": option_id(q1, 2)})

        assert response.status_code == 200
        body = response.json()
        assert body["auto_submitted"] is True
        assert body["attempt"]["total_answered"] == 0
        assert body["attempt"]["total_score"] == 0

    def test_non_owner_gets_403(self, client, started, bob):
        _, q1, _, attempt = started
        response = client.put("/api/attempts/{}/answers".format(attempt["id"]), headers=bob,
                              json={"question_id": q1.id, "selected_option": option_id(q1, 2)})
        assert response.status_code == 403

    def test_foreign_option_is_400(self, client, started, alice):
        _, q1, q2, attempt = started
        response = client.put("/api/attempts/{}/answers".format(attempt["id"]), headers=alice,
                              json={"question_id": q1.id, "selected_option": option_id(q2, 2)})
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "selected_option"

    def test_missing_body_field_is_422(self, client, started, alice):
        _, _, _, attempt = started
        response = client.put("/api/attempts/{}/answers".format(attempt["id"]), headers=alice, json={})
        assert response.status_code == 422


class TestListAttemptsEndpoint:
    def test_lists_callers_attempts_with_expiry_flag(self, client, started, alice, bob, clock):
        test, _, _, attempt = started
        clock.advance(minutes=31)

        response = client.get("/api/attempts", params={"test_id": test.id}, headers=alice)
        assert response.status_code == 200
        [listed] = response.json()["data"]
        assert listed["id"] == attempt["id"]
        assert listed["status"] == "active"
        assert listed["is_expired"] is True

        other = client.get("/api/attempts", params={"test_id": test.id}, headers=bob)
        assert other.json()["data"] == []

    def test_storage_failure_is_opaque_500(self, client, started, alice, monkeypatch):
        from testseries.services.lifecycle import AttemptLifecycleManager

        def broken(self, test_id, caller):
            raise OperationalError("SELECT secret_table", {}, Exception("disk I/O error"))

        monkeypatch.setattr(AttemptLifecycleManager, "list_attempts", broken)
        test, _, _, _ = started

        response = client.get("/api/attempts", params={"test_id": test.id}, headers=alice)
        assert response.status_code == 500
        assert response.json()["error"] == "INTERNAL_ERROR"
        assert "secret_table" not in response.text


    def test_wrapped_storage_failure_on_answer_is_opaque_500(self, client, started, alice, monkeypatch):
        from testseries.repositories import AttemptStore

        def broken(self, attempt_id):
            raise OperationalError("SELECT secret_table", {}, Exception("disk I/O error"))

        monkeypatch.setattr(AttemptStore, "get", broken)
        _, q1, _, attempt = started

        response = client.put("/api/attempts/{}/answers".format(attempt["id"]), headers=alice,
                              json={"question_id": q1.id, "selected_option": option_id(q1, 2)})
        assert response.status_code == 500
        assert response.json() == {
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": {},
        }

class TestAuthoringEndpoints:
    def test_create_test_derives_max_score(self, client):
        options = [{"key": 1, "content": "a"}, {"key": 2, "content": "b"}]
        ids = [
            client.post("/api/questions", json={"content": "q{}".format(i), "options": options,
                                                "correct_answer": 1}).json()["id"]
            for i in range(3)
        ]
        response = client.post("/api/tests", json={
            "test_name": "Mock 1", "timing": 20, "positive_scoring": 2,
            "negative_scoring": 0.5, "cut_off": 40, "question_ids": ids,
        })
        assert response.status_code == 201
        body = response.json()
        assert body["total_questions"] == 3
        assert body["max_score"] == 6
        assert body["has_history"] is False
        assert body["question_ids"] == ids

    def test_cut_off_out_of_range_is_400(self, client):
        response = client.post("/api/tests", json={
            "test_name": "Mock 1", "timing": 20, "positive_scoring": 2, "cut_off": 120,
        })
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "cut_off"

    def test_correct_answer_must_be_an_option_key(self, client):
        response = client.post("/api/questions", json={
            "content": "q", "correct_answer": 3,
            "options": [{"key": 1, "content": "a"}, {"key": 2, "content": "b"}],
        })
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "correct_answer"
