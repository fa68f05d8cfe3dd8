"""
Tests for the /api/predict endpoints
"""
import pytest

from arcana.components.contracts import Rejected
from arcana.core.errors import PersistenceError
from arcana.core.job_id import JOB_ID_PATTERN, generate_job_id
from arcana.models.prediction import PredictionStatus

QUESTION = "Will I find a new apartment soon?"


def _error(response):
    body = response.json()
    assert "timestamp" in body
    return body["error"]


@pytest.mark.parametrize(
    "payload, field, message",
    [
        ({}, "question", "Question is required"),
        ({"question": ""}, "question", "Question is required"),
        ({"question": 12345678}, "question", "Question must be a string"),
        ({"question": "Why?"}, "question", "Question must be at least 8 characters long"),
        ({"question": "x" * 181}, "question", "Question must not exceed 180 characters"),
        ({"question": "  " + QUESTION}, "question", "Question cannot be empty or whitespace only"),
        ({"question": QUESTION, "userIdentifier": 7}, "userIdentifier", "User identifier must be a string"),
        ({"question": QUESTION, "userIdentifier": None}, "userIdentifier", "User identifier must be a string"),
        ({"question": QUESTION, "userIdentifier": "   "}, "userIdentifier", "User identifier cannot be empty"),
        (["not", "an", "object"], "body", "Request body must be a valid object"),
    ],
)
def test_submit_validation_errors(client, payload, field, message):
    response = client.post("/api/predict", json=payload)

    assert response.status_code == 400
    error = _error(response)
    assert error["code"] == "VALIDATION_ERROR"
    assert {"field": field, "message": message} in error["details"]


def test_submit_malformed_json(client):
    response = client.post(
        "/api/predict",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert _error(response)["code"] == "VALIDATION_ERROR"


def test_submit_and_poll_until_completed(client, wait_for_terminal):
    response = client.post("/api/predict", json={"question": QUESTION})

    assert response.status_code == 200
    body = response.json()
    assert JOB_ID_PATTERN.match(body["jobId"])
    assert body["status"] == "PENDING"
    assert body["message"] == f"Prediction request received. Job ID: {body['jobId']}"

    status = wait_for_terminal(body["jobId"])
    assert status["status"] == "COMPLETED"
    assert status["question"] == QUESTION
    assert status["completedAt"]
    assert status["result"]["selectedCards"] == [0, 21, 35]
    assert status["result"]["analysis"]["topic"] == "career"
    reading = status["result"]["reading"]
    assert reading["header"] == "A path is opening"
    assert len(reading["cards_reading"]) == 3
    assert "error" not in status


def test_user_without_credits_is_refused(client):
    response = client.post("/api/predict", json={"question": QUESTION, "userIdentifier": "user-1"})

    assert response.status_code == 402
    error = _error(response)
    assert error["code"] == "INSUFFICIENT_CREDITS"
    assert error["details"] == {"balance": 0, "required": 1}


def test_second_submission_is_rate_limited(client, runtime, wait_for_terminal):
    client.post("/api/credits/user-1/topup", json={"amount": 2})

    first = client.post("/api/predict", json={"question": QUESTION, "userIdentifier": "user-1"})
    assert first.status_code == 200
    wait_for_terminal(first.json()["jobId"])

    second = client.post("/api/predict", json={"question": QUESTION, "userIdentifier": "user-1"})
    assert second.status_code == 429
    body = second.json()
    assert body["error"]["code"] == "TOO_MANY_REQUESTS"
    assert 1 <= body["retryAfter"] <= 120
    assert second.headers["Retry-After"] == str(body["retryAfter"])
    # only the first reading was charged
    assert runtime.ledger.get_balance("user-1") == 1


def test_database_failure_on_submit(client, runtime, monkeypatch):
    def broken_create(*args, **kwargs):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(runtime.store, "create", broken_create)
    response = client.post("/api/predict", json={"question": QUESTION})

    assert response.status_code == 500
    error = _error(response)
    assert error["code"] == "DATABASE_ERROR"
    assert error["message"] == "Failed to save prediction request"


def test_scheduling_failure_marks_job_failed(client, runtime, monkeypatch):
    runtime.ledger.top_up("user-1", 1)

    def broken_submit(key, factory):
        raise RuntimeError("event loop closed")

    monkeypatch.setattr(runtime.runner, "submit", broken_submit)
    response = client.post("/api/predict", json={"question": QUESTION, "userIdentifier": "user-1"})

    assert response.status_code == 500
    error = _error(response)
    assert error["code"] == "WORKFLOW_ERROR"
    assert error["message"] == "Failed to start AI workflow"

    prediction = runtime.store.latest_for_user("user-1")
    assert prediction.status == PredictionStatus.FAILED
    assert prediction.failure_code == "SCHEDULING_FAILED"


def test_unexpected_failure_is_internal_error(client, runtime, monkeypatch):
    def broken_check(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(runtime.rate_limiter, "check", broken_check)
    response = client.post("/api/predict", json={"question": QUESTION, "userIdentifier": "user-1"})

    assert response.status_code == 500
    error = _error(response)
    assert error["code"] == "INTERNAL_ERROR"
    assert error["message"] == "Failed to process prediction request"


def test_status_invalid_job_id(client):
    response = client.get("/api/predict/not-a-job-id")
    assert response.status_code == 400
    assert _error(response)["code"] == "INVALID_JOB_ID"


def test_status_unknown_job(client):
    response = client.get(f"/api/predict/{generate_job_id()}")
    assert response.status_code == 404
    assert _error(response)["code"] == "PREDICTION_NOT_FOUND"


def test_status_pending_has_no_result(client, runtime):
    job_id = generate_job_id()
    runtime.store.create(job_id, QUESTION)

    body = client.get(f"/api/predict/{job_id}").json()
    assert body["status"] == "PENDING"
    assert "result" not in body
    assert "error" not in body
    assert "completedAt" not in body


def test_status_processing_shows_partial_result(client, runtime):
    job_id = generate_job_id()
    runtime.store.create(job_id, QUESTION)
    runtime.store.mark_processing(job_id)
    runtime.store.checkpoint_analysis(job_id, {"mood": "calm", "topic": "home"})

    body = client.get(f"/api/predict/{job_id}").json()
    assert body["status"] == "PROCESSING"
    assert body["result"]["analysis"] == {"mood": "calm", "topic": "home"}
    assert body["result"]["selectedCards"] is None
    assert "reading" not in body["result"]


def test_status_of_rejected_question(client, runtime, make_stages, wait_for_terminal):
    runtime.workflow.stages = make_stages(policy=[Rejected("Not something the cards can answer")])

    job_id = client.post("/api/predict", json={"question": QUESTION}).json()["jobId"]
    status = wait_for_terminal(job_id)

    assert status["status"] == "FAILED"
    assert status["error"]["code"] == "PREDICTION_FAILED"
    assert "result" not in status
    assert status["completedAt"]
