from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from appraisal.infrastructure.exceptions import (
    AppraisalError,
    AuthenticationError,
    ConflictError,
    DatabaseError,
    IncompleteScoresError,
    InvalidStateError,
    NotFoundError,
)
from appraisal.web.main import create_application, status_for


def build_client(SessionLocal, emitter=None) -> TestClient:
    app = create_application()
    app.state.session_factory = SessionLocal
    if emitter is not None:
        app.state.notification_emitter = emitter
    return TestClient(app)


@pytest.fixture
def client(SessionLocal, questions, emitter) -> TestClient:
    return build_client(SessionLocal, emitter)


def as_actor(emp_code: str) -> dict[str, str]:
    return {"X-Actor": emp_code}


def create(client: TestClient, employee_id: str | None = "E1") -> int:
    response = client.post(
        "/api/assessments",
        json={"title": "FY26 review", "target_level": "Staff", "employee_id": employee_id},
    )
    assert response.status_code == 201
    return response.json()["assessment_id"]


def submit(client: TestClient, questions: dict[str, int], aid: int):
    return client.post(
        f"/api/assessments/{aid}/submit",
        headers=as_actor("E1"),
        json={
            "responses": [
                {"question_id": questions["delivery"], "score": 4, "comment": "Shipped on time"},
                {"question_id": questions["teamwork"], "score": 5},
            ]
        },
    )


def appr1_scores(questions: dict[str, int]) -> list[dict[str, object]]:
    return [
        {"question_id": questions["delivery"], "score": 4.5},
        {"question_id": questions["teamwork"], "score": 4.0},
    ]


def test_healthcheck(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_status_mapping():
    assert status_for(AuthenticationError()) == 401
    assert status_for(IncompleteScoresError("self", [1])) == 422
    assert status_for(InvalidStateError("COMPLETED", "submit")) == 403
    assert status_for(NotFoundError("Assessment", 1)) == 404
    assert status_for(ConflictError("stale")) == 409
    assert status_for(DatabaseError("down", "commit")) == 500
    assert status_for(AppraisalError("boom")) == 500


def test_full_approval_over_http(client, questions, emitter):
    aid = create(client)

    submitted = submit(client, questions, aid)
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "SUBMITTED_APPR1"
    assert submitted.json()["events"] == [
        {"target_emp_code": "X1", "kind": "ApprovalRequired", "assessment_id": aid}
    ]

    approved = client.post(
        f"/api/assessments/{aid}/approve",
        headers=as_actor("X1"),
        json={"role": "appr1", "responses": appr1_scores(questions), "expected_version": 2},
    )
    assert approved.status_code == 200
    assert approved.json()["current_stage"] == "M1"

    for actor, role in (("M1", "mgr"), ("G1", "gm")):
        response = client.post(
            f"/api/assessments/{aid}/approve", headers=as_actor(actor), json={"role": role}
        )
        assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"

    result = client.get(f"/api/assessments/{aid}/result").json()
    assert result["result"]["rank"] == "B"
    assert result["result"]["net_score"] == pytest.approx(3.8)

    view = client.get(f"/api/assessments/{aid}").json()
    assert view["status"] == "COMPLETED"
    assert view["workflow_state"] == {"stage": "done", "phase": "approved"}
    assert [entry["status"] for entry in view["audit"]] == [
        "APPROVED",
        None,
        None,
        "APPROVED",
        "APPROVED",
    ]

    table = client.get(f"/api/assessments/{aid}/responses").json()
    assert [row["QuestionID"] for row in table] == [questions["delivery"], questions["teamwork"]]
    assert table[0]["Comment_self"] == "Shipped on time"
    assert table[0]["Score_appr1"] == pytest.approx(4.5)
    assert table[0]["Score_mgr"] is None

    assert len(emitter.sent) == 4


def test_actor_header_is_required(client, questions):
    aid = create(client)
    response = client.post(f"/api/assessments/{aid}/submit", json={"responses": []})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"


def test_error_envelope_for_domain_failures(client, questions):
    aid = create(client)

    incomplete = client.post(
        f"/api/assessments/{aid}/submit",
        headers=as_actor("E1"),
        json={"responses": [{"question_id": questions["delivery"], "score": 4}]},
    )
    assert incomplete.status_code == 422
    assert incomplete.json()["error"]["code"] == "SCORES_INCOMPLETE"

    assert submit(client, questions, aid).status_code == 200

    wrong_actor = client.post(
        f"/api/assessments/{aid}/approve",
        headers=as_actor("M1"),
        json={"role": "appr1", "responses": appr1_scores(questions)},
    )
    assert wrong_actor.status_code == 403
    assert wrong_actor.json()["error"]["code"] == "NOT_AUTHORIZED"

    stale = client.post(
        f"/api/assessments/{aid}/approve",
        headers=as_actor("X1"),
        json={"role": "appr1", "responses": appr1_scores(questions), "expected_version": 1},
    )
    assert stale.status_code == 409
    assert stale.json()["error"]["code"] == "STALE_STATE"

    missing = client.get("/api/assessments/999")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


def test_request_body_errors_use_envelope(client, questions):
    response = client.post("/api/assessments", json={"target_level": "Staff"})
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_FAILED"
    assert any(item["field"].endswith("title") for item in error["details"]["errors"])


def test_reject_and_resave(client, questions):
    aid = create(client)
    submit(client, questions, aid)

    rejected = client.post(
        f"/api/assessments/{aid}/reject",
        headers=as_actor("X1"),
        json={"role": "appr1", "reason": "More detail please"},
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "REJECTED"
    assert rejected.json()["current_stage"] == "E1"

    saved = client.put(
        f"/api/assessments/{aid}/responses",
        headers=as_actor("E1"),
        json={"role": "self", "responses": [{"question_id": questions["delivery"], "score": 5}]},
    )
    assert saved.status_code == 200
    assert saved.json()["status"] == "IN_PROGRESS"

    view = client.get(f"/api/assessments/{aid}").json()
    assert view["rejection"] == {"stage": "appr1", "reason": "More detail please"}

    late_approval = client.post(
        f"/api/assessments/{aid}/approve",
        headers=as_actor("X1"),
        json={"role": "appr1", "responses": appr1_scores(questions)},
    )
    assert late_approval.status_code == 409
    assert late_approval.json()["error"]["code"] == "STALE_STATE"


def test_template_assign_and_delete(client, questions):
    template = create(client, employee_id=None)
    assigned = client.post(f"/api/assessments/{template}/assign", json={"employee_id": "E3"})
    assert assigned.status_code == 200
    assert assigned.json()["current_stage"] == "E3"

    assert client.delete(f"/api/assessments/{template}").status_code == 204
    assert client.get(f"/api/assessments/{template}").status_code == 404


def test_awaiting_list(client, questions):
    aid = create(client)
    submit(client, questions, aid)
    awaiting = client.get("/api/employees/X1/awaiting").json()
    assert [item["id"] for item in awaiting] == [aid]


def test_notification_inbox_routes(SessionLocal, questions):
    client = build_client(SessionLocal)
    aid = create(client)
    assert submit(client, questions, aid).json()["undelivered"] == []

    inbox = client.get("/api/employees/X1/notifications").json()
    assert inbox["unread_count"] == 1
    (item,) = inbox["items"]
    assert item["assessment_id"] == aid

    foreign = client.post(f"/api/notifications/{item['id']}/read", headers=as_actor("M1"))
    assert foreign.status_code == 404

    read = client.post(f"/api/notifications/{item['id']}/read", headers=as_actor("X1"))
    assert read.status_code == 200
    assert read.json()["is_read"] is True

    assert client.get("/api/employees/X1/notifications").json()["unread_count"] == 0

    forbidden = client.delete("/api/employees/X1/notifications/read", headers=as_actor("M1"))
    assert forbidden.status_code == 403

    deleted = client.delete("/api/employees/X1/notifications/read", headers=as_actor("X1"))
    assert deleted.json() == {"deleted": 1}

    marked = client.post("/api/employees/X1/notifications/read-all", headers=as_actor("X1"))
    assert marked.json() == {"updated": 0}


def test_delete_single_notification(SessionLocal, questions):
    client = build_client(SessionLocal)
    aid = create(client)
    submit(client, questions, aid)
    (item,) = client.get("/api/employees/X1/notifications").json()["items"]

    foreign = client.delete(f"/api/notifications/{item['id']}", headers=as_actor("M1"))
    assert foreign.status_code == 404
    assert foreign.json()["error"]["code"] == "NOT_FOUND"

    deleted = client.delete(f"/api/notifications/{item['id']}", headers=as_actor("X1"))
    assert deleted.status_code == 204
    inbox = client.get("/api/employees/X1/notifications", params={"unread_only": False}).json()
    assert inbox["items"] == []

    again = client.delete(f"/api/notifications/{item['id']}", headers=as_actor("X1"))
    assert again.status_code == 404


def test_view_includes_progress(client, questions):
    aid = create(client)
    submit(client, questions, aid)
    progress = client.get(f"/api/assessments/{aid}").json()["progress"]
    assert progress["self"]["completion_rate"] == 100.0
    assert progress["appr1"]["pending"] == 2
