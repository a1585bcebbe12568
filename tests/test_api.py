import uuid
from datetime import timedelta

from conftest import ADMIN, as_user


def _create(client, clock, **overrides):
    payload = {
        "title": "Chandas of Gita 12",
        "description": "Identify the meter of each verse in chapter twelve.",
        "type": "chandas_analysis",
        "start_date": (clock.now() + timedelta(minutes=1)).isoformat(),
        "end_date": (clock.now() + timedelta(days=5)).isoformat(),
    }
    payload.update(overrides)
    return client.post("/admin/challenges", json=payload, headers=ADMIN)


def _active(client, clock, **overrides):
    resp = _create(client, clock, **overrides)
    assert resp.status_code == 201, resp.text
    challenge_id = resp.json()["id"]
    clock.advance(minutes=2)
    resp = client.post(f"/admin/challenges/{challenge_id}/activate", headers=ADMIN)
    assert resp.status_code == 200, resp.text
    return challenge_id


def test_missing_identity_is_401(client):
    assert client.get("/challenges").status_code == 401


def test_student_cannot_use_admin_routes(client, clock):
    resp = client.post("/admin/challenges", json={}, headers=as_user("u-alice"))
    assert resp.status_code == 403


def test_create_in_past_is_400(client, clock):
    resp = _create(client, clock, start_date=(clock.now() - timedelta(days=1)).isoformat())
    assert resp.status_code == 400
    assert resp.json()["error_code"] == "invalid_date_range"


def test_early_activation_is_409(client, clock):
    challenge_id = _create(client, clock).json()["id"]
    resp = client.post(f"/admin/challenges/{challenge_id}/activate", headers=ADMIN)
    assert resp.status_code == 409
    assert resp.json()["error_code"] == "early_activation"


def test_unknown_challenge_is_404(client):
    resp = client.get(f"/challenges/{uuid.uuid4()}", headers=as_user("u-alice"))
    assert resp.status_code == 404
    body = resp.json()
    assert body["error_code"] == "challenge_not_found"
    assert body["kind"] == "not_found"


def test_join_twice_is_409(client, clock):
    challenge_id = _active(client, clock)
    first = client.post(f"/challenges/{challenge_id}/join", headers=as_user("u-alice"))
    assert first.status_code == 201
    assert first.json()["status"] == "registered"
    second = client.post(f"/challenges/{challenge_id}/join", headers=as_user("u-alice"))
    assert second.status_code == 409
    assert second.json()["error_code"] == "already_registered"


def test_locked_rules_are_423(client, clock):
    challenge_id = _active(client, clock)
    client.post(f"/challenges/{challenge_id}/join", headers=as_user("u-alice"))

    resp = client.put(f"/admin/challenges/{challenge_id}", json={"requirements": {"time_limit": 20}}, headers=ADMIN)
    assert resp.status_code == 423
    assert resp.json()["error_code"] == "requirements_locked"

    resp = client.delete(f"/admin/challenges/{challenge_id}", headers=ADMIN)
    assert resp.status_code == 423
    assert resp.json()["error_code"] == "participants_exist"


def test_full_attempt_flow(client, clock):
    challenge_id = _active(client, clock, requirements={"time_limit": 30})
    user = as_user("u-alice")
    client.post(f"/challenges/{challenge_id}/join", headers=user)
    assert client.post(f"/challenges/{challenge_id}/start", headers=user).status_code == 200

    for index in range(10):
        resp = client.post(
            f"/challenges/{challenge_id}/submit",
            json={"question_id": f"q{index}", "answer": "anushtubh", "is_correct": index < 8, "time_spent": 30, "total_questions": 10},
            headers=user,
        )
        assert resp.status_code == 200
    assert resp.json()["current_attempt"]["progress"] == 100.0

    clock.advance(minutes=20)
    resp = client.post(f"/challenges/{challenge_id}/complete", headers=user)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["participant"]["score"] == 83
    assert body["rank"] == 1

    again = client.post(f"/challenges/{challenge_id}/complete", headers=user)
    assert again.json()["already_completed"] is True

    board = client.get(f"/challenges/{challenge_id}/leaderboard", headers=user).json()
    assert board["viewer_rank"] == 1
    assert board["entries"][0]["user"]["display_name"] == "Alice Sharma"

    mine = client.get("/challenges/me", headers=user)
    assert mine.status_code == 200
    assert mine.json()["items"][0]["rank"] == 1

    detail = client.get(f"/admin/challenges/{challenge_id}", headers=ADMIN).json()
    assert detail["participant_stats"]["completed"] == 1
    assert detail["challenge"]["stats"]["completed_participants"] == 1

    analytics = client.get(f"/admin/challenges/{challenge_id}/analytics", headers=ADMIN)
    assert analytics.status_code == 200
    assert analytics.json()["overview"]["completed_participants"] == 1


def test_complete_without_start_is_409(client, clock):
    challenge_id = _active(client, clock)
    client.post(f"/challenges/{challenge_id}/join", headers=as_user("u-alice"))
    resp = client.post(f"/challenges/{challenge_id}/complete", headers=as_user("u-alice"))
    assert resp.status_code == 409
    assert resp.json()["error_code"] == "no_active_attempt"


def test_certificate_endpoints(client, clock):
    challenge_id = _active(client, clock)
    user = as_user("u-alice")
    participant_id = client.post(f"/challenges/{challenge_id}/join", headers=user).json()["id"]
    client.post(f"/challenges/{challenge_id}/start", headers=user)
    client.post(f"/challenges/{challenge_id}/complete", json={"final_score": 77}, headers=user)

    issued = client.post(f"/admin/challenges/{challenge_id}/participants/{participant_id}/certificate", headers=ADMIN)
    assert issued.status_code == 201, issued.text
    cert = issued.json()["certificate"]

    duplicate = client.post(f"/admin/challenges/{challenge_id}/participants/{participant_id}/certificate", headers=ADMIN)
    assert duplicate.status_code == 409
    assert duplicate.json()["error_code"] == "certificate_exists"

    verified = client.get(f"/certificates/verify/{cert['verification_code']}")
    assert verified.status_code == 200
    assert verified.json()["integrity_verified"] is True

    assert client.get(f"/certificates/{cert['certificate_id']}/download", headers=as_user("u-bob")).status_code == 403
    download = client.get(f"/certificates/{cert['certificate_id']}/download", headers=user)
    assert download.status_code == 200
    assert download.json()["file_name"].endswith(".pdf")

    assert client.get("/certificates/me", headers=user).json()["pagination"]["total"] == 1

    revoked = client.post(f"/admin/certificates/{cert['certificate_id']}/revoke", json={"reason": "test"}, headers=ADMIN)
    assert revoked.json()["status"] == "revoked"
    assert client.get(f"/certificates/verify/{cert['verification_code']}").status_code == 404


def test_request_id_echoed(client):
    resp = client.get("/healthz", headers={"X-Request-Id": "req-123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-Id"] == "req-123"
    assert resp.json()["components"]["database"]["status"] == "ok"
