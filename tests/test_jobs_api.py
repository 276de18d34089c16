"""End-to-end API tests against the in-memory stores."""

from app.core.security import create_session_token

ADMIN_PHONE = "+10000000000"

JOB = {
    "title": "Paint the fence",
    "category": "Painting",
    "description": "20m wooden fence",
    "payment_amount": 500,
    "location": {"latitude": 19.07, "longitude": 72.87, "address": "Bandra, Mumbai"},
}


def login(client, phone, name=""):
    r = client.post("/v1/auth/dev-login", json={"phone_number": phone, "name": name})
    assert r.status_code == 200
    body = r.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]


def become_worker(client, headers):
    r = client.post("/v1/users/role", json={"role": "WORKER"}, headers=headers)
    assert r.status_code == 200


def test_dev_login_creates_user_with_welcome_credits(client):
    r = client.post("/v1/auth/dev-login", json={"phone_number": "+91 98765 43210", "name": "Asha"})
    assert r.status_code == 200
    body = r.json()
    assert body["created"] is True
    assert body["user"]["phone_number"] == "+919876543210"
    assert body["user"]["credits"] == 100
    assert body["user"]["credit_score"] == 100

    again = client.post("/v1/auth/dev-login", json={"phone_number": "+919876543210"}).json()
    assert again["created"] is False
    assert again["user"]["id"] == body["user"]["id"]

    # Cookie set by dev-login authenticates as well
    me = client.get("/v1/auth/me")
    assert me.status_code == 200
    assert me.json()["name"] == "Asha"


def test_unauthenticated_requests_are_rejected(client):
    r = client.get("/v1/jobs", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"


def test_logout_all_invalidates_tokens(client):
    headers, _ = login(client, "+919000000001")
    assert client.post("/v1/auth/logout-all", headers=headers).status_code == 200
    r = client.get("/v1/auth/me", headers=headers)
    assert r.status_code == 401


def test_forged_session_version_rejected(client):
    headers, user = login(client, "+919000000002")
    forged = create_session_token({"user_id": user["id"], "session_version": 7})
    r = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert r.status_code == 401


def test_full_job_flow_over_http(client):
    poster_h, poster = login(client, "+919100000001", "Poster")
    worker_h, worker = login(client, "+919100000002", "Worker")
    become_worker(client, worker_h)

    r = client.post("/v1/jobs", json=JOB, headers=poster_h)
    assert r.status_code == 201
    job = r.json()
    assert job["platform_fee"] == 50
    assert job["worker_payment"] == 450
    assert client.get("/v1/credits/balance", headers=poster_h).json() == {"balance": 110}

    listed = client.get("/v1/jobs", headers=worker_h).json()
    assert [j["id"] for j in listed["items"]] == [job["id"]]

    r = client.post(f"/v1/jobs/{job['id']}/apply", headers=worker_h)
    assert r.status_code == 201
    assert r.json()["job"]["status"] == "APPLIED"

    r = client.post(f"/v1/jobs/{job['id']}/apply", headers=worker_h)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "DUPLICATE_APPLICATION"

    mine = client.get("/v1/jobs/mine", headers=poster_h).json()
    assert mine["items"][0]["applicant_count"] == 1

    r = client.post(f"/v1/jobs/{job['id']}/select", json={"worker_id": worker["id"]}, headers=poster_h)
    assert r.status_code == 200
    assert r.json()["status"] == "SELECTED"

    assert client.post(f"/v1/jobs/{job['id']}/start", headers=worker_h).json()["status"] == "IN_PROGRESS"
    r = client.post(
        f"/v1/jobs/{job['id']}/complete",
        json={"images": ["fence.jpg"], "description": "Two coats"},
        headers=worker_h,
    )
    assert r.json()["job"]["status"] == "PENDING_VERIFICATION"

    r = client.post(f"/v1/jobs/{job['id']}/verify", json={"verified": True, "rating": 5}, headers=poster_h)
    assert r.status_code == 200
    assert r.json()["status"] == "COMPLETED"

    assert client.get("/v1/credits/balance", headers=worker_h).json() == {"balance": 550}
    ledger = client.get("/v1/credits/ledger", headers=worker_h).json()
    assert ledger["items"][0]["type"] == "JOB_COMPLETION"
    assert ledger["items"][0]["balance"] == 550
    assert client.get("/v1/credits/audit", headers=worker_h).json()["consistent"] is True

    profile = client.get(f"/v1/users/workers/{worker['id']}/profile", headers=poster_h).json()
    assert profile["total_jobs_completed"] == 1
    assert profile["total_earnings"] == 450

    notes = client.get("/v1/notifications", headers=worker_h).json()
    assert {"selected", "completed"} <= {n["type"] for n in notes["items"]}

    history = client.get(f"/v1/jobs/{job['id']}/history", headers=poster_h).json()["events"]
    transitions = [e["metadata"]["to"] for e in history if e["event_type"] == "job_transition"]
    assert transitions == ["APPLIED", "SELECTED", "IN_PROGRESS", "PENDING_VERIFICATION", "COMPLETED"]


def test_wrong_state_returns_conflict(client):
    poster_h, _ = login(client, "+919200000001")
    job = client.post("/v1/jobs", json=JOB, headers=poster_h).json()
    r = client.post(f"/v1/jobs/{job['id']}/verify", json={"verified": True}, headers=poster_h)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "NO_COMPLETION_SUBMITTED"


def test_worker_cannot_post(client):
    worker_h, _ = login(client, "+919300000001")
    become_worker(client, worker_h)
    r = client.post("/v1/jobs", json=JOB, headers=worker_h)
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "PERMISSION_DENIED"


def test_invalid_payment_is_validation_or_bad_request(client):
    poster_h, _ = login(client, "+919400000001")
    r = client.post("/v1/jobs", json={**JOB, "payment_amount": 0}, headers=poster_h)
    assert r.status_code == 400
    r = client.post("/v1/jobs", json={**JOB, "title": ""}, headers=poster_h)
    assert r.status_code == 422


def test_top_up_is_idempotent(client):
    headers, _ = login(client, "+919500000001")
    first = client.post("/v1/credits/top-up", json={"amount": 50}, headers={**headers, "Idempotency-Key": "abc"})
    second = client.post("/v1/credits/top-up", json={"amount": 50}, headers={**headers, "Idempotency-Key": "abc"})
    assert first.json()["entry"]["id"] == second.json()["entry"]["id"]
    assert client.get("/v1/credits/balance", headers=headers).json() == {"balance": 150}


def test_trust_endpoints(client):
    worker_h, worker = login(client, "+919600000001")
    status = client.get("/v1/trust/status", headers=worker_h).json()
    assert status["score"] == 100
    assert status["access_level"] == "PREMIUM"

    levels = client.get("/v1/trust/levels").json()["levels"]
    assert [lvl["level"] for lvl in levels] == ["PREMIUM", "TRUSTED", "STANDARD", "RESTRICTED", "SUSPENDED"]
    assert levels[-1]["actions"] == []

    allowed = client.get("/v1/trust/permission/apply_for_jobs", headers=worker_h).json()
    assert allowed["allowed"] is True


def test_trust_status_of_unknown_account_is_not_found(client):
    admin_h, _ = login(client, ADMIN_PHONE)
    viewer_h, _ = login(client, "+919600000002")
    _, worker = login(client, "+919600000003")

    r = client.get("/v1/trust/status/not-a-real-user", headers=viewer_h)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"

    r = client.post(
        "/v1/admin/violations",
        json={"worker_id": "not-a-real-user", "violation_type": "NO_SHOW"},
        headers=admin_h,
    )
    assert r.status_code == 404

    assert client.get(f"/v1/trust/status/{worker['id']}", headers=viewer_h).json()["score"] == 100
    board = client.get("/v1/trust/leaderboard?limit=100", headers=viewer_h).json()["items"]
    assert "not-a-real-user" not in {row["worker_id"] for row in board}
    attention = client.get("/v1/admin/workers/attention?threshold=100", headers=admin_h).json()["items"]
    assert "not-a-real-user" not in {s["worker_id"] for s in attention}


def test_second_worker_cannot_apply_over_http(client):
    poster_h, _ = login(client, "+919600000004")
    first_h, _ = login(client, "+919600000005")
    second_h, _ = login(client, "+919600000006")
    become_worker(client, first_h)
    become_worker(client, second_h)
    job = client.post("/v1/jobs", json=JOB, headers=poster_h).json()

    assert client.post(f"/v1/jobs/{job['id']}/apply", headers=first_h).status_code == 201
    r = client.post(f"/v1/jobs/{job['id']}/apply", headers=second_h)
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "Job not available"


def test_admin_endpoints_require_admin(client):
    user_h, user = login(client, "+919700000001")
    r = client.post(
        "/v1/admin/violations",
        json={"worker_id": user["id"], "violation_type": "NO_SHOW"},
        headers=user_h,
    )
    assert r.status_code == 403


def test_admin_violation_and_attention(client):
    admin_h, _ = login(client, ADMIN_PHONE)
    worker_h, worker = login(client, "+919800000001")
    become_worker(client, worker_h)

    for _ in range(2):
        r = client.post(
            "/v1/admin/violations",
            json={"worker_id": worker["id"], "violation_type": "MISCONDUCT", "description": "Rude"},
            headers=admin_h,
        )
        assert r.status_code == 200
    assert r.json()["score"] == 40
    assert r.json()["is_temporarily_suspended"] is True

    attention = client.get("/v1/admin/workers/attention", headers=admin_h).json()["items"]
    assert [s["worker_id"] for s in attention] == [worker["id"]]

    denied = client.get("/v1/trust/permission/apply_for_jobs", headers=worker_h).json()
    assert denied["allowed"] is False
    assert denied["reason"].startswith("Temporarily suspended")

    r = client.post(
        "/v1/admin/violations",
        json={"worker_id": worker["id"], "violation_type": "TARDINESS"},
        headers=admin_h,
    )
    assert r.status_code == 422


def test_banned_user_is_locked_out(client):
    admin_h, _ = login(client, ADMIN_PHONE)
    worker_h, worker = login(client, "+919900000001")
    for _ in range(4):
        client.post(
            "/v1/admin/violations",
            json={"worker_id": worker["id"], "violation_type": "NO_SHOW"},
            headers=admin_h,
        )
    r = client.get("/v1/auth/me", headers=worker_h)
    assert r.status_code == 403
    assert r.json()["error"]["message"] == "Account deactivated"


def test_notifications_read_flow(client):
    poster_h, _ = login(client, "+919110000001")
    worker_h, _ = login(client, "+919110000002")
    become_worker(client, worker_h)
    job = client.post("/v1/jobs", json=JOB, headers=poster_h).json()
    client.post(f"/v1/jobs/{job['id']}/apply", headers=worker_h)

    notes = client.get("/v1/notifications", headers=poster_h).json()
    assert notes["unread"] == 1
    note_id = notes["items"][0]["id"]
    assert client.post(f"/v1/notifications/{note_id}/read", headers=poster_h).status_code == 200
    assert client.get("/v1/notifications", headers=poster_h).json()["unread"] == 0
    assert client.post("/v1/notifications/missing/read", headers=poster_h).status_code == 404
