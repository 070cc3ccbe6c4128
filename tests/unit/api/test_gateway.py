"""
Tests for the TrustGate HTTP gateway.

These tests verify:
1. Session endpoints create, read and revoke sessions
2. Errors map onto HTTP status codes with a standard body
3. Side-effect free endpoints do not persist anything
"""

import json

import pytest
from fastapi.testclient import TestClient

from trustgate.api.gateway import ServiceManager, app
from trustgate.api.service import SessionTrustService
from trustgate.common.config import Config
from trustgate.context.geolocation import StaticResolver
from trustgate.notifications.sink import CollectingSink

from fixtures.sessions import BERLIN, CHROME_WINDOWS_UA, NEW_YORK, SAFARI_IPHONE_UA, TOKYO


@pytest.fixture
def service():
    service = SessionTrustService(
        config=Config(),
        resolver=StaticResolver({
            NEW_YORK.ip_address: NEW_YORK,
            TOKYO.ip_address: TOKYO,
            BERLIN.ip_address: BERLIN,
        }),
        sinks=[CollectingSink()],
    )
    ServiceManager.set_service(service)
    yield service
    ServiceManager.shutdown()


@pytest.fixture
def client(service):
    """Test client without lifespan so the pre-built service is used."""
    return TestClient(app)


def _create(client, ip_address=NEW_YORK.ip_address, user_agent=CHROME_WINDOWS_UA, **extra):
    body = {"user_id": "user_1", "ip_address": ip_address, "user_agent": user_agent, **extra}
    response = client.post("/sessions", json=body)
    assert response.status_code == 200
    return response.json()


class TestHealthEndpoints:

    def test_health_check_returns_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "trustgate"}

    def test_ready_when_service_installed(self, client):
        assert client.get("/ready").status_code == 200

    def test_not_ready_after_shutdown(self, client):
        ServiceManager.shutdown()
        response = client.get("/ready")

        assert response.status_code == 503


class TestCreateSession:

    def test_create_returns_session_and_token(self, client):
        data = _create(client)

        assert data["decision"] == "allow"
        assert data["session_token"]
        assert data["session"]["user_id"] == "user_1"
        assert data["session"]["country"] == "United States"
        assert data["session"]["device_type"] == "desktop"
        assert data["risk_level"] in ["low", "medium"]
        assert "session_token" not in data["session"]

    def test_ip_falls_back_to_forwarded_header(self, client):
        response = client.post(
            "/sessions",
            json={"user_id": "user_1"},
            headers={"X-Forwarded-For": f"{TOKYO.ip_address}, 10.0.0.1", "User-Agent": SAFARI_IPHONE_UA},
        )

        session = response.json()["session"]
        assert session["ip_address"] == TOKYO.ip_address
        assert session["city"] == "Tokyo"
        assert session["device_type"] == "mobile"

    def test_no_usable_ip_is_unknown(self, client):
        response = client.post("/sessions", json={"user_id": "user_1", "user_agent": CHROME_WINDOWS_UA})

        assert response.json()["session"]["ip_address"] == "unknown"

    def test_malformed_ip_returns_400(self, client):
        response = client.post("/sessions", json={"user_id": "user_1", "ip_address": "999.1.1.1"})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_missing_user_returns_422(self, client):
        assert client.post("/sessions", json={"ip_address": NEW_YORK.ip_address}).status_code == 422

    def test_policy_denial_is_a_decision_not_an_error(self, client, service):
        client.put("/users/user_1/policy", json={"updates": {"blocked_countries": ["Japan"]}})

        data = _create(client, ip_address=TOKYO.ip_address)

        assert data["decision"] == "deny"
        assert data["session"] is None
        assert data["session_token"] is None
        assert "Country not allowed" in data["reasons"]
        assert service.store.list_sessions_for_user("user_1") == []


class TestSessionEndpoints:

    def test_get_session(self, client):
        created = _create(client)
        session_id = created["session"]["session_id"]

        response = client.get(f"/sessions/{session_id}")

        assert response.status_code == 200
        assert response.json()["session_id"] == session_id

    def test_get_missing_session_returns_404(self, client):
        response = client.get("/sessions/sess_missing")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "SESSION_NOT_FOUND"
        assert body["request_id"].startswith("req_")

    def test_validate_session(self, client):
        session_id = _create(client)["session"]["session_id"]

        response = client.post(f"/sessions/{session_id}/validate", json={"ip_address": NEW_YORK.ip_address})

        assert response.status_code == 200
        assert response.json()["valid"] is True

    def test_validate_missing_session_is_invalid(self, client):
        response = client.post("/sessions/sess_missing/validate")

        assert response.status_code == 200
        assert response.json()["valid"] is False

    def test_revoke_session(self, client):
        session_id = _create(client)["session"]["session_id"]

        response = client.delete(f"/sessions/{session_id}")

        assert response.json() == {"revoked_session_ids": [session_id]}
        assert client.get(f"/sessions/{session_id}").status_code == 404

    def test_revoke_missing_session_returns_404(self, client):
        assert client.delete("/sessions/sess_missing").status_code == 404

    def test_log_activity(self, client):
        session_id = _create(client)["session"]["session_id"]

        response = client.post(
            f"/sessions/{session_id}/activity",
            json={"action": "view_profile", "endpoint": "/profile", "method": "GET", "status_code": 200},
        )

        assert response.status_code == 200
        assert response.json()["logged"] is True
        assert response.json()["activity_id"]

    def test_lock_to_current_ip(self, client):
        session_id = _create(client)["session"]["session_id"]
        client.post(f"/sessions/{session_id}/lock", json={"lock_type": "ip"})

        moved = client.post(f"/sessions/{session_id}/validate", json={"ip_address": BERLIN.ip_address})

        assert moved.json()["valid"] is False

    def test_step_up_flow(self, client):
        session_id = _create(client)["session"]["session_id"]

        challenge = client.post(f"/sessions/{session_id}/step-up", json={"reason": "change_password"}).json()
        assert challenge["challenge_id"]
        assert client.get(f"/sessions/{session_id}").json()["required_step_up"] is True

        wrong = client.post(f"/sessions/{session_id}/step-up/complete", json={"challenge_id": "chl_wrong"})
        assert wrong.json() == {"session_id": session_id, "completed": False}

        done = client.post(
            f"/sessions/{session_id}/step-up/complete", json={"challenge_id": challenge["challenge_id"]}
        )
        assert done.json()["completed"] is True
        assert client.get(f"/sessions/{session_id}").json()["required_step_up"] is False

    def test_freeze_and_unfreeze(self, client):
        session_id = _create(client)["session"]["session_id"]

        frozen = client.post(f"/sessions/{session_id}/freeze").json()
        assert frozen["is_frozen"] is True

        refused = client.post(f"/sessions/{session_id}/unfreeze", json={"verified": False})
        assert refused.status_code == 400

        unfrozen = client.post(f"/sessions/{session_id}/unfreeze", json={"verified": True})
        assert unfrozen.json()["is_frozen"] is False


class TestUserEndpoints:

    def test_list_and_logout_others(self, client):
        first = _create(client)["session"]["session_id"]
        second = _create(client, ip_address=BERLIN.ip_address)["session"]["session_id"]

        assert len(client.get("/users/user_1/sessions").json()) == 2

        response = client.post(f"/users/user_1/sessions/{first}/logout-others")

        assert response.json()["revoked_session_ids"] == [second]
        assert [s["session_id"] for s in client.get("/users/user_1/sessions").json()] == [first]

    def test_logout_others_for_wrong_user_returns_404(self, client):
        session_id = _create(client)["session"]["session_id"]

        assert client.post(f"/users/user_2/sessions/{session_id}/logout-others").status_code == 404

    def test_export_json(self, client):
        session_id = _create(client)["session"]["session_id"]

        response = client.get("/users/user_1/sessions/export", params={"format": "json"})

        assert response.headers["content-type"].startswith("application/json")
        rows = json.loads(response.text)
        assert rows[0]["session_id"] == session_id
        assert "session_token" not in rows[0]

    def test_export_csv(self, client):
        _create(client)

        response = client.get("/users/user_1/sessions/export", params={"format": "csv"})

        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().split("\n")
        assert lines[0].startswith("session_id,device_name,device_type")
        assert len(lines) == 2

    def test_export_unsupported_format_returns_422(self, client):
        assert client.get("/users/user_1/sessions/export", params={"format": "xml"}).status_code == 422

    def test_conflicts_and_anomalies_empty_for_single_session(self, client):
        _create(client)

        assert client.get("/users/user_1/conflicts").json() == []
        assert client.get("/users/user_1/anomalies").json() == []

    def test_resolve_conflicts_without_conflicts(self, client):
        response = client.post("/users/user_1/conflicts/resolve", json={"strategy": "keep_newest"})

        assert response.status_code == 200
        assert response.json()["deleted_session_ids"] == []


class TestPolicyEndpoints:

    def test_get_default_policy(self, client):
        policy = client.get("/users/user_1/policy").json()

        assert policy["max_concurrent_sessions"] >= 1
        assert policy["require_step_up_for_sensitive"] is True

    def test_update_policy(self, client):
        response = client.put("/users/user_1/policy", json={"updates": {"max_concurrent_sessions": 2}})

        assert response.status_code == 200
        assert response.json()["user_id"] == "user_1"
        assert client.get("/users/user_1/policy").json()["max_concurrent_sessions"] == 2

    def test_invalid_policy_update_returns_400(self, client):
        response = client.put("/users/user_1/policy", json={"updates": {"max_concurrent_sessions": 0}})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert response.json()["details"]["errors"]

    def test_validate_policy_collects_reasons(self, client):
        client.put("/users/user_1/policy", json={"updates": {
            "allowed_ips": ["10.0.0.0/8"],
            "blocked_countries": ["Japan"],
        }})

        response = client.post("/policy/validate", json={
            "user_id": "user_1",
            "ip_address": TOKYO.ip_address,
            "country": "Japan",
            "action": "change_password",
        })

        result = response.json()
        assert result["allowed"] is False
        assert result["reasons"] == ["IP address not allowed", "Country not allowed"]
        assert result["requires_step_up"] is True

    def test_validate_policy_malformed_ip_returns_400(self, client):
        response = client.post("/policy/validate", json={"user_id": "user_1", "ip_address": "not-an-ip"})

        assert response.status_code == 400

    def test_risk_assessment_has_no_side_effects(self, client, service):
        response = client.post("/risk/assess", json={
            "user_id": "user_1",
            "ip_address": NEW_YORK.ip_address,
            "country": "United States",
            "city": "New York",
            "is_new_device": True,
        })

        assessment = response.json()
        assert response.status_code == 200
        assert 0 <= assessment["total_score"] <= 100
        assert assessment["risk_level"] in ["low", "medium", "high", "critical"]
        assert service.store.list_sessions_for_user("user_1") == []


class TestRequestId:

    def test_request_id_is_generated(self, client):
        response = client.get("/health")

        assert response.headers["X-Request-ID"].startswith("req_")

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req_from_caller"})

        assert response.headers["X-Request-ID"] == "req_from_caller"
