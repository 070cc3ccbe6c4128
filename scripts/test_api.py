"""Quick smoke script for the session API."""

import json

from fastapi.testclient import TestClient

from trustgate.api.gateway import ServiceManager, app
from trustgate.api.service import SessionTrustService
from trustgate.context.geolocation import StaticResolver

# Offline service: private and table-less IPs never reach the network
ServiceManager.set_service(SessionTrustService(resolver=StaticResolver()))
client = TestClient(app)

create_body = {
    "user_id": "user_test_001",
    "ip_address": "192.168.1.100",
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "login_method": "password",
}

print("=" * 60)
print("Testing POST /sessions")
print("=" * 60)

response = client.post("/sessions", json=create_body)
print(f"\nStatus code: {response.status_code}")
data = response.json()
print(json.dumps(data, indent=2))

session_id = (data.get("session") or {}).get("session_id")
if session_id:
    print("\n" + "=" * 60)
    print("Testing POST /sessions/{id}/validate")
    print("=" * 60)
    validation = client.post(f"/sessions/{session_id}/validate", json={"ip_address": "192.168.1.100"})
    print(json.dumps(validation.json(), indent=2))

print("\n" + "=" * 60)
print("Security Check: Token Only On Create")
print("=" * 60)
summary = client.get(f"/sessions/{session_id}").json() if session_id else {}
print(f"session_token in GET /sessions/{{id}}: {'session_token' in summary}")

print("\n" + "=" * 60)
print("Testing POST /policy/validate")
print("=" * 60)
policy = client.post("/policy/validate", json={"user_id": "user_test_001", "ip_address": "203.0.113.9"})
print(json.dumps(policy.json(), indent=2))

ServiceManager.shutdown()
