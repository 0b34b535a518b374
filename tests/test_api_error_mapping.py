from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import FakeTokenClient


def test_softphone_errors_map_to_http(app, make_harness):
    import api.routes as routes

    harness = make_harness(tokens=FakeTokenClient(error=RuntimeError("token endpoint down")))
    app.dependency_overrides[routes.get_coordinator] = lambda: harness.coordinator

    with TestClient(app) as client:
        missing = client.delete("/api/session")
        started = client.post("/api/session?orgId=org-1")
        retried = client.post("/api/session/audio/retry")
        accepted = client.post("/api/call/accept")

    app.dependency_overrides.clear()

    assert missing.status_code == 404
    assert started.status_code == 200
    assert started.json()["status"] == "init_failed"
    assert retried.status_code == 503
    assert retried.json()["detail"] == "Init failed; start a new session."
    assert accepted.status_code == 409
    assert accepted.json()["detail"] == "There is no call in progress."


def test_retry_outside_blocked_state_conflicts(client):
    client.post("/api/session")

    response = client.post("/api/session/audio/retry")

    assert response.status_code == 409
    assert response.json()["detail"] == "Audio retry is only available while the microphone is blocked."
