import pytest
from fastapi.testclient import TestClient

from app.core import config
from app.llm.inference_client import InferenceNetworkError
from app.main import app
from app.orchestrator.pool import OrchestratorPool
from app.routers.reflect import get_pool

USER = {"X-User-Id": "user-1"}


@pytest.fixture
def api(sqlite_db, make_client):
    inference = make_client(response={
        "summary": "You can only control your reply.",
        "stance": "I will answer calmly.",
        "virtue_updates": [{"virtue": "temperance", "delta": 3}],
    })
    pool = OrchestratorPool(client=inference)
    app.dependency_overrides[get_pool] = lambda: pool
    with TestClient(app) as client:
        yield client, inference, pool
    app.dependency_overrides.clear()


def test_submit_resolves_and_records(api):
    client, inference, _ = api
    r = client.post("/reflect", json={"tool": "conflict", "raw_input": "my neighbor yelled", "idempotency_key": "k1"}, headers=USER)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "resolved"
    assert body["outcome"]["summary"] == "You can only control your reply."
    assert body["outcome"]["source"] == "inference"

    again = client.post("/reflect", json={"tool": "conflict", "raw_input": "my neighbor yelled", "idempotency_key": "k1"}, headers=USER)
    assert again.json()["status"] == "duplicate"
    assert inference.calls == 1

    history = client.get("/history", headers=USER).json()
    assert len(history) == 1
    assert history[0]["tool"] == "conflict"

    virtues = {v["virtue"]: v for v in client.get("/virtues", headers=USER).json()["scores"]}
    assert virtues["temperance"]["score"] == 53
    assert virtues["temperance"]["has_history"] is True
    assert virtues["courage"] == {"virtue": "courage", "score": 50, "has_history": False}


def test_fallback_when_inference_is_down(api):
    client, inference, _ = api
    inference.error = InferenceNetworkError("offline")
    r = client.post("/reflect", json={"tool": "intervene", "raw_input": "my boss criticized me"}, headers=USER)
    body = r.json()
    assert r.status_code == 200
    assert body["status"] == "fallback"
    assert body["failure"] == "network"
    assert body["outcome"]["source"] == "fallback"
    assert body["outcome"]["virtue_deltas"] == []
    assert body["notice"]


def test_requires_user(api):
    client, inference, _ = api
    assert client.post("/reflect", json={"tool": "unified", "raw_input": "hi"}).status_code == 401
    assert client.get("/reflect/current").status_code == 401
    assert client.get("/history").status_code == 401
    assert inference.calls == 0


@pytest.mark.parametrize("body", [
    {"tool": "meditation", "raw_input": "hi"},
    {"tool": "unified", "raw_input": "   "},
    {"tool": "unified", "raw_input": ""},
])
def test_rejects_invalid_requests(api, body):
    client, _, _ = api
    assert client.post("/reflect", json=body, headers=USER).status_code == 422


def test_current_restore_and_reset(api):
    client, _, _ = api
    assert client.get("/reflect/current", headers=USER).json() == {"outcome": None, "is_loading": False}

    client.post("/reflect", json={"tool": "pulse", "raw_input": "big presentation"}, headers=USER)
    current = client.get("/reflect/current", headers=USER).json()
    assert current["outcome"]["summary"] == "You can only control your reply."

    assert client.delete("/reflect", headers=USER).status_code == 204
    assert client.get("/reflect/current", headers=USER).json()["outcome"] is None
    assert len(client.get("/history", headers=USER).json()) == 1


def test_cancel_when_idle(api):
    client, _, _ = api
    assert client.post("/reflect/cancel", headers=USER).json() == {"cancelled": False}


def test_healthz(api, monkeypatch):
    monkeypatch.setattr(config, "WW_INFERENCE_API_KEY", "")
    client, _, _ = api
    body = client.get("/healthz").json()
    assert body == {"ok": True, "sqlite": "ok", "inference": "disabled"}
