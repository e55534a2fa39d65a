import json
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.schemas import AIProvider
from datastore.device_registry import DeviceRegistry
from datastore.notification_feed import NotificationFeed
from datastore.protocol_catalog import ProtocolCatalog
from models.catalog import initial_devices
from services.ai_gateway import AIGateway, build_default_gateway
from services.connections import MockConnector
from services.monitor import MonitorService, build_default_monitor
from settings import get_settings
from storage.ai_settings import AISettingsStore, build_default_settings_store

ANALYSIS = {
    "riskLevel": "Medium",
    "prediction": "Pressure is trending toward the warning band.",
    "recommendations": ["Check the relief valve"],
}


class ProviderStub:
    """Fake OpenAI-compatible endpoint that can be switched into failure mode."""

    def __init__(self) -> None:
        self.fail = False
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(503, json={"error": "overloaded"})
        if json.loads(request.content).get("stream"):
            body = (
                'data: {"choices": [{"delta": {"content": "All devices "}}]}\n\n'
                'data: {"choices": [{"delta": {"content": "look healthy."}}]}\n\n'
                "data: [DONE]\n\n"
            )
            return httpx.Response(200, content=body.encode("utf-8"))
        return httpx.Response(200, json={"choices": [{"message": {"content": json.dumps(ANALYSIS)}}]})


def _cached(instance: Any):
    def build(*_args: Any) -> Any:
        return instance

    build.cache_clear = lambda: None  # type: ignore[attr-defined]
    return build


def _utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def api_client(tmp_path, monkeypatch, provider: ProviderStub) -> Iterator[TestClient]:
    monitor = MonitorService(
        registry=DeviceRegistry(initial_devices()),
        feed=NotificationFeed(),
        connector=MockConnector(
            rng=random.Random(3), latency_scale=0.0, fetch_delay=(0.0, 0.0), failure_rate=0.0
        ),
        tick_seconds=3600,
        rng=random.Random(11),
    )
    gateway = AIGateway(client=httpx.AsyncClient(transport=httpx.MockTransport(provider)))
    store = AISettingsStore(persistence_path=tmp_path / "ai.json")
    configured = store.get()
    configured.provider = AIProvider.openai
    configured.openai.api_key = "sk-test-abcd1234"
    store.update(configured)
    catalog = ProtocolCatalog()

    builders: Dict[str, Any] = {
        "build_default_monitor": _cached(monitor),
        "build_default_gateway": _cached(gateway),
        "build_default_settings_store": _cached(store),
        "build_default_catalog": _cached(catalog),
    }
    for module in ("app.main", "app.api", "app.web"):
        for name, builder in builders.items():
            monkeypatch.setattr(f"{module}.{name}", builder, raising=False)

    app = create_app()
    with TestClient(app) as client:
        yield client


def test_lifespan_starts_monitor_and_clears_caches(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("AI_SETTINGS_PATH", str(tmp_path / "ai.json"))
    monkeypatch.setenv("MONITOR_TICK_SECONDS", "3600")
    get_settings.cache_clear()
    app = create_app()

    try:
        with TestClient(app) as client:
            monitor_during = build_default_monitor()
            assert monitor_during.running is True
            assert client.get("/health").json() == {"status": "ok", "mode": "simulation"}

        assert monitor_during.running is False
        assert build_default_monitor() is not monitor_during
    finally:
        build_default_monitor.cache_clear()
        build_default_gateway.cache_clear()
        build_default_settings_store.cache_clear()
        get_settings.cache_clear()


def test_root_and_health(api_client: TestClient) -> None:
    assert api_client.get("/").json()["status"] == "ok"
    assert api_client.get("/health").json() == {"status": "ok", "mode": "simulation"}


def test_list_and_fetch_devices(api_client: TestClient) -> None:
    response = api_client.get("/devices")

    assert response.status_code == 200
    devices = response.json()
    assert [device["id"] for device in devices] == ["cnc-001", "rbt-002", "pmp-003", "asm-004", "vlv-005"]
    assert devices[2]["status"] == "Warning"

    single = api_client.get("/devices/cnc-001").json()
    assert single["name"] == "CNC Machine Alpha"
    assert single["connection_status"] == "Disconnected"

    missing = api_client.get("/devices/nope")
    assert missing.status_code == 404


def test_device_crud(api_client: TestClient) -> None:
    payload = {
        "id": "lth-006",
        "name": "Lathe",
        "protocol": "Modbus TCP/IP",
        "connection_params": {"ipAddress": "10.0.0.8", "port": 502},
    }

    created = api_client.post("/devices", json=payload)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "Normal"
    assert len(body["history"]) == 1

    duplicate = api_client.post("/devices", json=payload)
    assert duplicate.status_code == 409

    updated = api_client.put(
        "/devices/lth-006",
        json={"name": "Lathe 2", "protocol": "HART", "connection_params": {}},
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Lathe 2"
    assert updated.json()["history"] == body["history"]

    assert api_client.put("/devices/nope", json={"name": "x", "protocol": "HART"}).status_code == 404

    assert api_client.delete("/devices/lth-006").status_code == 204
    assert api_client.delete("/devices/lth-006").status_code == 404
    assert "lth-006" not in [device["id"] for device in api_client.get("/devices").json()]


def test_invalid_device_payload_is_rejected(api_client: TestClient) -> None:
    response = api_client.post("/devices", json={"id": "", "name": "x", "protocol": "HART"})

    assert response.status_code == 422


def test_cycle_extends_history(api_client: TestClient) -> None:
    response = api_client.post("/cycle")

    assert response.status_code == 200
    assert isinstance(response.json(), list)
    for device in api_client.get("/devices").json():
        assert len(device["history"]) == 2


def test_history_endpoint(api_client: TestClient) -> None:
    today = datetime.now(timezone.utc).date()
    api_client.post("/cycle")

    full = api_client.get("/devices/cnc-001/history")
    assert full.status_code == 200
    body = full.json()
    assert body["device_id"] == "cnc-001"
    assert len(body["readings"]) == 2
    assert body["stats"]["temperature"]["min"] <= body["stats"]["temperature"]["max"]

    past = (today - timedelta(days=30)).isoformat()
    empty = api_client.get("/devices/cnc-001/history", params={"start": past, "end": past})
    assert empty.json() == {"device_id": "cnc-001", "readings": [], "stats": None}

    inverted = api_client.get(
        "/devices/cnc-001/history",
        params={"start": today.isoformat(), "end": past},
    )
    assert inverted.status_code == 400

    assert api_client.get("/devices/nope/history").status_code == 404


def test_mode_switching(api_client: TestClient) -> None:
    assert api_client.get("/mode").json() == {"mode": "simulation"}

    live = api_client.put("/mode", json={"mode": "live"})
    assert live.json() == {"mode": "live"}
    assert api_client.get("/health").json()["mode"] == "live"

    back = api_client.put("/mode", json={"mode": "simulation"})
    assert back.json() == {"mode": "simulation"}
    statuses = {device["connection_status"] for device in api_client.get("/devices").json()}
    assert statuses == {"Disconnected"}

    assert api_client.put("/mode", json={"mode": "offline"}).status_code == 422


def test_notifications_flow(api_client: TestClient) -> None:
    empty = api_client.get("/notifications").json()
    assert empty == {"unread_count": 0, "notifications": []}

    simulated = api_client.post("/notifications/simulate", json={"level": "Critical"})
    assert simulated.status_code == 201
    notification = simulated.json()
    assert notification["level"] == "Critical"
    assert notification["message"] == "Simulated critical event detected."

    feed = api_client.get("/notifications").json()
    assert feed["unread_count"] == 1
    assert feed["notifications"][0]["id"] == notification["id"]

    assert api_client.post("/notifications/read").json() == {"marked": 1}
    assert api_client.get("/notifications").json()["unread_count"] == 0


def test_simulated_notification_requires_devices(api_client: TestClient) -> None:
    for device in api_client.get("/devices").json():
        api_client.delete(f"/devices/{device['id']}")

    response = api_client.post("/notifications/simulate", json={})

    assert response.status_code == 409


def test_ai_settings_are_masked(api_client: TestClient) -> None:
    settings = api_client.get("/settings/ai").json()

    assert settings["provider"] == "openai"
    assert settings["openai"]["api_key"] == "****1234"
    assert settings["anthropic"]["api_key"] == ""

    settings["anthropic"]["api_key"] = "ak-new-9999"
    settings["provider"] = "anthropic"
    updated = api_client.put("/settings/ai", json=settings)

    assert updated.status_code == 200
    assert updated.json()["provider"] == "anthropic"
    assert updated.json()["openai"]["api_key"] == "****1234"
    assert updated.json()["anthropic"]["api_key"] == "****9999"


def test_masked_key_round_trip_keeps_stored_secret(api_client: TestClient, provider: ProviderStub) -> None:
    settings = api_client.get("/settings/ai").json()
    api_client.put("/settings/ai", json=settings)

    assert api_client.post("/devices/cnc-001/analysis").status_code == 200
    assert provider.requests[-1].headers["Authorization"] == "Bearer sk-test-abcd1234"


def test_predictive_analysis(api_client: TestClient, provider: ProviderStub) -> None:
    response = api_client.post("/devices/pmp-003/analysis")

    assert response.status_code == 200
    assert response.json() == ANALYSIS
    prompt = json.loads(provider.requests[0].content)["messages"][0]["content"]
    assert "Coolant Pump Gamma" in prompt

    assert api_client.post("/devices/nope/analysis").status_code == 404

    provider.fail = True
    failed = api_client.post("/devices/pmp-003/analysis")
    assert failed.status_code == 502


def test_chat_streams_reply(api_client: TestClient, provider: ProviderStub) -> None:
    response = api_client.post("/chat", json={"messages": [{"role": "user", "text": "Status?"}]})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "All devices look healthy."

    provider.fail = True
    apology = api_client.post("/chat", json={"messages": [{"role": "user", "text": "Again?"}]})
    assert apology.text.startswith("Sorry, I encountered an error with the openai provider.")

    assert api_client.post("/chat", json={"messages": []}).status_code == 422


def test_protocol_catalog(api_client: TestClient) -> None:
    protocols = api_client.get("/protocols").json()
    names = [protocol["name"] for protocol in protocols]
    assert "Modbus RTU" in names and "HART" in names

    created = api_client.post("/protocols", json={"name": "CANopen", "description": "CAN-based field bus."})
    assert created.status_code == 201
    assert created.json()["fields"] == []

    duplicate = api_client.post("/protocols", json={"name": "CANopen", "description": "Again."})
    assert duplicate.status_code == 409


def test_dashboard_pages(api_client: TestClient) -> None:
    index = api_client.get("/ui")
    assert index.status_code == 200
    assert "CNC Machine Alpha" in index.text
    assert 'http-equiv="refresh"' in index.text

    detail = api_client.get("/ui/devices/pmp-003")
    assert detail.status_code == 200
    assert "Modbus RTU" in detail.text

    filtered = api_client.get(
        "/ui/devices/pmp-003",
        params={"start": _utc_today(), "end": _utc_today()},
    )
    assert filtered.status_code == 200
    assert 'http-equiv="refresh"' not in filtered.text

    assert api_client.get("/ui/devices/nope").status_code == 404
    assert api_client.get("/static/dashboard.css").status_code == 200
