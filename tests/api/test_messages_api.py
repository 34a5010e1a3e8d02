"""Tests for the HTTP and WebSocket bridge."""
import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient
from httpx._transports.asgi import ASGITransport

from api import create_app
from api.agent import build_agent, create_store
from api.config import Settings
from blocker.storage import FileConfigStore, MemoryConfigStore
from tests.conftest import ORIGIN, make_agent

TRUSTED = {"origin": ORIGIN}


@pytest.fixture
def settings() -> Settings:
    return Settings(origin=ORIGIN, max_enabled_rulesets=3)


@pytest.fixture
def app(agent, settings):
    return create_app(agent=agent, settings=settings)


def client_for(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_reports_boot_state(app, agent):
    async with client_for(app) as client:
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "booting"

        await agent.boot()
        data = (await client.get("/api/health")).json()
        assert data["status"] == "healthy"
        assert data["state"] == "ready"
        assert data["outcome"] == "ready"
        assert set(data["components"]) == {"api", "blocker"}
        assert "timestamp" in data["build"]


@pytest.mark.asyncio
async def test_post_message(app, agent):
    await agent.boot()
    async with client_for(app) as client:
        response = await client.post("/api/messages", json={"what": "getDefaultLevel", "sender": TRUSTED})
        assert response.status_code == 200
        assert response.json() == {"response": 1}

        response = await client.post("/api/messages", json={
            "what": "setLevel",
            "hostname": "example.com",
            "level": 0,
            "sender": TRUSTED,
        })
        assert response.json() == {"response": 0}

        response = await client.post("/api/messages", json={
            "what": "setDefaultLevel",
            "level": 0,
            "sender": {"origin": "https://evil.example"},
        })
        assert response.json() == {"response": None}


@pytest.mark.asyncio
async def test_limit_exceeded_over_http(app, agent):
    await agent.boot()
    async with client_for(app) as client:
        response = await client.post("/api/messages", json={
            "what": "applyRuleSets",
            "enabledRulesets": ["default", "annoyances", "privacy", "regions"],
            "sender": TRUSTED,
        })
    assert response.json()["response"]["error"] == "LimitExceeded"


@pytest.mark.asyncio
async def test_permission_events(app, agent, host):
    await agent.boot()
    async with client_for(app) as client:
        await client.post("/api/messages", json={
            "what": "requestUpgrade",
            "hostname": "example.com",
            "tabId": 7,
            "url": "https://example.com/",
            "level": 2,
            "sender": TRUSTED,
        })
        host.permissions.grant("*://*.example.com/*")
        response = await client.post("/api/permissions/added", json={"origins": ["*://*.example.com/*"]})
        assert response.json() == {"changed": True}

        host.permissions.revoke("*://*.example.com/*")
        response = await client.post("/api/permissions/removed", json={"origins": ["*://*.example.com/*"]})
        assert response.json() == {"changed": True}


@pytest.mark.asyncio
async def test_commands(app, agent, host):
    await agent.boot()
    async with client_for(app) as client:
        response = await client.post("/api/commands/enter-zapper-mode", json={"tab_id": 7})
        assert response.json() == {"command": "enter-zapper-mode", "handled": True}

        response = await client.post("/api/commands/unknown", json={"tab_id": 7})
        assert response.status_code == 404
    assert len(host.scripting.executed) == 1


def test_broadcast_websocket(host, store, settings):
    app = create_app(agent=make_agent(host, store), settings=settings)
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/broadcast") as websocket:
            assert websocket.receive_json() == {"type": "connected", "state": "ready"}
            response = client.post("/api/messages", json={
                "what": "setAutoReload",
                "state": False,
                "sender": TRUSTED,
            })
            assert response.status_code == 200
            assert websocket.receive_json() == {"type": "broadcast", "data": {"autoReload": False}}


def test_create_store(tmp_path):
    assert isinstance(create_store(Settings()), MemoryConfigStore)
    file_store = create_store(Settings(storage_backend="file", storage_path=str(tmp_path / "s.yaml")))
    assert isinstance(file_store, FileConfigStore)
    with pytest.raises(ValueError):
        create_store(Settings(storage_backend="cloud"))


def test_build_agent_from_settings():
    settings = Settings(flavor="Safari", ruleset_ids="a,b", default_ruleset_ids="b", max_enabled_rulesets=1)
    agent = build_agent(settings)
    assert agent.config.flavor == "safari"
    assert agent.host.rule_engine.max_enabled_rulesets == 1
    assert [r.id for r in agent.host.rule_engine.rulesets.values() if r.enabled] == ["b"]
