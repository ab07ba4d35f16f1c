"""
Unit Tests for the FastAPI Adapter

Runs the application with a DashboardController over in-memory
collaborators and checks the REST and WebSocket surface and the
startup lifecycle.

Run with:
    pytest tests/unit/test_app.py -v
"""

import pytest
from fastapi.testclient import TestClient

from app import main
from app.main import create_app
from core.errors import NetworkError
from services.dashboard import DashboardController
from services.event_bus import EventBus

from tests.fakes import ACCOUNT, DAI_WETH, FIXED_NOW, FakeChain, FakeMarketData


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def api():
    return FakeMarketData()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def controller(api, event_bus):
    return DashboardController(
        api,
        FakeChain(),
        bus=event_bus,
        request_timeout=1.0,
        pair_refresh_interval=3600,
        swaps_refresh_interval=3600,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def client(controller, event_bus):
    app = create_app(controller=controller, event_bus=event_bus)
    with TestClient(app) as client:
        yield client


def wait_idle(client, controller):
    client.portal.call(controller.wait_idle)


# ============================================
# System Endpoints
# ============================================

class TestSystemEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["groups"] == ["pair", "swaps", "balances"]

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["refreshing"] is True
        assert body["groups"] == {"pair": "idle", "swaps": "idle", "balances": "idle"}

    def test_health_degraded_on_error(self, api, client, controller):
        api.fail("get_pair_overview", NetworkError("rate limited"))
        client.put("/selection", json={"pair_id": DAI_WETH})
        wait_idle(client, controller)
        assert client.get("/health").json()["status"] == "degraded"

    def test_diagnostics(self, client, controller):
        client.put("/selection", json={"pair_id": DAI_WETH, "account": ACCOUNT})
        wait_idle(client, controller)

        body = client.get("/diagnostics").json()

        assert body["generation"] == 1
        assert body["selection"] == {"pair_id": DAI_WETH, "account": ACCOUNT}
        assert body["states"]["balances"]["status"] == "ready"


# ============================================
# Selection and State
# ============================================

class TestSelectionEndpoints:

    def test_put_selection(self, client, controller):
        response = client.put("/selection", json={"pair_id": DAI_WETH.upper().replace("0X", "0x")})

        assert response.status_code == 200
        body = response.json()
        assert body["generation"] == 1
        assert body["selection"] == {"pair_id": DAI_WETH, "account": None}
        assert body["states"]["pair"]["status"] == "loading"

        wait_idle(client, controller)
        state = client.get("/state/pair").json()
        assert state["status"] == "ready"
        assert state["payload"]["pair_data"]["token0"]["symbol"] == "DAI"

    def test_invalid_address_rejected(self, client):
        response = client.put("/selection", json={"pair_id": "0x1234"})
        assert response.status_code == 422

    def test_error_state_exposes_reason(self, api, client, controller):
        api.fail("get_pair_overview", NetworkError("rate limited"))
        client.put("/selection", json={"pair_id": DAI_WETH})
        wait_idle(client, controller)

        state = client.get("/state/pair").json()
        assert state["status"] == "error"
        assert state["reason"] == "rate limited"
        assert state["error_kind"] == "NetworkError"

    def test_get_all_states(self, client, controller):
        client.put("/selection", json={"pair_id": DAI_WETH})
        wait_idle(client, controller)
        states = client.get("/state").json()
        assert {group: s["status"] for group, s in states.items()} == {
            "pair": "ready",
            "swaps": "ready",
            "balances": "idle",
        }

    def test_unknown_group(self, client):
        assert client.get("/state/prices").status_code == 404
        assert client.post("/refresh/prices").status_code == 404

    def test_retry(self, client, controller):
        client.put("/selection", json={"pair_id": DAI_WETH})
        wait_idle(client, controller)
        assert client.post("/retry").json() == {"generation": 2}
        wait_idle(client, controller)

    def test_refresh(self, client, controller):
        assert client.post("/refresh/swaps").json() == {"group": "swaps", "launched": False}

        client.put("/selection", json={"pair_id": DAI_WETH})
        wait_idle(client, controller)

        assert client.post("/refresh/swaps").json() == {"group": "swaps", "launched": True}
        wait_idle(client, controller)


# ============================================
# WebSocket
# ============================================

class TestStateWebSocket:

    def test_snapshot_then_transitions(self, client, controller):
        with client.websocket_connect("/ws/state") as websocket:
            snapshot = websocket.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["states"]["pair"]["status"] == "idle"

            client.put("/selection", json={"pair_id": DAI_WETH})

            event = websocket.receive_json()
            assert event["type"] == "state"
            assert event["status"] == "loading"
            assert event["generation"] == 1
        wait_idle(client, controller)


# ============================================
# Lifespan
# ============================================

class _Collaborator:
    def __init__(self, name, fail_on_initialize=False):
        self.name = name
        self.fail_on_initialize = fail_on_initialize
        self.initialized = False
        self.shut_down = False

    async def initialize(self):
        if self.fail_on_initialize:
            raise ConnectionError(f"{self.name} unreachable")
        self.initialized = True

    async def shutdown(self):
        self.shut_down = True


class TestLifespan:

    @pytest.mark.asyncio
    async def test_failed_startup_closes_initialized_collaborators(self, monkeypatch):
        api = _Collaborator("uniswap-v2")
        chain = _Collaborator("ethereum", fail_on_initialize=True)
        monkeypatch.setattr(main, "validate_configuration", lambda: None)
        monkeypatch.setattr(main, "UniswapApiFetcher", lambda: api)
        monkeypatch.setattr(main, "EthereumChainQuery", lambda: chain)

        application = create_app(event_bus=EventBus())
        with pytest.raises(ConnectionError):
            async with main.lifespan(application):
                pass

        assert api.shut_down
        assert not chain.shut_down
        assert application.state.controller is None
