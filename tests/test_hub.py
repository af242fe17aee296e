"""Tests for the ConnectionHub, its registry and the /ws/campaigns endpoint.

Most timers are never waited on: tick methods are called directly and clock
patching via chat2campaign.hub.registry.utc_now drives liveness.  The
per-client duration deadline is exercised with real, short timers.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chat2campaign.api.transport import HEARTBEAT_MESSAGE, WebSocketTransport
from chat2campaign.api.ws_campaigns import create_campaign_router
from chat2campaign.domain.messages import SimulationConfig
from chat2campaign.hub.connection_hub import ConnectionHub
from chat2campaign.hub.registry import ConnectionRegistry
from chat2campaign.validation.validator import RecommendationValidator

_BASE = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _patched_now(dt: datetime):
    return patch("chat2campaign.hub.registry.utc_now", return_value=dt)


class FakeTransport:
    def __init__(self, fail_send: bool = False, fail_ping: bool = False, hang_close: bool = False) -> None:
        self.fail_send = fail_send
        self.fail_ping = fail_ping
        self.hang_close = hang_close
        self.sent: list[dict[str, Any]] = []
        self.closed: list[tuple[int, str]] = []
        self.pings = 0

    async def send_text(self, data: str) -> None:
        if self.fail_send:
            raise ConnectionError("socket gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.hang_close:
            await asyncio.sleep(10)
        self.closed.append((code, reason))

    async def ping(self) -> None:
        if self.fail_ping:
            raise ConnectionError("no pong")
        self.pings += 1

    def of_type(self, message_type: str) -> list[Any]:
        return [m["data"] for m in self.sent if m["type"] == message_type]


class FakeEngine:
    """Returns a fixed document; records the configs it was asked for."""

    def __init__(self, doc: dict[str, Any] | None = None) -> None:
        self.doc = doc
        self.configs: list[SimulationConfig] = []

    async def generate(self, config: SimulationConfig) -> dict[str, Any]:
        self.configs.append(config)
        if self.doc is not None:
            return dict(self.doc)
        return RecommendationValidator().sample_recommendation()


class SlowEngine(FakeEngine):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def generate(self, config: SimulationConfig) -> dict[str, Any]:
        await asyncio.sleep(self.delay)
        return await super().generate(config)


def _hub(engine: FakeEngine | None = None, **kwargs) -> ConnectionHub:
    kwargs.setdefault("close_timeout", 0.05)
    return ConnectionHub(engine or FakeEngine(), RecommendationValidator(), **kwargs)


def _start(sources=("website",), channels=("Email", "SMS"), **config) -> str:
    return json.dumps({
        "type": "start_simulation",
        "config": {"selectedSources": list(sources), "selectedChannels": list(channels), **config},
    })


# ── Commands ─────────────────────────────────────────────────────────────────

class TestCommands:
    @pytest.mark.asyncio
    async def test_connect_sends_welcome(self) -> None:
        hub, transport = _hub(), FakeTransport()
        conn = await hub.connect(transport)
        assert conn.id in hub.registry
        assert transport.of_type("system_message") == ["Connected to Chat2Campaign streaming service"]

    @pytest.mark.asyncio
    async def test_ping_replies_pong(self) -> None:
        hub, transport = _hub(), FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, json.dumps({"type": "ping"}))
        assert transport.of_type("system_message")[-1] == "pong"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", json.dumps({"config": {}})])
    async def test_invalid_message_returns_error(self, raw: str) -> None:
        hub, transport = _hub(), FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, raw)
        assert transport.of_type("error") == ["Invalid message format"]

    @pytest.mark.asyncio
    async def test_unknown_type_ignored(self) -> None:
        hub, transport = _hub(), FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, json.dumps({"type": "dance"}))
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_start_simulation_stores_config(self) -> None:
        hub, transport = _hub(), FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start())
        assert transport.of_type("system_message")[-1] == "Simulation started with 1 sources and 2 channels"
        assert conn.is_simulating
        assert conn.simulation_config.interval == 3000
        assert conn.simulation_config.duration == 60000

    @pytest.mark.asyncio
    async def test_invalid_config_reports_error(self) -> None:
        hub, transport = _hub(), FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start(channels=("Fax",)))
        [error] = transport.of_type("error")
        assert error.startswith("Invalid simulation config")
        assert not conn.is_simulating

    @pytest.mark.asyncio
    async def test_stop_simulation(self) -> None:
        hub, transport = _hub(), FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start())
        await hub.handle_message(conn.id, json.dumps({"type": "stop_simulation"}))
        assert transport.of_type("system_message")[-1] == "Simulation stopped"
        assert not conn.is_simulating

    @pytest.mark.asyncio
    async def test_message_updates_last_activity(self) -> None:
        hub, transport = _hub(), FakeTransport()
        with _patched_now(_BASE):
            conn = await hub.connect(transport)
        with _patched_now(_BASE + timedelta(seconds=9)):
            await hub.handle_message(conn.id, json.dumps({"type": "ping"}))
        assert conn.last_activity == _BASE + timedelta(seconds=9)

    @pytest.mark.asyncio
    async def test_disconnect_unregisters(self) -> None:
        hub = _hub()
        conn = await hub.connect(FakeTransport())
        await hub.disconnect(conn.id)
        assert conn.id not in hub.registry
        assert not conn.is_active


# ── Global streaming ─────────────────────────────────────────────────────────

class TestGlobalStreaming:
    @pytest.mark.asyncio
    async def test_tick_without_simulations_is_noop(self) -> None:
        engine = FakeEngine()
        hub = _hub(engine)
        await hub.connect(FakeTransport())
        assert await hub.global_tick() == 0
        assert engine.configs == []

    @pytest.mark.asyncio
    async def test_tick_sends_to_simulating_clients_only(self) -> None:
        engine = FakeEngine()
        hub = _hub(engine)
        busy, idle = FakeTransport(), FakeTransport()
        busy_conn = await hub.connect(busy)
        await hub.connect(idle)
        await hub.handle_message(busy_conn.id, _start(sources=("shopify",)))

        assert await hub.global_tick() == 1
        assert len(busy.of_type("campaign_recommendation")) == 1
        assert idle.of_type("campaign_recommendation") == []
        assert engine.configs[0].selected_sources == ["shopify"]

    @pytest.mark.asyncio
    async def test_invalid_documents_are_sanitized_before_send(self) -> None:
        hub = _hub(FakeEngine(doc={"id": "broken"}))
        transport = FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start())
        await hub.global_tick()
        [doc] = transport.of_type("campaign_recommendation")
        assert RecommendationValidator().validate(doc).valid

    @pytest.mark.asyncio
    async def test_failed_send_marks_connection_inactive(self) -> None:
        hub = _hub()
        transport = FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start())
        transport.fail_send = True
        assert await hub.global_tick() == 0
        assert conn.is_active is False

    @pytest.mark.asyncio
    async def test_start_and_stop_global_stream(self) -> None:
        hub = _hub(global_interval=60)
        transport = FakeTransport()
        await hub.connect(transport)
        hub.start_global_streaming()
        assert hub.stats()["global_streaming_active"] is True
        await hub.stop_global_streaming()
        assert hub.stats()["global_streaming_active"] is False
        assert transport.of_type("system_message")[-1] == "Global campaign streaming stopped"


# ── Per-client streaming ─────────────────────────────────────────────────────

class TestClientStreaming:
    @pytest.mark.asyncio
    async def test_stream_stops_after_max_sends(self) -> None:
        hub = _hub(stream_mode="per_client")
        transport = FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start(interval=60000, duration=180000))

        assert "Personalized streaming started: 3 recommendations over 180s" in transport.of_type("system_message")
        assert hub.stats()["client_specific_streams"] == 1

        assert await hub.client_tick(conn.id) is True
        assert await hub.client_tick(conn.id) is True
        assert await hub.client_tick(conn.id) is False

        assert len(transport.of_type("campaign_recommendation")) == 3
        assert transport.of_type("system_message")[-1] == "Personalized streaming stopped"
        assert hub.stats()["client_specific_streams"] == 0
        assert not conn.is_simulating
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_deadline_ends_stream_before_first_tick(self) -> None:
        hub = _hub(stream_mode="per_client")
        transport = FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start(interval=1000, duration=50))
        assert "Personalized streaming started: 0 recommendations over 0.05s" in transport.of_type("system_message")

        await asyncio.sleep(0.2)

        assert transport.of_type("system_message")[-1] == "Personalized streaming stopped"
        assert transport.of_type("campaign_recommendation") == []
        assert hub.stats()["client_specific_streams"] == 0
        assert not conn.is_simulating
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_deadline_cuts_slow_stream_short(self) -> None:
        hub = _hub(SlowEngine(delay=0.05), stream_mode="per_client")
        transport = FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start(interval=20, duration=200))
        assert "Personalized streaming started: 10 recommendations over 0.2s" in transport.of_type("system_message")

        await asyncio.sleep(0.4)

        sent = len(transport.of_type("campaign_recommendation"))
        assert 1 <= sent < 10
        assert transport.of_type("system_message")[-1] == "Personalized streaming stopped"
        assert hub.stats()["client_specific_streams"] == 0
        assert not conn.is_simulating
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_send_failure_ends_stream(self) -> None:
        hub = _hub(stream_mode="per_client")
        transport = FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start(interval=60000, duration=600000))
        transport.fail_send = True
        assert await hub.client_tick(conn.id) is False
        assert hub.stats()["client_specific_streams"] == 0
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_stop_simulation_cancels_stream(self) -> None:
        hub = _hub(stream_mode="per_client")
        transport = FakeTransport()
        conn = await hub.connect(transport)
        await hub.handle_message(conn.id, _start(interval=60000, duration=600000))
        await hub.handle_message(conn.id, json.dumps({"type": "stop_simulation"}))
        assert hub.stats()["client_specific_streams"] == 0
        assert await hub.client_tick(conn.id) is False

    @pytest.mark.asyncio
    async def test_global_mode_does_not_start_client_stream(self) -> None:
        hub = _hub(stream_mode="global")
        conn = await hub.connect(FakeTransport())
        await hub.handle_message(conn.id, _start())
        assert hub.stats()["client_specific_streams"] == 0


# ── Liveness ─────────────────────────────────────────────────────────────────

class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_silent_connection_is_dropped(self) -> None:
        hub = _hub(connection_timeout=30)
        transport = FakeTransport()
        with _patched_now(_BASE):
            conn = await hub.connect(transport)
        with _patched_now(_BASE + timedelta(seconds=31)):
            dropped = await hub.heartbeat_tick()
        assert dropped == [conn.id]
        assert transport.closed == [(1000, "Connection timeout")]
        assert len(hub.registry) == 0

    @pytest.mark.asyncio
    async def test_successful_ping_keeps_connection_alive(self) -> None:
        hub = _hub(connection_timeout=30)
        transport = FakeTransport()
        with _patched_now(_BASE):
            conn = await hub.connect(transport)
        with _patched_now(_BASE + timedelta(seconds=20)):
            assert await hub.heartbeat_tick() == []
        with _patched_now(_BASE + timedelta(seconds=40)):
            assert await hub.heartbeat_tick() == []
        assert transport.pings == 2
        assert conn.last_activity == _BASE + timedelta(seconds=40)

    @pytest.mark.asyncio
    async def test_failed_ping_drops_on_next_tick(self) -> None:
        hub = _hub()
        transport = FakeTransport(fail_ping=True)
        conn = await hub.connect(transport)
        assert await hub.heartbeat_tick() == []
        assert conn.is_active is False
        assert await hub.heartbeat_tick() == [conn.id]
        assert conn.id not in hub.registry


# ── Shutdown & stats ─────────────────────────────────────────────────────────

class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_closes_everything(self) -> None:
        hub = _hub(stream_mode="per_client")
        transports = [FakeTransport(), FakeTransport()]
        for t in transports:
            conn = await hub.connect(t)
            await hub.handle_message(conn.id, _start(interval=60000, duration=600000))
        hub.start()

        await hub.shutdown()
        for t in transports:
            assert t.closed == [(1000, "Server shutting down")]
        stats = hub.stats()
        assert stats["total_clients"] == 0
        assert stats["client_specific_streams"] == 0
        assert stats["global_streaming_active"] is False

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self) -> None:
        hub = _hub()
        transport = FakeTransport()
        await hub.connect(transport)
        await hub.shutdown()
        await hub.shutdown()
        assert len(transport.closed) == 1

    @pytest.mark.asyncio
    async def test_hanging_close_is_bounded(self) -> None:
        hub = _hub(close_timeout=0.05)
        await hub.connect(FakeTransport(hang_close=True))
        await asyncio.wait_for(hub.shutdown(), timeout=1.0)
        assert len(hub.registry) == 0

    @pytest.mark.asyncio
    async def test_start_in_global_mode(self) -> None:
        hub = _hub(stream_mode="global", global_interval=60, heartbeat_interval=60)
        hub.start()
        assert hub.stats()["global_streaming_active"] is True
        await hub.shutdown()


class TestRegistry:
    def test_sweep_expired_only_removes_stale(self) -> None:
        registry = ConnectionRegistry()
        with _patched_now(_BASE):
            stale = registry.register(FakeTransport())
        with _patched_now(_BASE + timedelta(seconds=25)):
            fresh = registry.register(FakeTransport())
        with _patched_now(_BASE + timedelta(seconds=35)):
            removed = registry.sweep_expired(timedelta(seconds=30))
        assert removed == [stale]
        assert fresh.id in registry
        assert stale.is_active is False

    @pytest.mark.asyncio
    async def test_stats_lists_clients(self) -> None:
        hub = _hub()
        with _patched_now(_BASE):
            conn = await hub.connect(FakeTransport())
        await hub.handle_message(conn.id, _start())
        [client] = hub.stats()["clients"]
        assert client["id"] == conn.id
        assert client["is_active"] is True
        assert client["connected_at"] == "2024-06-01T12:00:00.000Z"
        assert client["simulating"] is True


# ── WebSocket endpoint ───────────────────────────────────────────────────────

class TestCampaignEndpoint:
    @pytest.mark.asyncio
    async def test_heartbeat_frame_is_a_system_message(self) -> None:
        class RecordingSocket:
            def __init__(self) -> None:
                self.frames: list[str] = []

            async def send_text(self, data: str) -> None:
                self.frames.append(data)

        socket = RecordingSocket()
        await WebSocketTransport(socket).ping()
        [frame] = [json.loads(f) for f in socket.frames]
        assert frame["type"] == "system_message"
        assert frame["data"] == HEARTBEAT_MESSAGE == "heartbeat"

    def test_ping_over_websocket(self) -> None:
        hub = _hub()
        app = FastAPI()
        app.include_router(create_campaign_router(hub))

        with TestClient(app) as client:
            with client.websocket_connect("/ws/campaigns") as ws:
                welcome = ws.receive_json()
                assert welcome["type"] == "system_message"
                assert welcome["data"] == "Connected to Chat2Campaign streaming service"

                ws.send_text(json.dumps({"type": "ping"}))
                assert ws.receive_json()["data"] == "pong"

                ws.send_text(_start())
                assert ws.receive_json()["data"].startswith("Simulation started")
                assert len(hub.registry) == 1
