"""ConnectionHub — client sessions, simulation state and recommendation fan-out.

Per connection:

    CONNECTED ──start_simulation──▶ SIMULATING ──stop / stream end──▶ CONNECTED
        └───────── disconnect / liveness timeout / shutdown ─────────▶ TERMINATED

Two streaming modes:
    global      one shared timer; each tick generates one recommendation per
                simulating connection from that connection's config.
    per_client  one timer per simulating connection; stops after ``duration``
                or ``floor(duration / interval)`` sends, whichever comes first,
                and at once when a send fails.

Every generated document is validated before it is sent.  An invalid
document is replaced by its sanitized copy.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from typing import Any, Literal, Optional

from pydantic import ValidationError

from chat2campaign.core.decision_engine import DecisionEngine
from chat2campaign.domain.enums import CommandType
from chat2campaign.domain.messages import InboundCommand, SimulationConfig, StreamingMessage
from chat2campaign.hub.registry import ClientConnection, ConnectionRegistry, Transport
from chat2campaign.hub.scheduler import ScheduledTask, Scheduler
from chat2campaign.validation.validator import RecommendationValidator

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Connected to Chat2Campaign streaming service"
NORMAL_CLOSURE = 1000

StreamMode = Literal["global", "per_client"]


class ClientStream:
    """Timers and send budget for one per-client stream."""

    __slots__ = ("client_id", "max_sends", "sent", "tick", "deadline")

    def __init__(self, client_id: str, max_sends: int) -> None:
        self.client_id = client_id
        self.max_sends = max_sends
        self.sent = 0
        self.tick: ScheduledTask | None = None
        self.deadline: ScheduledTask | None = None

    def cancel(self) -> None:
        for task in (self.tick, self.deadline):
            if task is not None:
                task.cancel()


class ConnectionHub:
    """Owns every client connection and the timers that feed them.

    Args:
        engine: Produces recommendations for a simulation config.
        validator: Checks and repairs documents before they are sent.
        registry: Connection registry; a fresh one is created if omitted.
        scheduler: Timer owner; a fresh one is created if omitted.
        heartbeat_interval: Seconds between liveness sweeps.
        connection_timeout: Seconds of silence before a client is dropped.
        default_interval_ms: Simulation interval when the client sends none.
        default_duration_ms: Simulation duration when the client sends none.
        global_interval: Seconds between global stream ticks.
        stream_mode: ``global`` or ``per_client``.
        close_timeout: Seconds allowed for each transport close at shutdown.
    """

    def __init__(
        self,
        engine: DecisionEngine,
        validator: RecommendationValidator,
        registry: ConnectionRegistry | None = None,
        scheduler: Scheduler | None = None,
        *,
        heartbeat_interval: float = 10.0,
        connection_timeout: float = 30.0,
        default_interval_ms: int = 3000,
        default_duration_ms: int = 60000,
        global_interval: float = 5.0,
        stream_mode: StreamMode = "global",
        close_timeout: float = 1.0,
    ) -> None:
        self._engine = engine
        self._validator = validator
        self._registry = registry or ConnectionRegistry()
        self._scheduler = scheduler or Scheduler()
        self._heartbeat_interval = heartbeat_interval
        self._connection_timeout = timedelta(seconds=connection_timeout)
        self._default_interval_ms = default_interval_ms
        self._default_duration_ms = default_duration_ms
        self._global_interval = global_interval
        self._stream_mode = stream_mode
        self._close_timeout = close_timeout

        self._streams: dict[str, ClientStream] = {}
        self._heartbeat: ScheduledTask | None = None
        self._global_stream: ScheduledTask | None = None
        self._closed = False

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def stream_mode(self) -> StreamMode:
        return self._stream_mode

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the heartbeat and, in global mode, the shared stream."""
        if self._heartbeat is None or self._heartbeat.done:
            self._heartbeat = self._scheduler.every(
                self._heartbeat_interval, self.heartbeat_tick, name="heartbeat",
            )
        if self._stream_mode == "global":
            self.start_global_streaming()
        logger.info("Connection hub started (mode=%s)", self._stream_mode)

    async def shutdown(self) -> None:
        """Cancel all timers, close every connection, clear state.  Idempotent."""
        if self._closed:
            return
        self._closed = True

        cancelled = self._scheduler.cancel_all()
        self._streams.clear()
        self._heartbeat = None
        self._global_stream = None

        connections = self._registry.clear()
        for conn in connections:
            await self._close_transport(conn, NORMAL_CLOSURE, "Server shutting down")
        logger.info(
            "Connection hub shut down: %d timer(s) cancelled, %d connection(s) closed",
            cancelled, len(connections),
        )

    # ── Connections ──────────────────────────────────────────────────────

    async def connect(self, transport: Transport) -> ClientConnection:
        conn = self._registry.register(transport)
        await self.send(conn, StreamingMessage.system(WELCOME_MESSAGE))
        return conn

    async def disconnect(self, client_id: str) -> None:
        await self.stop_client_stream(client_id, notify=False)
        self._registry.unregister(client_id)

    async def send(self, conn: ClientConnection, message: StreamingMessage) -> bool:
        """Send *message*; a closed or failing transport returns False."""
        if not conn.is_active:
            return False
        try:
            await conn.transport.send_text(message.model_dump_json())
            return True
        except Exception as exc:
            logger.warning("Send to client %s failed: %s", conn.id, exc)
            conn.is_active = False
            return False

    async def broadcast(self, message: StreamingMessage, simulating_only: bool = False) -> int:
        targets = self._registry.simulating() if simulating_only else self._registry.active()
        delivered = 0
        for conn in targets:
            if await self.send(conn, message):
                delivered += 1
        return delivered

    # ── Inbound messages ─────────────────────────────────────────────────

    async def handle_message(self, client_id: str, raw: str) -> None:
        """Dispatch one inbound frame.  Never raises for client input."""
        conn = self._registry.get(client_id)
        if conn is None:
            logger.debug("Message for unknown client %s dropped", client_id)
            return
        self._registry.touch(client_id)

        try:
            command = InboundCommand.model_validate(json.loads(raw))
        except (ValueError, TypeError) as exc:
            logger.warning("Invalid message from client %s: %s", client_id, exc)
            await self.send(conn, StreamingMessage.error("Invalid message format"))
            return

        kind = command.command
        if kind == CommandType.PING:
            await self.send(conn, StreamingMessage.system("pong"))
        elif kind == CommandType.START_SIMULATION:
            await self._start_simulation(conn, command.config)
        elif kind == CommandType.STOP_SIMULATION:
            await self._stop_simulation(conn)
        else:
            logger.warning("Unknown message type from client %s: %s", client_id, command.type)

    async def _start_simulation(self, conn: ClientConnection, raw_config: Optional[dict[str, Any]]) -> None:
        try:
            config = SimulationConfig.model_validate(raw_config or {}).with_defaults(
                self._default_interval_ms, self._default_duration_ms,
            )
        except ValidationError as exc:
            details = "; ".join(e["msg"] for e in exc.errors())
            await self.send(conn, StreamingMessage.error(f"Invalid simulation config: {details}"))
            return

        conn.simulation_config = config
        logger.info(
            "Client %s started simulation: sources=%s channels=%s interval=%dms duration=%dms",
            conn.id, config.selected_sources, config.selected_channels,
            config.interval, config.duration,
        )
        await self.send(conn, StreamingMessage.system(
            f"Simulation started with {len(config.selected_sources)} sources "
            f"and {len(config.selected_channels)} channels"
        ))
        if self._stream_mode == "per_client":
            await self.start_client_stream(conn.id)

    async def _stop_simulation(self, conn: ClientConnection) -> None:
        await self.stop_client_stream(conn.id, notify=False)
        conn.simulation_config = None
        logger.info("Client %s stopped simulation", conn.id)
        await self.send(conn, StreamingMessage.system("Simulation stopped"))

    # ── Generation ───────────────────────────────────────────────────────

    async def produce(self, config: SimulationConfig) -> dict[str, Any]:
        """Generate one recommendation and make sure it is schema-valid."""
        doc = await self._engine.generate(config)
        result = self._validator.validate(doc)
        if result.valid:
            return doc
        logger.warning("Generated recommendation invalid, sanitizing: %s", result.errors)
        return self._validator.sanitize(doc).sanitized

    # ── Global streaming ─────────────────────────────────────────────────

    def start_global_streaming(self) -> None:
        if self._global_stream is not None and not self._global_stream.done:
            return
        self._global_stream = self._scheduler.every(
            self._global_interval, self.global_tick, name="global-stream",
        )
        logger.info("Global campaign streaming started (every %.1fs)", self._global_interval)

    async def stop_global_streaming(self) -> None:
        if self._global_stream is None:
            return
        await self.broadcast(StreamingMessage.system("Global campaign streaming stopped"))
        self._global_stream.cancel()
        self._global_stream = None
        logger.info("Global campaign streaming stopped")

    @property
    def global_streaming_active(self) -> bool:
        return self._global_stream is not None and not self._global_stream.done

    async def global_tick(self) -> int:
        """Send one recommendation to each simulating connection; returns sends."""
        simulating = self._registry.simulating()
        if not simulating:
            logger.debug("No active simulations, skipping global tick")
            return 0

        delivered = 0
        for conn in simulating:
            doc = await self.produce(conn.simulation_config)
            if await self.send(conn, StreamingMessage.recommendation(doc)):
                delivered += 1
        logger.debug("Global tick delivered %d/%d recommendation(s)", delivered, len(simulating))
        return delivered

    # ── Per-client streaming ─────────────────────────────────────────────

    async def start_client_stream(self, client_id: str) -> bool:
        conn = self._registry.get(client_id)
        if conn is None or conn.simulation_config is None:
            return False
        await self.stop_client_stream(client_id, notify=False)

        config = conn.simulation_config
        stream = ClientStream(client_id, max_sends=config.duration // config.interval)
        self._streams[client_id] = stream
        stream.tick = self._scheduler.every(
            config.interval / 1000,
            lambda: self.client_tick(client_id),
            name=f"client-stream:{client_id}",
        )
        stream.deadline = self._scheduler.after(
            config.duration / 1000,
            lambda: self._finish_client_stream(client_id),
            name=f"client-deadline:{client_id}",
        )
        await self.send(conn, StreamingMessage.system(
            f"Personalized streaming started: {stream.max_sends} recommendations "
            f"over {config.duration / 1000:g}s"
        ))
        return True

    async def stop_client_stream(self, client_id: str, notify: bool = True) -> bool:
        stream = self._streams.pop(client_id, None)
        if stream is None:
            return False
        conn = self._registry.get(client_id)
        if notify and conn is not None:
            await self.send(conn, StreamingMessage.system("Personalized streaming stopped"))
        stream.cancel()
        logger.debug("Client stream %s stopped after %d send(s)", client_id, stream.sent)
        return True

    async def client_tick(self, client_id: str) -> bool:
        """One step of a client stream; returns False once the stream is over."""
        stream = self._streams.get(client_id)
        conn = self._registry.get(client_id)
        if stream is None:
            return False
        if conn is None or not conn.is_simulating:
            await self.stop_client_stream(client_id, notify=False)
            return False
        if stream.sent >= stream.max_sends:
            await self._finish_client_stream(client_id)
            return False

        doc = await self.produce(conn.simulation_config)
        if not await self.send(conn, StreamingMessage.recommendation(doc)):
            await self.stop_client_stream(client_id, notify=False)
            return False

        stream.sent += 1
        if stream.sent >= stream.max_sends:
            await self._finish_client_stream(client_id)
            return False
        return True

    async def _finish_client_stream(self, client_id: str) -> None:
        if await self.stop_client_stream(client_id):
            conn = self._registry.get(client_id)
            if conn is not None:
                conn.simulation_config = None

    # ── Liveness ─────────────────────────────────────────────────────────

    async def heartbeat_tick(self) -> list[str]:
        """Drop silent or dead connections, ping the rest; returns dropped ids."""
        dropped = self._registry.sweep_expired(self._connection_timeout)
        for conn in self._registry.all():
            if not conn.is_active:
                dropped.append(self._registry.unregister(conn.id))

        for conn in dropped:
            await self.stop_client_stream(conn.id, notify=False)
            logger.info("Terminating inactive client %s", conn.id)
            await self._close_transport(conn, NORMAL_CLOSURE, "Connection timeout")

        for conn in self._registry.active():
            try:
                await conn.transport.ping()
            except Exception as exc:
                logger.warning("Heartbeat ping to client %s failed: %s", conn.id, exc)
                conn.is_active = False
            else:
                self._registry.touch(conn.id)
        return [c.id for c in dropped]

    async def _close_transport(self, conn: ClientConnection, code: int, reason: str) -> None:
        try:
            await asyncio.wait_for(conn.transport.close(code, reason), timeout=self._close_timeout)
        except asyncio.TimeoutError:
            logger.warning("Closing client %s timed out", conn.id)
        except Exception as exc:
            logger.debug("Closing client %s failed: %s", conn.id, exc)

    # ── Stats ────────────────────────────────────────────────────────────

    def stats(self) -> dict:
        return {
            "total_clients": len(self._registry),
            "active_clients": len(self._registry.active()),
            "active_simulations": len(self._registry.simulating()),
            "client_specific_streams": len(self._streams),
            "global_streaming_active": self.global_streaming_active,
            "stream_mode": self._stream_mode,
            "clients": [conn.to_dict() for conn in self._registry.all()],
        }
