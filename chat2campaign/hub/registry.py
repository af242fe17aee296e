"""ConnectionRegistry — the hub's owned map of live client connections.

A ClientConnection is created on connect and removed on disconnect or
liveness timeout.  Only the hub mutates the registry, and only from the
event loop, so no lock is held here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Protocol

from chat2campaign.domain.messages import SimulationConfig
from chat2campaign.foundation.clock import to_iso, utc_now
from chat2campaign.foundation.identifiers import new_id

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the hub needs from a client socket."""

    async def send_text(self, data: str) -> None:
        ...

    async def close(self, code: int = 1000, reason: str = "") -> None:
        ...

    async def ping(self) -> None:
        ...


class ClientConnection:
    """Per-client state; ``simulation_config`` set means the client is simulating."""

    __slots__ = (
        "id", "transport", "is_active", "connected_at", "last_activity", "simulation_config",
    )

    def __init__(self, transport: Transport, client_id: str | None = None) -> None:
        now = utc_now()
        self.id = client_id or new_id()
        self.transport = transport
        self.is_active = True
        self.connected_at: datetime = now
        self.last_activity: datetime = now
        self.simulation_config: Optional[SimulationConfig] = None

    @property
    def is_simulating(self) -> bool:
        return self.is_active and self.simulation_config is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "is_active": self.is_active,
            "connected_at": to_iso(self.connected_at),
            "last_activity": to_iso(self.last_activity),
            "simulating": self.simulation_config is not None,
        }


class ConnectionRegistry:
    """Connections indexed by id, with explicit lifecycle methods.

    Usage:
        registry = ConnectionRegistry()
        conn = registry.register(transport)
        registry.touch(conn.id)
        stale = registry.sweep_expired(timedelta(seconds=30))
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}

    def register(self, transport: Transport) -> ClientConnection:
        conn = ClientConnection(transport)
        self._connections[conn.id] = conn
        logger.info("Client %s registered (%d total)", conn.id, len(self._connections))
        return conn

    def unregister(self, client_id: str) -> ClientConnection | None:
        conn = self._connections.pop(client_id, None)
        if conn is not None:
            conn.is_active = False
            logger.info("Client %s unregistered (%d remaining)", client_id, len(self._connections))
        return conn

    def get(self, client_id: str) -> ClientConnection | None:
        return self._connections.get(client_id)

    def touch(self, client_id: str) -> None:
        conn = self._connections.get(client_id)
        if conn is not None:
            conn.last_activity = utc_now()

    def all(self) -> list[ClientConnection]:
        return list(self._connections.values())

    def active(self) -> list[ClientConnection]:
        return [c for c in self._connections.values() if c.is_active]

    def simulating(self) -> list[ClientConnection]:
        return [c for c in self._connections.values() if c.is_simulating]

    def sweep_expired(self, timeout: timedelta) -> list[ClientConnection]:
        """Remove and return connections silent for longer than *timeout*."""
        now = utc_now()
        expired = [c for c in self._connections.values() if now - c.last_activity > timeout]
        for conn in expired:
            self.unregister(conn.id)
        return expired

    def clear(self) -> list[ClientConnection]:
        removed = list(self._connections.values())
        for conn in removed:
            conn.is_active = False
        self._connections.clear()
        return removed

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._connections
