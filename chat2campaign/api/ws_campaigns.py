"""WebSocket endpoint for campaign streaming clients.

Path: /ws/campaigns

Clients send ``{type: ping | start_simulation | stop_simulation, config?}``
and receive ``{type: campaign_recommendation | system_message | error,
data, timestamp}``.  Messages from one client are handled in arrival order.

Every connected client, simulating or not, also receives
``{type: system_message, data: "heartbeat"}`` once per heartbeat interval
(10s by default).  It carries no state; UIs should filter it out of chat
output.  A heartbeat that cannot be delivered marks the connection dead.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chat2campaign.api.transport import WebSocketTransport
from chat2campaign.hub.connection_hub import ConnectionHub

logger = logging.getLogger(__name__)


def create_campaign_router(hub: ConnectionHub) -> APIRouter:
    """Factory that wires the streaming endpoint to a ConnectionHub."""

    router = APIRouter()

    @router.websocket("/ws/campaigns")
    async def campaign_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        conn = await hub.connect(WebSocketTransport(websocket))
        logger.info("Campaign client %s connected", conn.id)

        try:
            while True:
                raw = await websocket.receive_text()
                await hub.handle_message(conn.id, raw)
        except WebSocketDisconnect as exc:
            logger.info("Campaign client %s disconnected (code=%s)", conn.id, exc.code)
        except RuntimeError as exc:
            # Raised by Starlette when the hub already closed the socket
            logger.debug("Campaign client %s socket closed: %s", conn.id, exc)
        finally:
            await hub.disconnect(conn.id)

    return router
