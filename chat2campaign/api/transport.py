"""Adapts a FastAPI WebSocket to the hub's Transport protocol."""

from __future__ import annotations

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from chat2campaign.domain.messages import StreamingMessage

HEARTBEAT_MESSAGE = "heartbeat"


class WebSocketTransport:
    """Thin wrapper; the hub never touches the WebSocket directly."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    async def send_text(self, data: str) -> None:
        await self._ws.send_text(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._ws.application_state == WebSocketState.DISCONNECTED:
            return
        await self._ws.close(code=code, reason=reason)

    async def ping(self) -> None:
        # ASGI has no protocol-level ping, so liveness rides on a heartbeat frame
        await self._ws.send_text(StreamingMessage.system(HEARTBEAT_MESSAGE).model_dump_json())
