"""Wire messages exchanged with connected clients."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from chat2campaign.domain.enums import Channel, CommandType, MessageType
from chat2campaign.foundation.clock import iso_now


class SimulationConfig(BaseModel):
    """What a client wants simulated: which sources feed it, which channels to plan.

    Accepts the camelCase keys clients send (``selectedSources``) as well as
    the snake_case field names.
    """

    selected_sources: list[str] = Field(default_factory=list, alias="selectedSources")
    selected_channels: list[str] = Field(default_factory=list, alias="selectedChannels")
    interval: Optional[int] = Field(default=None, gt=0, description="Milliseconds between recommendations")
    duration: Optional[int] = Field(default=None, gt=0, description="Total simulation length in milliseconds")

    model_config = {"populate_by_name": True}

    @field_validator("selected_channels")
    @classmethod
    def channels_must_be_known(cls, v: list[str]) -> list[str]:
        unknown = [c for c in v if c not in Channel.values()]
        if unknown:
            raise ValueError(f"unknown channels: {', '.join(unknown)}")
        return v

    def with_defaults(self, interval_ms: int, duration_ms: int) -> "SimulationConfig":
        return self.model_copy(update={
            "interval": self.interval or interval_ms,
            "duration": self.duration or duration_ms,
        })


class InboundCommand(BaseModel):
    """A parsed client message.  Unknown types are tolerated here and ignored later."""

    type: str
    config: Optional[dict[str, Any]] = None

    model_config = {"extra": "allow"}

    @property
    def command(self) -> CommandType | None:
        try:
            return CommandType(self.type)
        except ValueError:
            return None


class StreamingMessage(BaseModel):
    """Envelope for every message the hub pushes to a client."""

    type: MessageType
    data: Any
    timestamp: str = Field(default_factory=iso_now)

    @classmethod
    def system(cls, text: str) -> "StreamingMessage":
        return cls(type=MessageType.SYSTEM_MESSAGE, data=text)

    @classmethod
    def error(cls, text: str) -> "StreamingMessage":
        return cls(type=MessageType.ERROR, data=text)

    @classmethod
    def recommendation(cls, doc: dict[str, Any]) -> "StreamingMessage":
        return cls(type=MessageType.CAMPAIGN_RECOMMENDATION, data=doc)
