"""Signal models — the input side of the recommendation pipeline.

A Signal is a weighted, timestamped observation from a data source.  It is
created per aggregation cycle and never persisted.  AggregatedSignals is the
immutable snapshot the decision engine reasons over.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from chat2campaign.domain.enums import SourceQuality, UrgencyLevel


# ── Signal ───────────────────────────────────────────────────────────────────

class Signal(BaseModel):
    """A single behavioral observation attributed to one data source."""

    id: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1, description="Data source identifier")
    signal_type: str = Field(..., min_length=1, description="Behavior label, e.g. cart_abandonment")
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)
    weight: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)

    model_config = {"frozen": True}

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_be_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v


# ── Aggregation snapshot ─────────────────────────────────────────────────────

class AggregatedSignals(BaseModel):
    """Derived statistics over every signal collected in one cycle.

    Invariant: audience_score == min(1, (total_weight / count) * average_confidence),
    and 0 when no signals were collected.
    """

    signals: list[Signal] = Field(default_factory=list)
    total_weight: float = 0.0
    average_confidence: float = Field(0.0, ge=0.0, le=1.0)
    primary_triggers: list[str] = Field(default_factory=list)
    audience_score: float = Field(0.0, ge=0.0, le=1.0)
    urgency_level: UrgencyLevel = UrgencyLevel.LOW

    model_config = {"frozen": True}

    @property
    def count(self) -> int:
        return len(self.signals)


# ── Transformed upstream events ──────────────────────────────────────────────

class EventMetadata(BaseModel):
    """Provenance of a TransformedEvent: where it came from and how."""

    source_quality: SourceQuality = SourceQuality.MEDIUM
    api_endpoint: str
    response_time: float = 0.0
    is_real_api: bool
    transformation_version: str = "v1.0"
    api_fallback: bool = False
    fallback_reason: Optional[str] = None
    fallback_timestamp: Optional[str] = None


class TransformedEvent(BaseModel):
    """Common event shape every upstream payload is normalised into."""

    id: str
    source: str
    event_type: str
    timestamp: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: EventMetadata
