"""CampaignRecommendation schema — the wire artifact pushed to clients.

These models are the single definition of what a valid recommendation looks
like.  Scalars are strict (no "0.5" → 0.5 coercion, no bools as numbers) so
that a document accepted here is also well-formed JSON for any consumer.
Additional keys are allowed at every level for metadata flexibility.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr, field_validator

from chat2campaign.foundation.clock import is_canonical_iso

ChannelName = Literal["Email", "Push", "WhatsApp", "Ads", "SMS", "Messenger", "Voice"]

UnitScore = Annotated[StrictFloat, Field(ge=0.0, le=1.0, allow_inf_nan=False)]
NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]


def _check_timestamp(value: str) -> str:
    if not is_canonical_iso(value):
        raise ValueError("must be an ISO8601 date-time in canonical UTC form")
    return value


class AudienceSegment(BaseModel):
    segment_id: NonEmptyStr
    name: NonEmptyStr
    filters: dict[Any, Any]

    model_config = {"extra": "allow"}


class Reasoning(BaseModel):
    signals: list[StrictStr] = Field(..., min_length=1)
    score: UnitScore
    explain: NonEmptyStr

    model_config = {"extra": "allow"}


class Payload(BaseModel):
    subject: Optional[StrictStr] = None
    title: Optional[StrictStr] = None
    body: NonEmptyStr
    cta: dict[Any, Any]
    metadata: dict[Any, Any]

    model_config = {"extra": "allow"}


class DeliveryInstructions(BaseModel):
    retry_policy: NonEmptyStr
    timeout_sec: Annotated[StrictFloat, Field(gt=0, allow_inf_nan=False)]

    model_config = {"extra": "allow"}


class ChannelPlanEntry(BaseModel):
    channel: ChannelName
    send_at: StrictStr
    priority: Annotated[StrictInt, Field(ge=1)]
    payload: Payload
    delivery_instructions: DeliveryInstructions

    model_config = {"extra": "allow"}

    @field_validator("send_at")
    @classmethod
    def send_at_must_be_canonical(cls, v: str) -> str:
        return _check_timestamp(v)


class CampaignMeta(BaseModel):
    source_snapshot: dict[Any, Any]
    engine_version: NonEmptyStr
    confidence: UnitScore

    model_config = {"extra": "allow"}


class CampaignRecommendation(BaseModel):
    """A complete recommendation: who to target, why, and how to reach them."""

    id: NonEmptyStr
    timestamp: StrictStr
    audience: AudienceSegment
    reasoning: Reasoning
    channel_plan: list[ChannelPlanEntry] = Field(..., min_length=1)
    campaign_meta: CampaignMeta

    model_config = {"extra": "allow"}

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_be_canonical(cls, v: str) -> str:
        return _check_timestamp(v)
