"""Decision rules — audience segment catalog and channel prioritisation rules.

Rule conditions are a closed set of tagged variants, not an expression
language.  Each variant knows how to test itself against an aggregation
snapshot and the selected audience segment.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from chat2campaign.domain.enums import UrgencyLevel
from chat2campaign.domain.signal import AggregatedSignals


# ── Conditions ───────────────────────────────────────────────────────────────

class UrgencyEquals(BaseModel):
    kind: Literal["urgency_equals"] = "urgency_equals"
    level: UrgencyLevel

    model_config = {"frozen": True}

    def matches(self, aggregated: AggregatedSignals, audience: dict[str, Any]) -> bool:
        return aggregated.urgency_level == self.level


class SegmentEquals(BaseModel):
    kind: Literal["segment_equals"] = "segment_equals"
    segment_id: str

    model_config = {"frozen": True}

    def matches(self, aggregated: AggregatedSignals, audience: dict[str, Any]) -> bool:
        return audience.get("segment_id") == self.segment_id


RuleCondition = Annotated[Union[UrgencyEquals, SegmentEquals], Field(discriminator="kind")]


class ChannelRule(BaseModel):
    """Boosts the listed channels by ``priority * 0.2`` when its condition holds."""

    id: str = Field(..., min_length=1)
    name: str
    condition: RuleCondition
    priority: int = Field(..., ge=0)
    channels: list[str]
    enabled: bool = True

    model_config = {"frozen": True}


def default_channel_rules() -> list[ChannelRule]:
    return [
        ChannelRule(
            id="high-urgency-immediate",
            name="High Urgency Immediate Contact",
            condition=UrgencyEquals(level=UrgencyLevel.HIGH),
            priority=10,
            channels=["SMS", "Push", "WhatsApp"],
        ),
        ChannelRule(
            id="engaged-browser-email",
            name="Engaged Browser Email Priority",
            condition=SegmentEquals(segment_id="engaged-browsers"),
            priority=8,
            channels=["Email", "Messenger"],
        ),
        ChannelRule(
            id="returning-customer-personal",
            name="Returning Customer Personal Touch",
            condition=SegmentEquals(segment_id="returning-customers"),
            priority=7,
            channels=["WhatsApp", "Voice", "Email"],
        ),
        ChannelRule(
            id="low-urgency-nurture",
            name="Low Urgency Nurture Campaign",
            condition=UrgencyEquals(level=UrgencyLevel.LOW),
            priority=5,
            channels=["Email", "Ads"],
        ),
    ]


# ── Audience segments ────────────────────────────────────────────────────────

class SegmentDefinition(BaseModel):
    """A catalog entry; ``trigger_types`` decide whether it is picked."""

    segment_id: str
    name: str
    filters: dict[str, Any] = Field(default_factory=dict)
    trigger_types: frozenset[str] = frozenset()

    model_config = {"frozen": True}

    def to_audience(self) -> dict[str, Any]:
        return {"segment_id": self.segment_id, "name": self.name, "filters": dict(self.filters)}


HIGH_INTENT_SEGMENT_ID = "high-intent-customers"

AUDIENCE_SEGMENTS: tuple[SegmentDefinition, ...] = (
    SegmentDefinition(
        segment_id=HIGH_INTENT_SEGMENT_ID,
        name="High Intent Customers",
        filters={"intent_score": ">= 0.8", "recent_activity": "<= 1h"},
        trigger_types=frozenset({"cart_abandonment", "product_view", "price_check"}),
    ),
    SegmentDefinition(
        segment_id="engaged-browsers",
        name="Engaged Product Browsers",
        filters={"engagement_score": ">= 0.6", "session_duration": ">= 300s"},
        trigger_types=frozenset({"session_extension", "multiple_products", "category_browse"}),
    ),
    SegmentDefinition(
        segment_id="returning-customers",
        name="Returning Customers",
        filters={"previous_purchases": ">= 1", "last_purchase": "<= 90d"},
        trigger_types=frozenset({"login_event", "account_activity", "loyalty_trigger"}),
    ),
)

DEFAULT_SEGMENT = SegmentDefinition(
    segment_id="general-audience",
    name="General Audience",
    filters={"active_user": True},
)
