"""Deterministic scoring for the decision engine.

Everything in this module is a pure function of its arguments: audience
selection, channel scoring and ranking, send-time offsets, delivery
instructions and the per-source snapshot.  No randomness, no clock reads
except where a ``now`` is passed in.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, Sequence

from pydantic import BaseModel

from chat2campaign.domain.enums import Channel, UrgencyLevel
from chat2campaign.domain.rules import (
    AUDIENCE_SEGMENTS,
    DEFAULT_SEGMENT,
    HIGH_INTENT_SEGMENT_ID,
    ChannelRule,
    SegmentDefinition,
)
from chat2campaign.domain.signal import AggregatedSignals, Signal
from chat2campaign.foundation.clock import to_iso

BASE_CHANNEL_SCORE = 0.5
RULE_PRIORITY_FACTOR = 0.2
HIGH_URGENCY_BOOST = 0.3
HIGH_INTENT_BOOST = 0.2
AUDIENCE_SCORE_THRESHOLD = 0.8

HIGH_URGENCY_CHANNELS = frozenset({Channel.SMS.value, Channel.PUSH.value, Channel.WHATSAPP.value})
HIGH_INTENT_CHANNELS = frozenset({Channel.EMAIL.value, Channel.WHATSAPP.value})

# Minutes after generation, indexed by plan priority; later ranks reuse the last entry.
SEND_DELAYS: dict[UrgencyLevel, tuple[int, ...]] = {
    UrgencyLevel.HIGH: (1, 5, 15),
    UrgencyLevel.MEDIUM: (5, 15, 45),
    UrgencyLevel.LOW: (15, 60, 180),
}

ADS_TIMEOUT_SEC = 3600
DEFAULT_TIMEOUT_SEC = 30


class ChannelPriority(BaseModel):
    """A channel's score and its 1-based rank within the plan."""

    channel: str
    priority: int
    score: float
    reasoning: str

    model_config = {"frozen": True}


# ── Audience ─────────────────────────────────────────────────────────────────

def select_audience(
    aggregated: AggregatedSignals,
    segments: Sequence[SegmentDefinition] = AUDIENCE_SEGMENTS,
    default: SegmentDefinition = DEFAULT_SEGMENT,
) -> dict[str, Any]:
    """Pick the first segment whose trigger types meet the primary triggers.

    A strong audience score selects the first segment outright; with neither
    condition met the default segment is returned.
    """
    triggers = set(aggregated.primary_triggers)
    for segment in segments:
        if segment.trigger_types & triggers:
            return segment.to_audience()
    if segments and aggregated.audience_score >= AUDIENCE_SCORE_THRESHOLD:
        return segments[0].to_audience()
    return default.to_audience()


# ── Channels ─────────────────────────────────────────────────────────────────

def matching_rule(
    channel: str,
    rules: Iterable[ChannelRule],
    aggregated: AggregatedSignals,
    audience: dict[str, Any],
) -> ChannelRule | None:
    """First enabled rule, in declared order, that lists *channel* and holds."""
    for rule in rules:
        if rule.enabled and channel in rule.channels and rule.condition.matches(aggregated, audience):
            return rule
    return None


def score_channel(
    channel: str,
    rules: Iterable[ChannelRule],
    aggregated: AggregatedSignals,
    audience: dict[str, Any],
) -> tuple[float, str]:
    score = BASE_CHANNEL_SCORE
    reasoning = f"Base priority for {channel}"

    rule = matching_rule(channel, rules, aggregated, audience)
    if rule is not None:
        score += rule.priority * RULE_PRIORITY_FACTOR
        reasoning = f"{rule.name} rule applied"

    if aggregated.urgency_level == UrgencyLevel.HIGH and channel in HIGH_URGENCY_CHANNELS:
        score += HIGH_URGENCY_BOOST
        reasoning += " + high urgency boost"

    if audience.get("segment_id") == HIGH_INTENT_SEGMENT_ID and channel in HIGH_INTENT_CHANNELS:
        score += HIGH_INTENT_BOOST
        reasoning += " + high-intent boost"

    return score, reasoning


def calculate_channel_priorities(
    channels: Sequence[str],
    aggregated: AggregatedSignals,
    audience: dict[str, Any],
    rules: Sequence[ChannelRule],
) -> list[ChannelPriority]:
    """Rank *channels* by descending score; equal scores keep input order."""
    scored = [(channel, *score_channel(channel, rules, aggregated, audience)) for channel in channels]
    ranked = sorted(scored, key=lambda item: -item[1])
    return [
        ChannelPriority(channel=channel, priority=rank, score=score, reasoning=reasoning)
        for rank, (channel, score, reasoning) in enumerate(ranked, start=1)
    ]


# ── Timing & delivery ────────────────────────────────────────────────────────

def send_delay_minutes(urgency: UrgencyLevel, priority: int) -> int:
    delays = SEND_DELAYS[urgency]
    return delays[min(max(priority, 1) - 1, len(delays) - 1)]


def send_at(now: datetime, urgency: UrgencyLevel, priority: int) -> str:
    return to_iso(now + timedelta(minutes=send_delay_minutes(urgency, priority)))


def delivery_instructions(channel: str, priority: int) -> dict[str, Any]:
    return {
        "retry_policy": "exponential_backoff" if priority == 1 else "linear",
        "timeout_sec": ADS_TIMEOUT_SEC if channel == Channel.ADS.value else DEFAULT_TIMEOUT_SEC,
    }


# ── Snapshot ─────────────────────────────────────────────────────────────────

def build_source_snapshot(signals: Iterable[Signal]) -> dict[str, dict[str, Any]]:
    """Group signal data by source, then by signal type; later signals win."""
    snapshot: dict[str, dict[str, Any]] = {}
    for signal in signals:
        snapshot.setdefault(signal.source, {})[signal.signal_type] = dict(signal.data)
    return snapshot
