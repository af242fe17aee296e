"""CampaignState — the state object the decision graph's nodes read and write.

Every node receives the full state and returns a partial update.  Nodes do
no I/O: signals are aggregated before the graph runs and arrive here as an
immutable AggregatedSignals snapshot.
"""

from __future__ import annotations

from typing import Any, TypedDict

from chat2campaign.domain.rules import ChannelRule
from chat2campaign.domain.signal import AggregatedSignals


class CampaignState(TypedDict, total=False):
    """LangGraph state for one recommendation.

    Fields:
        aggregated: Signal snapshot for the selected sources.
        selected_channels: Channels the plan may use, in client order.
        rules: Channel rules in evaluation order.
        engine_version: Stamped into campaign_meta.
        enhance: Whether the explanation-enhancement step runs.
        started_at: Monotonic start time in seconds, for processing_time.
        audience: Selected AudienceSegment dict.
        reasoning: {signals, score, explain}.
        channel_priorities: Serialised ChannelPriority dicts, ranked.
        channel_plan: ChannelPlanEntry dicts.
        campaign_meta: {source_snapshot, engine_version, confidence, ...}.
        recommendation: The finished CampaignRecommendation dict.
    """

    aggregated: AggregatedSignals
    selected_channels: list[str]
    rules: list[ChannelRule]
    engine_version: str
    enhance: bool
    started_at: float

    audience: dict[str, Any]
    reasoning: dict[str, Any]
    channel_priorities: list[dict[str, Any]]
    channel_plan: list[dict[str, Any]]
    campaign_meta: dict[str, Any]
    recommendation: dict[str, Any]
