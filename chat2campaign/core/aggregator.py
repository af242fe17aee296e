"""SignalAggregator — collects signals across selected sources and summarises them.

Mocked sources are asked for signals directly.  Sources configured for a
real API go through the APIGateway; the events it returns (real or fallback)
are converted to signals with a fixed weight per event type and a
confidence derived from the event's source quality.  An optional budget in
seconds is shared by every gateway call of one aggregation; each real source
gets whatever is left of it.

summarize() is pure: same signals in, same AggregatedSignals out.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Iterable, Optional

from chat2campaign.domain.enums import (
    HIGH_URGENCY_TYPES,
    MEDIUM_URGENCY_TYPES,
    SourceQuality,
    SourceType,
    UrgencyLevel,
)
from chat2campaign.domain.signal import AggregatedSignals, Signal, TransformedEvent
from chat2campaign.foundation.clock import parse_iso, utc_now
from chat2campaign.gateway.api_gateway import APIGateway
from chat2campaign.sources.base import SignalSource
from chat2campaign.sources.catalog import DataSourceCatalog

logger = logging.getLogger(__name__)

PRIMARY_WEIGHT_THRESHOLD = 0.7
PRIMARY_CONFIDENCE_THRESHOLD = 0.8
MEDIUM_URGENCY_MIN_SIGNALS = 2

_EVENT_WEIGHTS: dict[str, float] = {
    "cart_abandonment": 0.9,
    "checkout_start": 0.85,
    "payment_attempt": 0.85,
    "conversion": 0.8,
    "order_created": 0.8,
    "product_view": 0.6,
    "product_viewed": 0.6,
    "contact_updated": 0.6,
    "ad_performance": 0.55,
    "page_view": 0.4,
    "session_start": 0.4,
    "post_published": 0.3,
}
_DEFAULT_EVENT_WEIGHT = 0.5

_QUALITY_CONFIDENCE: dict[SourceQuality, float] = {
    SourceQuality.HIGH: 0.9,
    SourceQuality.MEDIUM: 0.75,
    SourceQuality.LOW: 0.6,
}


# ── Pure helpers ─────────────────────────────────────────────────────────────

def signal_from_event(event: TransformedEvent) -> Signal:
    """Convert a gateway event into a weighted Signal."""
    try:
        timestamp = parse_iso(event.timestamp)
    except ValueError:
        timestamp = utc_now()
    return Signal(
        id=event.id,
        source=event.source,
        signal_type=event.event_type,
        timestamp=timestamp,
        data=dict(event.data),
        weight=_EVENT_WEIGHTS.get(event.event_type, _DEFAULT_EVENT_WEIGHT),
        confidence=_QUALITY_CONFIDENCE[event.metadata.source_quality],
    )


def classify_urgency(signals: Iterable[Signal]) -> UrgencyLevel:
    types = Counter(s.signal_type for s in signals)
    if any(t in HIGH_URGENCY_TYPES for t in types):
        return UrgencyLevel.HIGH
    if sum(types[t] for t in MEDIUM_URGENCY_TYPES) >= MEDIUM_URGENCY_MIN_SIGNALS:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW


def primary_triggers(signals: Iterable[Signal]) -> list[str]:
    return [
        s.signal_type for s in signals
        if s.weight > PRIMARY_WEIGHT_THRESHOLD and s.confidence > PRIMARY_CONFIDENCE_THRESHOLD
    ]


def summarize(signals: list[Signal]) -> AggregatedSignals:
    """Compute the aggregation snapshot.  An empty list yields all zeros."""
    if not signals:
        return AggregatedSignals()

    count = len(signals)
    total_weight = sum(s.weight for s in signals)
    average_confidence = sum(s.confidence for s in signals) / count
    return AggregatedSignals(
        signals=signals,
        total_weight=total_weight,
        average_confidence=min(1.0, average_confidence),
        primary_triggers=primary_triggers(signals),
        audience_score=min(1.0, (total_weight / count) * average_confidence),
        urgency_level=classify_urgency(signals),
    )


# ── Aggregator ───────────────────────────────────────────────────────────────

class SignalAggregator:
    """Gathers signals for a selection of sources.

    Usage:
        aggregator = SignalAggregator(catalog, mock_source, gateway)
        snapshot = await aggregator.aggregate(["website", "shopify"])
    """

    def __init__(
        self,
        catalog: DataSourceCatalog,
        signal_source: SignalSource,
        gateway: APIGateway,
    ) -> None:
        self._catalog = catalog
        self._signal_source = signal_source
        self._gateway = gateway

    async def collect(
        self, source_ids: list[str], budget: Optional[float] = None,
    ) -> list[Signal]:
        deadline = time.monotonic() + budget if budget is not None else None
        signals: list[Signal] = []
        for source_id in source_ids:
            config = self._catalog.get_config(source_id)
            if config is None or not config.enabled:
                logger.debug("Skipping unknown or disabled source %s", source_id)
                continue
            if config.type == SourceType.REAL_API:
                remaining = deadline - time.monotonic() if deadline is not None else None
                events = await self._gateway.fetch_data(source_id, budget=remaining)
                signals.extend(signal_from_event(e) for e in events)
            else:
                signals.extend(self._signal_source.generate_signals(source_id))
        return signals

    async def aggregate(
        self, source_ids: list[str], budget: Optional[float] = None,
    ) -> AggregatedSignals:
        signals = await self.collect(source_ids, budget)
        snapshot = summarize(signals)
        logger.debug(
            "Aggregated %d signals from %d sources (urgency=%s, score=%.2f)",
            snapshot.count, len(source_ids),
            snapshot.urgency_level.value, snapshot.audience_score,
        )
        return snapshot
