"""MockSignalSource — synthetic signals and events for every catalog source.

Output is random by design (weights are fixed per template, confidence and
timing are drawn from the injected RNG).  Seed the RNG for reproducible runs.
"""

from __future__ import annotations

import random
from datetime import timedelta
from typing import Any

from chat2campaign.domain.enums import SourceQuality
from chat2campaign.domain.signal import EventMetadata, Signal, TransformedEvent
from chat2campaign.foundation.clock import to_iso, utc_now
from chat2campaign.foundation.identifiers import prefixed_id
from chat2campaign.sources.base import SignalSource
from chat2campaign.sources.catalog import DataSourceCatalog

_SIGNAL_TEMPLATES: dict[str, list[dict[str, Any]]] = {
    "website": [
        {"type": "cart_abandonment", "data": {"cart_value": 150, "items_count": 3}, "weight": 0.9},
        {"type": "product_view", "data": {"product_id": "prod_123", "category": "electronics"}, "weight": 0.6},
        {"type": "session_extension", "data": {"duration": 420, "pages": 12}, "weight": 0.5},
    ],
    "shopify": [
        {"type": "order_history", "data": {"total_orders": 5, "avg_value": 275}, "weight": 0.8},
        {"type": "wishlist_activity", "data": {"items_added": 2, "last_added": "2024-01-15"}, "weight": 0.6},
    ],
    "crm_system": [
        {"type": "customer_tier_upgrade", "data": {"new_tier": "gold", "previous": "silver"}, "weight": 0.7},
        {"type": "support_interaction", "data": {"satisfaction": 4.8, "topic": "product_inquiry"}, "weight": 0.5},
    ],
}

_PRODUCTS = [
    {"id": "prod_001", "name": "Wireless Headphones", "price": 199.99, "category": "Electronics"},
    {"id": "prod_003", "name": "Running Shoes", "price": 129.99, "category": "Sportswear"},
    {"id": "prod_004", "name": "Coffee Maker", "price": 89.99, "category": "Home & Kitchen"},
    {"id": "prod_008", "name": "Bluetooth Speaker", "price": 149.99, "category": "Electronics"},
]


class MockSignalSource(SignalSource):
    """Template-driven synthetic data for development and fallback paths."""

    def __init__(self, catalog: DataSourceCatalog, rng: random.Random | None = None) -> None:
        self._catalog = catalog
        self._rng = rng or random.Random()

    def generate_signals(self, source_id: str) -> list[Signal]:
        templates = _SIGNAL_TEMPLATES.get(
            source_id,
            [{"type": "generic_activity", "data": {"source": source_id}, "weight": 0.4}],
        )
        count = self._rng.randint(1, 3)
        now = utc_now()
        return [
            Signal(
                id=prefixed_id("de", self._rng),
                source=source_id,
                signal_type=t["type"],
                timestamp=now - timedelta(seconds=self._rng.uniform(0, 3600)),
                data=dict(t["data"]),
                weight=t["weight"],
                confidence=self._rng.uniform(0.6, 1.0),
            )
            for t in templates[:count]
        ]

    def generate_events(self, source_id: str) -> list[TransformedEvent]:
        source = self._catalog.get_source(source_id)
        event_types = source.mock_event_types if source else ["generic_event"]
        now = utc_now()
        events: list[TransformedEvent] = []
        for _ in range(self._rng.randint(1, 5)):
            event_type = self._rng.choice(event_types)
            events.append(TransformedEvent(
                id=prefixed_id("evt", self._rng),
                source=source_id,
                event_type=event_type,
                timestamp=to_iso(now - timedelta(seconds=self._rng.uniform(0, 86400))),
                user_id=f"user_{self._rng.randint(0, 999):04d}",
                session_id=f"session_{self._rng.randint(0, 4999)}",
                data=self._event_data(event_type),
                metadata=EventMetadata(
                    source_quality=SourceQuality.MEDIUM,
                    api_endpoint="mock_data_generator",
                    is_real_api=False,
                ),
            ))
        # Newest first
        return sorted(events, key=lambda e: e.timestamp, reverse=True)

    def _event_data(self, event_type: str) -> dict[str, Any]:
        product = self._rng.choice(_PRODUCTS)
        if event_type in ("cart_abandonment", "order_created", "conversion"):
            quantity = self._rng.randint(1, 3)
            return {
                "product_id": product["id"],
                "quantity": quantity,
                "value": round(product["price"] * quantity, 2),
                "currency": "USD",
            }
        if event_type in ("page_view", "product_viewed"):
            return {"product_id": product["id"], "category": product["category"]}
        return {"event": event_type, "score": round(self._rng.uniform(0, 1), 2)}
