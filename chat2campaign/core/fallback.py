"""RandomCampaignGenerator — context-free recommendations for degraded paths.

Used when the decision engine has no signals to reason over, fails, or runs
past its time bound.  Output is schema-valid but not derived from any data;
every random choice goes through the injected ContentTemplateProvider.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from chat2campaign.domain.enums import Channel
from chat2campaign.domain.messages import SimulationConfig
from chat2campaign.foundation.clock import iso_now, to_iso, utc_now
from chat2campaign.foundation.identifiers import new_id
from chat2campaign.sources.base import ContentTemplateProvider

logger = logging.getLogger(__name__)

FALLBACK_ENGINE_VERSION = "v0.1-demo"
DEFAULT_CHANNELS = [Channel.EMAIL.value, Channel.PUSH.value, Channel.SMS.value, Channel.WHATSAPP.value]
MAX_CHANNELS = 3

_SEGMENTS: list[dict[str, Any]] = [
    {
        "segment_id": "high-value-customers",
        "name": "High-Value Repeat Customers",
        "filters": {"purchase_frequency": ">= 3", "lifetime_value": ">= 500", "last_purchase_days": "<= 30"},
    },
    {
        "segment_id": "cart-abandoners",
        "name": "Recent Cart Abandoners",
        "filters": {"cart_status": "abandoned", "abandonment_time": "<= 24h", "cart_value": ">= 100"},
    },
    {
        "segment_id": "new-subscribers",
        "name": "New Email Subscribers",
        "filters": {"subscription_date": "<= 7d", "engagement_score": ">= 0.5"},
    },
    {
        "segment_id": "inactive-users",
        "name": "Inactive Users",
        "filters": {"last_activity": ">= 30d", "previous_purchases": ">= 1"},
    },
    {
        "segment_id": "birthday-customers",
        "name": "Birthday Campaign Targets",
        "filters": {"birthday_month": "current", "email_consent": True},
    },
    {
        "segment_id": "seasonal-buyers",
        "name": "Seasonal Product Buyers",
        "filters": {"seasonal_purchase_history": True, "current_season": "match"},
    },
]

_SIGNALS = [
    "Recent cart abandonment detected",
    "High engagement with email campaigns",
    "Previous positive response to discount offers",
    "Increased website session duration",
    "Social media engagement spike",
    "Product browsing behavior indicates interest",
    "Competitor price comparison activity",
    "Seasonal purchase pattern alignment",
    "Customer support interaction indicates buying intent",
    "Mobile app usage increased",
    "Push notification click-through rate above average",
    "Email open rate significantly higher than average",
]

_SNAPSHOTS: list[dict[str, Any]] = [
    {
        "website": {"cart_items": 3, "session_duration": 420, "page_views": 12},
        "email": {"last_opened": "2024-01-15T10:30:00Z", "engagement_score": 0.75},
    },
    {
        "shopify": {"order_history": 5, "avg_order_value": 275, "last_purchase": "2024-01-10T14:20:00Z"},
        "facebook_pixel": {"ad_clicks": 3, "conversion_rate": 0.12},
    },
    {
        "crm": {"customer_tier": "gold", "support_tickets": 0, "satisfaction_score": 4.8},
        "google_ads": {"impressions": 1250, "click_through_rate": 0.08},
    },
]

_EXPLANATIONS = [
    "{name} shows strong engagement patterns with a {likelihood} likelihood to convert.",
    "Based on recent signals including {first_signal}, this audience segment presents a valuable opportunity.",
    "The combination of {count} positive signals indicates {likelihood} conversion potential for {name_lower}.",
    "{name} demonstrates behavior consistent with previous successful campaigns, warranting immediate attention.",
]


def _likelihood(score: float) -> str:
    if score > 0.8:
        return "high"
    if score > 0.6:
        return "moderate"
    return "low"


class RandomCampaignGenerator:
    """Produces plausible, valid recommendations without looking at signals."""

    def __init__(
        self,
        content: ContentTemplateProvider,
        engine_version: str = FALLBACK_ENGINE_VERSION,
    ) -> None:
        self._content = content
        self._engine_version = engine_version

    def generate(self, config: Optional[SimulationConfig] = None) -> dict[str, Any]:
        content = self._content
        audience = dict(content.pick(_SEGMENTS))
        audience["filters"] = dict(audience["filters"])
        signals = content.sample(_SIGNALS, 3)
        score = round(content.uniform(0.6, 1.0), 2)

        available = [
            c for c in (config.selected_channels if config else []) if c in Channel.values()
        ] or DEFAULT_CHANNELS
        count = min(len(available), MAX_CHANNELS, int(content.uniform(1, MAX_CHANNELS + 1)))
        channels = content.sample(available, max(1, count))

        now = utc_now()
        plan = []
        for priority, channel in enumerate(channels, start=1):
            delay = int(content.uniform(5, 35))
            plan.append({
                "channel": channel,
                "send_at": to_iso(now + timedelta(minutes=delay)),
                "priority": priority,
                "payload": content.channel_payload(channel, priority),
                "delivery_instructions": {
                    "retry_policy": "exponential_backoff" if priority == 1 else "linear",
                    "timeout_sec": 3600 if channel == Channel.ADS.value else int(content.uniform(15, 35)),
                },
            })

        explanation = content.pick(_EXPLANATIONS).format(
            name=audience["name"],
            name_lower=audience["name"].lower(),
            first_signal=signals[0].lower(),
            count=len(signals),
            likelihood=_likelihood(score),
        )
        return {
            "id": new_id(),
            "timestamp": iso_now(),
            "audience": audience,
            "reasoning": {"signals": signals, "score": score, "explain": explanation},
            "channel_plan": plan,
            "campaign_meta": {
                "source_snapshot": {k: dict(v) for k, v in content.pick(_SNAPSHOTS).items()},
                "engine_version": self._engine_version,
                "confidence": score,
            },
        }

    def generate_batch(
        self, count: int, config: Optional[SimulationConfig] = None,
    ) -> list[dict[str, Any]]:
        logger.debug("Generating %d fallback recommendations", count)
        return [self.generate(config) for _ in range(count)]
