"""Template-backed content for recommendations.

Everything here is copy, not logic: channel message templates, explanation
sentences, and descriptions of signal types.  Randomness comes from an
injected ``random.Random`` so a seeded provider is fully reproducible.
"""

from __future__ import annotations

import random
from typing import Any, Sequence, TypeVar

from chat2campaign.domain.enums import UrgencyLevel
from chat2campaign.domain.signal import AggregatedSignals, Signal
from chat2campaign.sources.base import ContentTemplateProvider

T = TypeVar("T")

_CHANNEL_TEMPLATES: dict[str, dict[str, list[str]]] = {
    "Email": {
        "subjects": [
            "Complete Your Purchase - 15% Off Inside!",
            "Don't Miss Out - Your Cart is Waiting!",
            "Exclusive Offer Just for You",
            "Welcome Back! Here's Something Special",
        ],
        "bodies": [
            "We noticed you left something in your cart. Complete your purchase now and save 15%!",
            "Your selected items are still available. Don't let them get away!",
            "As a valued customer, enjoy this exclusive discount on your next purchase.",
            "We've missed you! Come back and discover what's new.",
        ],
    },
    "Push": {
        "titles": ["Don't Miss Out!", "Limited Time Offer", "Your Cart Awaits", "Come Back & Save"],
        "bodies": [
            "Your items are waiting. Get 15% off now!",
            "Flash sale ends soon. Shop now!",
            "Complete your purchase in just one tap.",
        ],
    },
    "SMS": {
        "bodies": [
            "Your cart is waiting! Complete purchase & save 15%. Link: store.com/cart",
            "Flash sale: 20% off your favorites ends in 2hrs. Shop now: store.com/sale",
            "Hi! Your exclusive discount code is SAVE15. Valid 24hrs: store.com",
        ],
    },
    "WhatsApp": {
        "bodies": [
            "Hi! We noticed you were interested in some products. Would you like help completing your purchase?",
            "Your cart is ready to go! Complete your order now and get 15% off.",
            "Special offer just for you! Use code SAVE20 for instant discount.",
        ],
    },
    "Voice": {
        "scripts": [
            "Hello! This is a friendly reminder about the items in your shopping cart.",
            "Hi there! We have a special offer available for you today.",
        ],
    },
    "Messenger": {
        "bodies": [
            "Hey! Saw you were browsing our store. Need help with anything?",
            "Your cart looks great! Ready to complete your purchase?",
            "We have a special surprise for you! Check your exclusive offer.",
        ],
    },
    "Ads": {
        "headlines": ["Complete Your Purchase Today", "Your Favorites Are Waiting"],
        "bodies": [
            "Return to your cart and save 15% on your selected items.",
            "Exclusive offer expires soon. Shop now and save big!",
        ],
    },
}

_SIGNAL_DESCRIPTIONS = {
    "cart_abandonment": "Recent cart abandonment detected",
    "product_view": "High product engagement activity",
    "session_extension": "Extended browsing session indicates interest",
    "order_history": "Strong purchase history patterns",
    "customer_tier_upgrade": "Customer loyalty tier advancement",
    "support_interaction": "Positive customer support engagement",
}

_EXPLANATIONS: dict[UrgencyLevel, list[str]] = {
    UrgencyLevel.HIGH: [
        "Customer demonstrates high urgency with {count} positive signals indicating strong conversion potential.",
        "Analysis of recent user behavior reveals {triggers} high-confidence triggers warranting immediate engagement.",
    ],
    UrgencyLevel.MEDIUM: [
        "Customer demonstrates medium urgency with {count} positive signals indicating growing interest.",
        "Signal aggregation shows {confidence}% confidence with weighted score of {weight}.",
    ],
    UrgencyLevel.LOW: [
        "Customer demonstrates low urgency with {count} signals; a nurture sequence is recommended.",
        "Signal aggregation shows {confidence}% confidence with weighted score of {weight}.",
    ],
}

_LOW_CONFIDENCE_EXPLANATION = (
    "Signals are sparse ({confidence}% confidence across {count} observations); "
    "recommendation favours low-cost channels."
)

_ENHANCED_EXPLANATIONS = [
    "Advanced behavioral analysis indicates {urgency} conversion probability based on {count} correlated signals across multiple touchpoints.",
    "Machine learning models predict optimal engagement window with {confidence}% confidence using multi-source signal aggregation.",
    "AI-powered customer journey analysis reveals strong intent signals with recommended immediate multi-channel engagement strategy.",
]


class TemplateContentProvider(ContentTemplateProvider):
    """Picks content from fixed template tables using an injected RNG."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def pick(self, options: Sequence[T]) -> T:
        return self._rng.choice(list(options))

    def sample(self, options: Sequence[T], k: int) -> list[T]:
        pool = list(options)
        return self._rng.sample(pool, min(k, len(pool)))

    def uniform(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)

    def explanation(self, aggregated: AggregatedSignals) -> str:
        if aggregated.average_confidence < 0.5:
            template = _LOW_CONFIDENCE_EXPLANATION
        else:
            template = self.pick(_EXPLANATIONS[aggregated.urgency_level])
        return self._fill(template, aggregated)

    def enhanced_explanation(self, aggregated: AggregatedSignals) -> str:
        return self._fill(self.pick(_ENHANCED_EXPLANATIONS), aggregated)

    def signal_description(self, signal: Signal) -> str:
        return _SIGNAL_DESCRIPTIONS.get(
            signal.signal_type,
            f"{signal.signal_type} signal detected from {signal.source}",
        )

    def channel_payload(self, channel: str, priority: int) -> dict[str, Any]:
        t = _CHANNEL_TEMPLATES.get(channel)
        if channel == "Email":
            return {
                "subject": self.pick(t["subjects"]),
                "body": self.pick(t["bodies"]),
                "cta": {"text": "Complete Purchase", "url": "https://store.com/checkout"},
                "metadata": {"campaign_type": "cart_abandonment", "discount_percent": 15},
            }
        if channel == "Push":
            return {
                "title": self.pick(t["titles"]),
                "body": self.pick(t["bodies"]),
                "cta": {"action": "open_app", "deep_link": "/checkout"},
                "metadata": {"badge_count": 1, "sound": "default"},
            }
        if channel == "SMS":
            return {
                "body": self.pick(t["bodies"]),
                "cta": {"type": "link", "url": "https://store.com/cart"},
                "metadata": {"sender_id": "STORE", "message_type": "promotional"},
            }
        if channel == "WhatsApp":
            return {
                "body": self.pick(t["bodies"]),
                "cta": {"type": "quick_reply", "options": ["View Cart", "Shop Now", "Call Support"]},
                "metadata": {"template_name": "cart_recovery", "language": "en"},
            }
        if channel == "Voice":
            return {
                "script": self.pick(t["scripts"]),
                "body": "Automated voice message for cart recovery",
                "cta": {"type": "callback", "number": "+1-800-STORE"},
                "metadata": {"voice_type": "female", "language": "en-US"},
            }
        if channel == "Messenger":
            return {
                "body": self.pick(t["bodies"]),
                "cta": {"type": "postback", "payload": "VIEW_CART"},
                "metadata": {"platform": "facebook", "message_type": "interactive"},
            }
        if channel == "Ads":
            return {
                "headline": self.pick(t["headlines"]),
                "body": self.pick(t["bodies"]),
                "cta": {"text": "Shop Now", "url": "https://store.com/offers"},
                "metadata": {"ad_type": "retargeting", "budget": 50, "duration_hours": 24},
            }
        return {
            "body": f"Generic {channel} message content",
            "cta": {"type": "link", "url": "https://store.com"},
            "metadata": {"channel_type": channel},
        }

    @staticmethod
    def _fill(template: str, aggregated: AggregatedSignals) -> str:
        return template.format(
            count=aggregated.count,
            triggers=len(aggregated.primary_triggers),
            confidence=round(aggregated.average_confidence * 100),
            weight=f"{aggregated.total_weight:.2f}",
            urgency=aggregated.urgency_level.value,
        )
