"""Controlled enumerations for the chat2campaign domain.

Every categorical field in the domain MUST reference an enum defined here.
Free-form strings are not acceptable for classification fields.
"""

from __future__ import annotations

from enum import Enum


class Channel(str, Enum):
    """Communication channels a campaign can be dispatched through."""

    EMAIL = "Email"
    PUSH = "Push"
    WHATSAPP = "WhatsApp"
    ADS = "Ads"
    SMS = "SMS"
    MESSENGER = "Messenger"
    VOICE = "Voice"

    @classmethod
    def values(cls) -> list[str]:
        return [c.value for c in cls]


class UrgencyLevel(str, Enum):
    """How time-sensitive an audience's conversion opportunity is."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SourceType(str, Enum):
    """Whether a data source is synthesized locally or fetched upstream."""

    MOCKED = "mocked"
    REAL_API = "real_api"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class SourceQuality(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MessageType(str, Enum):
    """Outbound message kinds pushed to connected clients."""

    CAMPAIGN_RECOMMENDATION = "campaign_recommendation"
    SYSTEM_MESSAGE = "system_message"
    ERROR = "error"


class CommandType(str, Enum):
    """Inbound command kinds a client may send."""

    PING = "ping"
    START_SIMULATION = "start_simulation"
    STOP_SIMULATION = "stop_simulation"


# Signal types that drive urgency classification.
HIGH_URGENCY_TYPES = frozenset({"cart_abandonment", "checkout_start", "payment_attempt"})
MEDIUM_URGENCY_TYPES = frozenset({"product_view", "category_browse", "search_activity"})
