"""Upstream source adapters — request shape and payload normalisation.

Each adapter knows, for one upstream API:
    1. Its default endpoint when the source config does not set one.
    2. How the auth token is presented (API key header or bearer token).
    3. How the JSON body maps onto TransformedEvents.

Architectural rules:
    1. Adapters must NOT mutate the incoming payload.
    2. Missing sub-fields are defaulted, never fatal.  A payload whose overall
       shape is wrong raises TransformationError.
    3. No network I/O lives in an adapter.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

from chat2campaign.domain.enums import SourceQuality
from chat2campaign.domain.signal import EventMetadata, TransformedEvent
from chat2campaign.foundation.clock import iso_now
from chat2campaign.foundation.identifiers import prefixed_id
from chat2campaign.gateway.http import USER_AGENT

logger = logging.getLogger(__name__)


class TransformationError(Exception):
    """Raised when an upstream payload cannot be mapped to events."""

    def __init__(self, source_id: str, reason: str) -> None:
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"Transformation failed for '{source_id}': {reason}")


# ── Field helpers ────────────────────────────────────────────────────────────

def _first(item: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First truthy value among *keys*, else *default*."""
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return default


def _nested(item: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(item, dict):
            return None
        item = item.get(key)
    return item


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _records(payload: Any, *keys: str) -> list[dict[str, Any]]:
    """Pull the first list found under *keys*; non-dict rows are skipped."""
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    rows = _first(payload, *keys, default=[])
    if not isinstance(rows, list):
        raise ValueError(f"expected a list under {keys[0]!r}")
    return [r for r in rows if isinstance(r, dict)]


# ── Base ─────────────────────────────────────────────────────────────────────

class SourceAdapter(ABC):
    """Describes how to call and read one upstream API."""

    api_endpoint: str = "generic_api"
    quality: SourceQuality = SourceQuality.HIGH
    uses_api_key: bool = False
    uses_bearer: bool = True

    @property
    @abstractmethod
    def source_name(self) -> str:
        ...

    @abstractmethod
    def default_endpoint(self, source_id: str) -> str:
        ...

    @abstractmethod
    def events(self, source_id: str, payload: Any) -> list[dict[str, Any]]:
        """Map *payload* to partial event dicts (no id or metadata yet)."""
        ...

    def extra_headers(self, token: Optional[str]) -> dict[str, str]:
        return {}

    def headers(self, token: Optional[str]) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        headers.update(self.extra_headers(token))
        if token and self.uses_api_key:
            headers["X-API-Key"] = token
        if token and self.uses_bearer:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def endpoint_label(self, source_id: str) -> str:
        return self.api_endpoint

    def transform(
        self, source_id: str, payload: Any, response_time: float,
    ) -> list[TransformedEvent]:
        return [
            TransformedEvent(
                id=prefixed_id("real"),
                source=source_id,
                metadata=EventMetadata(
                    source_quality=self.quality,
                    api_endpoint=self.endpoint_label(source_id),
                    response_time=response_time,
                    is_real_api=True,
                ),
                **fields,
            )
            for fields in self.events(source_id, payload)
        ]


# ── Concrete adapters ────────────────────────────────────────────────────────

class WebsiteAnalyticsAdapter(SourceAdapter):
    api_endpoint = "website_analytics_api"
    uses_api_key = True
    uses_bearer = False

    @property
    def source_name(self) -> str:
        return "website"

    def default_endpoint(self, source_id: str) -> str:
        return "https://api.example.com/analytics"

    def events(self, source_id: str, payload: Any) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for pv in _records(payload, "pageviews", "page_views"):
            out.append({
                "event_type": "page_view",
                "timestamp": str(_first(pv, "timestamp", "date", default=iso_now())),
                "user_id": _as_str(_first(pv, "user_id", "userId")),
                "session_id": _as_str(_first(pv, "session_id", "sessionId")),
                "data": {
                    "page_url": _first(pv, "page", "url", "path"),
                    "page_title": pv.get("title"),
                    "referrer": pv.get("referrer"),
                    "device_type": _first(pv, "device_type", "device"),
                    "browser": pv.get("browser"),
                    "session_duration": _first(pv, "session_duration", "duration"),
                    "bounce_rate": _first(pv, "bounce_rate", "bounced"),
                },
            })
        for conv in _records(payload, "conversions"):
            out.append({
                "event_type": "conversion",
                "timestamp": str(_first(conv, "timestamp", "date", default=iso_now())),
                "user_id": _as_str(_first(conv, "user_id", "userId")),
                "session_id": _as_str(_first(conv, "session_id", "sessionId")),
                "data": {
                    "conversion_type": _first(conv, "type", default="purchase"),
                    "value": _first(conv, "value", "amount"),
                    "currency": _first(conv, "currency", default="USD"),
                    "conversion_path": _first(conv, "path", "channel"),
                },
            })
        return out


class ShopifyAdapter(SourceAdapter):
    api_endpoint = "shopify_api"

    @property
    def source_name(self) -> str:
        return "shopify"

    def default_endpoint(self, source_id: str) -> str:
        return "https://api.shopify.com/admin/api/2023-01/orders.json"

    def extra_headers(self, token: Optional[str]) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["X-Shopify-Access-Token"] = token
        return headers

    def events(self, source_id: str, payload: Any) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for order in _records(payload, "orders"):
            customer = order.get("customer") if isinstance(order.get("customer"), dict) else {}
            line_items = [i for i in order.get("line_items") or [] if isinstance(i, dict)]
            out.append({
                "event_type": "order_created",
                "timestamp": str(_first(order, "created_at", "timestamp", default=iso_now())),
                "user_id": _as_str(customer.get("id") or order.get("customer_id")),
                "data": {
                    "order_id": _first(order, "id", "order_id"),
                    "order_number": _first(order, "order_number", "number"),
                    "total_price": _as_float(_first(order, "total_price", "total", default="0")),
                    "currency": _first(order, "currency", default="USD"),
                    "fulfillment_status": order.get("fulfillment_status"),
                    "payment_status": _first(order, "financial_status", "payment_status"),
                    "items_count": len(line_items),
                    "customer_email": order.get("email") or customer.get("email"),
                    "items": [
                        {
                            "product_id": item.get("product_id"),
                            "variant_id": item.get("variant_id"),
                            "name": _first(item, "name", "title"),
                            "quantity": item.get("quantity"),
                            "price": _as_float(_first(item, "price", default="0")),
                        }
                        for item in line_items
                    ],
                },
            })
        return out


class FacebookPageAdapter(SourceAdapter):
    api_endpoint = "facebook_graph_api"
    quality = SourceQuality.MEDIUM

    @property
    def source_name(self) -> str:
        return "facebook_page"

    def default_endpoint(self, source_id: str) -> str:
        return "https://graph.facebook.com/v18.0/me/posts"

    def events(self, source_id: str, payload: Any) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for post in _records(payload, "data", "posts"):
            insights = _nested(post, "insights", "data") or []
            impressions = next(
                (i for i in insights if isinstance(i, dict) and i.get("name") == "post_impressions"),
                {},
            )
            values = impressions.get("values") or [{}]
            out.append({
                "event_type": "post_published",
                "timestamp": str(post.get("created_time") or iso_now()),
                "data": {
                    "post_id": post.get("id"),
                    "message": post.get("message"),
                    "post_type": _first(post, "type", default="status"),
                    "likes": _nested(post, "likes", "summary", "total_count") or 0,
                    "comments": _nested(post, "comments", "summary", "total_count") or 0,
                    "shares": _nested(post, "shares", "count") or 0,
                    "reach": _nested(values[0], "value") or 0,
                },
            })
        return out


class GoogleAdsAdapter(SourceAdapter):
    api_endpoint = "google_ads_api"

    @property
    def source_name(self) -> str:
        return "google_ads_tag"

    def default_endpoint(self, source_id: str) -> str:
        return "https://googleads.googleapis.com/v13/customers"

    def extra_headers(self, token: Optional[str]) -> dict[str, str]:
        developer_token = os.environ.get("GOOGLE_ADS_DEVELOPER_TOKEN")
        return {"developer-token": developer_token} if developer_token else {}

    def events(self, source_id: str, payload: Any) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for result in _records(payload, "results", "data"):
            metrics = result.get("metrics") if isinstance(result.get("metrics"), dict) else {}
            out.append({
                "event_type": "ad_performance",
                "timestamp": iso_now(),
                "data": {
                    "campaign_id": _nested(result, "campaign", "resource_name") or result.get("campaign_id"),
                    "impressions": _as_int(metrics.get("impressions")),
                    "clicks": _as_int(metrics.get("clicks")),
                    "cost_micros": _as_int(metrics.get("cost_micros")),
                    "conversions": _as_float(metrics.get("conversions")),
                    "ctr": _as_float(metrics.get("ctr")),
                    "average_cpc": _as_int(metrics.get("average_cpc")),
                },
            })
        return out


class CrmAdapter(SourceAdapter):
    api_endpoint = "crm_api"

    @property
    def source_name(self) -> str:
        return "crm_system"

    def default_endpoint(self, source_id: str) -> str:
        return "https://api.hubspot.com/crm/v3/objects/contacts"

    def extra_headers(self, token: Optional[str]) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def events(self, source_id: str, payload: Any) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for contact in _records(payload, "results", "contacts", "data"):
            props = contact.get("properties") if isinstance(contact.get("properties"), dict) else {}
            out.append({
                "event_type": "contact_updated",
                "timestamp": str(_first(contact, "updatedAt", "updated_at", default=iso_now())),
                "user_id": _as_str(_first(contact, "id", "contact_id")),
                "data": {
                    "contact_id": contact.get("id"),
                    "email": props.get("email") or contact.get("email"),
                    "lifecycle_stage": props.get("lifecyclestage") or contact.get("lifecycle_stage"),
                    "lead_score": _as_int(props.get("hubspotscore") or contact.get("lead_score")),
                    "last_activity": props.get("lastactivitydate") or contact.get("last_activity"),
                    "deal_stage": props.get("dealstage") or contact.get("deal_stage"),
                },
            })
        return out


class GenericAdapter(SourceAdapter):
    """Best-effort reader for sources without a dedicated adapter."""

    quality = SourceQuality.MEDIUM
    uses_api_key = True

    @property
    def source_name(self) -> str:
        return "generic"

    def default_endpoint(self, source_id: str) -> str:
        return f"https://api.{source_id}.com/data"

    def extra_headers(self, token: Optional[str]) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def endpoint_label(self, source_id: str) -> str:
        return f"{source_id}_api"

    def events(self, source_id: str, payload: Any) -> list[dict[str, Any]]:
        if isinstance(payload, list):
            items = payload
        elif isinstance(payload, dict):
            items = _first(payload, "data", "results", "items", "events", default=[payload])
            if not isinstance(items, list):
                items = [payload]
        else:
            raise ValueError(f"expected a JSON object or array, got {type(payload).__name__}")

        out: list[dict[str, Any]] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            out.append({
                "event_type": str(_first(item, "type", "event_type", default="generic_event")),
                "timestamp": str(_first(item, "timestamp", "created_at", "date", default=iso_now())),
                "user_id": _as_str(_first(item, "user_id", "userId", "customer_id")),
                "session_id": _as_str(_first(item, "session_id", "sessionId")),
                "data": dict(item),
            })
        return out


# ── Registry ─────────────────────────────────────────────────────────────────

class AdapterRegistry:
    """Maps a source id to its adapter; unknown ids use the generic adapter.

    Usage:
        registry = AdapterRegistry.default()
        events = registry.transform("shopify", body, response_time=120.0)
    """

    def __init__(self, fallback: SourceAdapter | None = None) -> None:
        self._adapters: dict[str, SourceAdapter] = {}
        self._fallback = fallback or GenericAdapter()

    @classmethod
    def default(cls) -> "AdapterRegistry":
        registry = cls()
        for adapter in (
            WebsiteAnalyticsAdapter(),
            ShopifyAdapter(),
            FacebookPageAdapter(),
            GoogleAdsAdapter(),
            CrmAdapter(),
        ):
            registry.register(adapter)
        return registry

    def register(self, adapter: SourceAdapter) -> None:
        self._adapters[adapter.source_name] = adapter
        logger.debug("Registered source adapter: %s", adapter.source_name)

    def for_source(self, source_id: str) -> SourceAdapter:
        return self._adapters.get(source_id, self._fallback)

    def transform(
        self, source_id: str, payload: Any, response_time: float,
    ) -> list[TransformedEvent]:
        """Normalise an upstream body.

        Raises:
            TransformationError: If the body's shape does not fit the adapter.
        """
        adapter = self.for_source(source_id)
        try:
            return adapter.transform(source_id, payload, response_time)
        except (ValueError, TypeError, AttributeError) as exc:
            raise TransformationError(source_id, str(exc)) from exc

    @property
    def adapter_names(self) -> list[str]:
        return list(self._adapters)
