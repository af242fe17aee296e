"""DataSourceCatalog — static source definitions plus mutable per-source config.

The catalog is a plain key-value provider: the gateway and aggregator ask it
whether a source exists, whether it is enabled, and whether it should be
mocked or fetched from a real API.  State is process memory only.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from pydantic import BaseModel, Field

from chat2campaign.domain.enums import SourceType

logger = logging.getLogger(__name__)

MAX_SELECTED_SOURCES = 3


class ApiConfig(BaseModel):
    endpoint: Optional[str] = None
    auth_token: Optional[str] = Field(default=None, alias="authToken")
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")

    model_config = {"populate_by_name": True}


class SourceConfig(BaseModel):
    type: SourceType = SourceType.MOCKED
    enabled: bool = True
    api_config: Optional[ApiConfig] = Field(default=None, alias="apiConfig")

    model_config = {"populate_by_name": True}


class DataSource(BaseModel):
    id: str
    name: str
    category: str
    description: str = ""
    capabilities: list[str] = Field(default_factory=list)
    mock_event_types: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class SelectionResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


_DEFINITIONS: tuple[DataSource, ...] = (
    DataSource(
        id="website", name="Website Events", category="Web Analytics",
        description="Track user behavior, page views, and conversion events on your website",
        capabilities=["pageviews", "sessions", "conversions", "user_events"],
        mock_event_types=["page_view", "session_start", "conversion", "cart_abandonment"],
    ),
    DataSource(
        id="shopify", name="Shopify Store", category="E-commerce",
        description="Orders, customers, and products from your Shopify store",
        capabilities=["orders", "customers", "products", "inventory"],
        mock_event_types=["order_created", "order_cancelled", "customer_created", "product_viewed"],
    ),
    DataSource(
        id="facebook_page", name="Facebook Page", category="Social Media",
        description="Engagement metrics and audience insights from your Facebook page",
        capabilities=["posts", "engagement", "audience_insights", "messages"],
        mock_event_types=["post_published", "comment_received", "message_received", "follower_gained"],
    ),
    DataSource(
        id="google_tag_manager", name="Google Tag Manager", category="Analytics",
        description="Enhanced tracking and event management through Google Tag Manager",
        capabilities=["custom_events", "enhanced_ecommerce", "goal_tracking"],
        mock_event_types=["custom_event", "enhanced_ecommerce", "goal_completion"],
    ),
    DataSource(
        id="google_ads_tag", name="Google Ads Tag", category="Advertising",
        description="Advertising performance data and conversion tracking from Google Ads",
        capabilities=["ad_performance", "conversion_tracking", "audience_data"],
        mock_event_types=["ad_click", "conversion", "impression", "cost_data"],
    ),
    DataSource(
        id="facebook_pixel", name="Facebook Pixel", category="Advertising",
        description="Website conversion tracking and audience building through Facebook Pixel",
        capabilities=["conversion_tracking", "audience_building", "retargeting"],
        mock_event_types=["pixel_fired", "conversion", "custom_event", "audience_match"],
    ),
    DataSource(
        id="crm_system", name="CRM System", category="Customer Management",
        description="Contacts, deals, and activities from your CRM",
        capabilities=["contacts", "deals", "activities", "customer_lifecycle"],
        mock_event_types=["contact_created", "deal_updated", "activity_logged", "lifecycle_stage_change"],
    ),
    DataSource(
        id="twitter_page", name="Twitter Page", category="Social Media",
        description="Engagement and audience insights from your Twitter account",
        capabilities=["tweets", "engagement", "mentions", "followers"],
        mock_event_types=["tweet_published", "mention_received", "follower_gained", "engagement_event"],
    ),
    DataSource(
        id="review_sites", name="Review Sites", category="Reputation",
        description="Customer reviews and ratings aggregated from review platforms",
        capabilities=["reviews", "ratings", "sentiment", "response_management"],
        mock_event_types=["review_received", "rating_updated", "response_posted"],
    ),
    DataSource(
        id="ad_managers", name="Ad Managers", category="Advertising",
        description="Multi-platform advertising performance data",
        capabilities=["campaign_performance", "audience_insights", "budget_optimization"],
        mock_event_types=["campaign_started", "performance_update", "budget_alert", "audience_insight"],
    ),
)


class DataSourceCatalog:
    """Registry of known data sources and their runtime configuration.

    Usage:
        catalog = DataSourceCatalog()
        catalog.set_source_type("shopify", SourceType.REAL_API)
        config = catalog.get_config("shopify")
    """

    def __init__(self, definitions: tuple[DataSource, ...] = _DEFINITIONS) -> None:
        self._definitions: dict[str, DataSource] = {d.id: d for d in definitions}
        self._configs: dict[str, SourceConfig] = {}
        self.reset_to_defaults()

    # ── Lookup ───────────────────────────────────────────────────────────

    def all_sources(self) -> list[DataSource]:
        return list(self._definitions.values())

    def enabled_sources(self) -> list[DataSource]:
        return [s for s in self._definitions.values() if self._configs[s.id].enabled]

    def get_source(self, source_id: str) -> DataSource | None:
        return self._definitions.get(source_id)

    def get_config(self, source_id: str) -> SourceConfig | None:
        return self._configs.get(source_id)

    def categories(self) -> list[str]:
        return sorted({d.category for d in self._definitions.values()})

    # ── Mutation ─────────────────────────────────────────────────────────

    def update_config(self, source_id: str, **changes) -> bool:
        """Merge *changes* into a source's config.  Returns False for unknown sources."""
        current = self._configs.get(source_id)
        if current is None:
            return False
        self._configs[source_id] = SourceConfig.model_validate(
            {**current.model_dump(), **changes}
        )
        logger.info("Updated config for source %s: %s", source_id, sorted(changes))
        return True

    def set_source_type(self, source_id: str, source_type: SourceType) -> bool:
        return self.update_config(source_id, type=source_type)

    def enable_source(self, source_id: str, enabled: bool = True) -> bool:
        return self.update_config(source_id, enabled=enabled)

    def set_global_type(self, source_type: SourceType) -> None:
        for source_id in self._configs:
            self.set_source_type(source_id, source_type)

    def reset_to_defaults(self) -> None:
        self._configs = {sid: SourceConfig() for sid in self._definitions}

    # ── Validation & stats ───────────────────────────────────────────────

    def validate_selection(self, selected: list[str]) -> SelectionResult:
        errors: list[str] = []
        if not selected:
            errors.append("At least one data source must be selected")
        if len(selected) > MAX_SELECTED_SOURCES:
            errors.append(f"Maximum of {MAX_SELECTED_SOURCES} data sources can be selected")

        unknown = [sid for sid in selected if sid not in self._definitions]
        if unknown:
            errors.append(f"Invalid data sources: {', '.join(unknown)}")

        disabled = [
            sid for sid in selected
            if sid in self._configs and not self._configs[sid].enabled
        ]
        if disabled:
            errors.append(f"Disabled data sources: {', '.join(disabled)}")

        return SelectionResult(valid=not errors, errors=errors)

    def stats(self) -> dict:
        configs = self._configs.values()
        return {
            "total": len(self._definitions),
            "enabled": sum(1 for c in configs if c.enabled),
            "mocked": sum(1 for c in configs if c.type == SourceType.MOCKED),
            "real_api": sum(1 for c in configs if c.type == SourceType.REAL_API),
            "by_category": dict(Counter(d.category for d in self._definitions.values())),
        }
