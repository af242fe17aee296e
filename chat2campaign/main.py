"""chat2campaign — signal-driven marketing campaign recommendations.

This is the application entry point.  It wires the DataSourceCatalog,
APIGateway, SignalAggregator, DecisionEngine, RecommendationValidator and
ConnectionHub together and mounts the WebSocket and REST endpoints.
"""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from chat2campaign.api.sources import create_sources_router
from chat2campaign.api.ws_campaigns import create_campaign_router
from chat2campaign.config import settings
from chat2campaign.core.aggregator import SignalAggregator
from chat2campaign.core.decision_engine import DecisionEngine
from chat2campaign.core.fallback import RandomCampaignGenerator
from chat2campaign.gateway.api_gateway import APIGateway
from chat2campaign.gateway.failures import FailureTracker
from chat2campaign.gateway.http import HttpClient
from chat2campaign.hub.connection_hub import ConnectionHub
from chat2campaign.sources.catalog import DataSourceCatalog
from chat2campaign.sources.content import TemplateContentProvider
from chat2campaign.sources.mock import MockSignalSource
from chat2campaign.validation.validator import RecommendationValidator

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

# ── Sources ──────────────────────────────────────────────────────────────────

catalog = DataSourceCatalog()
signal_source = MockSignalSource(catalog, rng=random.Random(settings.mock_seed))
content = TemplateContentProvider(rng=random.Random(settings.mock_seed))

# ── Gateway ──────────────────────────────────────────────────────────────────

http_client = HttpClient()
gateway = APIGateway(
    catalog,
    signal_source,
    FailureTracker(
        max_failures=settings.api_max_failures,
        reset_window=timedelta(milliseconds=settings.api_failure_reset_ms),
    ),
    http=http_client,
    retry_attempts=settings.api_retry_attempts,
    retry_delay=settings.api_retry_delay_ms / 1000,
    timeout=settings.api_timeout_ms / 1000,
)

# ── Decision Engine ──────────────────────────────────────────────────────────

engine = DecisionEngine(
    SignalAggregator(catalog, signal_source, gateway),
    content,
    fallback=RandomCampaignGenerator(content),
    engine_version=settings.engine_version,
    enhance=settings.ai_enhancement_enabled,
    timeout=settings.generation_timeout_ms / 1000,
)
validator = RecommendationValidator(engine_version=settings.engine_version)

# ── Connection Hub ───────────────────────────────────────────────────────────

hub = ConnectionHub(
    engine,
    validator,
    heartbeat_interval=settings.heartbeat_interval_ms / 1000,
    connection_timeout=settings.connection_timeout_ms / 1000,
    default_interval_ms=settings.default_simulation_interval_ms,
    default_duration_ms=settings.default_simulation_duration_ms,
    global_interval=settings.global_stream_interval_ms / 1000,
    stream_mode=settings.stream_mode,
    close_timeout=settings.close_timeout_ms / 1000,
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    hub.start()
    try:
        yield
    finally:
        try:
            await asyncio.wait_for(hub.shutdown(), timeout=settings.shutdown_grace_ms / 1000)
        except asyncio.TimeoutError:
            logger.error("Hub shutdown exceeded %dms grace period", settings.shutdown_grace_ms)
        http_client.close()


# ── App ──────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.app_name,
    description="Signal-driven marketing campaign recommendations over WebSocket",
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routes ───────────────────────────────────────────────────────────────────

app.include_router(create_campaign_router(hub))
app.include_router(create_sources_router(catalog, gateway, validator))


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "engine_version": settings.engine_version,
        "stream": hub.stats(),
        "sources": catalog.stats(),
        "api_health": {
            sid: h.model_dump(mode="json") for sid, h in gateway.health_status().items()
        },
        "validation": validator.get_stats(),
    }
