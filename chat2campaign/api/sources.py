"""REST endpoints for data source management and connection diagnostics.

Paths:
    GET  /api/sources                  catalog with current config
    GET  /api/sources/health           per-source circuit-breaker health
    POST /api/sources/validate         check a client source selection
    PUT  /api/sources/{id}/config      change type / enabled / api config
    POST /api/sources/{id}/test        fetch once and report real vs mock
    POST /api/sources/{id}/reset       clear the failure record
    GET  /api/recommendations/sample   a schema-valid example document
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from chat2campaign.domain.enums import SourceType
from chat2campaign.gateway.api_gateway import APIGateway
from chat2campaign.sources.catalog import ApiConfig, DataSourceCatalog
from chat2campaign.validation.validator import RecommendationValidator

logger = logging.getLogger(__name__)


class SourceConfigUpdate(BaseModel):
    type: Optional[SourceType] = None
    enabled: Optional[bool] = None
    api_config: Optional[ApiConfig] = None


class SelectionRequest(BaseModel):
    selected_sources: list[str]


def create_sources_router(
    catalog: DataSourceCatalog,
    gateway: APIGateway,
    validator: RecommendationValidator,
) -> APIRouter:
    """Factory that wires the source endpoints to the catalog and gateway."""

    router = APIRouter(prefix="/api", tags=["sources"])

    def _require(source_id: str) -> None:
        if catalog.get_source(source_id) is None:
            raise HTTPException(status_code=404, detail=f"Source {source_id} not found")

    @router.get("/sources")
    async def list_sources() -> dict[str, Any]:
        sources = []
        for source in catalog.all_sources():
            config = catalog.get_config(source.id)
            sources.append({
                **source.model_dump(),
                "config": config.model_dump(mode="json") if config else None,
            })
        return {"sources": sources, "count": len(sources), "stats": catalog.stats()}

    @router.get("/sources/health")
    async def sources_health() -> dict[str, Any]:
        return {sid: h.model_dump(mode="json") for sid, h in gateway.health_status().items()}

    @router.post("/sources/validate")
    async def validate_selection(body: SelectionRequest) -> dict[str, Any]:
        return catalog.validate_selection(body.selected_sources).model_dump()

    @router.put("/sources/{source_id}/config")
    async def update_source_config(source_id: str, body: SourceConfigUpdate) -> dict[str, Any]:
        _require(source_id)
        changes = body.model_dump(exclude_none=True)
        if not changes:
            raise HTTPException(status_code=400, detail="No config changes supplied")
        catalog.update_config(source_id, **changes)
        return catalog.get_config(source_id).model_dump(mode="json")

    @router.post("/sources/{source_id}/test")
    async def test_source(source_id: str) -> dict[str, Any]:
        _require(source_id)
        logger.info("Testing connection for source %s", source_id)
        result = await gateway.test_connection(source_id)
        return result.model_dump()

    @router.post("/sources/{source_id}/reset")
    async def reset_source(source_id: str) -> dict[str, Any]:
        _require(source_id)
        gateway.reset_failures(source_id)
        return {"source_id": source_id, "health_status": gateway.source_health(source_id).value}

    @router.get("/recommendations/sample")
    async def sample_recommendation() -> dict[str, Any]:
        return validator.sample_recommendation()

    return router
