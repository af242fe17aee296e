"""APIGateway — fetches events for a data source, real or mocked.

fetch_data() never raises.  Depending on the source's config and recent
failure history it returns one of:
    - synthesized events (source configured as mocked)
    - upstream events transformed by the source's adapter
    - synthesized events tagged ``api_fallback`` with the reason the real
      call was skipped or failed

Upstream calls run in a worker thread (requests is blocking) with a hard
per-attempt timeout, linear backoff between attempts, and a per-source
circuit breaker held in an injected FailureTracker.

A caller may pass a ``budget`` in seconds.  Attempts, their timeouts and the
backoff sleeps all fit inside it; running out counts as a failed call.  A
fetch cancelled from outside also counts as a failure before the
cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from chat2campaign.domain.enums import HealthStatus, SourceType
from chat2campaign.domain.signal import TransformedEvent
from chat2campaign.foundation.clock import iso_now, to_iso
from chat2campaign.gateway.adapters import AdapterRegistry, TransformationError
from chat2campaign.gateway.failures import FailureTracker
from chat2campaign.gateway.http import HttpClient
from chat2campaign.sources.base import SignalSource
from chat2campaign.sources.catalog import DataSourceCatalog, SourceConfig

logger = logging.getLogger(__name__)


class SourceHealth(BaseModel):
    configured_type: str
    enabled: bool
    has_api_config: bool
    failure_count: int
    last_failure: Optional[str] = None
    temporarily_disabled: bool
    health_status: HealthStatus


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    response_time: float


class APIGateway:
    """Retry, timeout, circuit-breaking and mock fallback around upstream APIs.

    Args:
        catalog: Source definitions and per-source config.
        signal_source: Produces synthesized events for mocked and fallback paths.
        failures: Circuit-breaker state, owned by the caller.
        http: Blocking JSON client.
        adapters: Per-source request/response adapters.
        retry_attempts: Retries after the first attempt.
        retry_delay: Seconds; attempt *n* waits ``retry_delay * n`` before retrying.
        timeout: Seconds allowed for each attempt.
        sleep: Awaitable sleep, swapped out in tests.
    """

    def __init__(
        self,
        catalog: DataSourceCatalog,
        signal_source: SignalSource,
        failures: FailureTracker,
        http: HttpClient | None = None,
        adapters: AdapterRegistry | None = None,
        retry_attempts: int = 2,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._catalog = catalog
        self._signal_source = signal_source
        self._failures = failures
        self._http = http or HttpClient()
        self._adapters = adapters or AdapterRegistry.default()
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._timeout = timeout
        self._sleep = sleep

    @property
    def failures(self) -> FailureTracker:
        return self._failures

    # ── Fetch ────────────────────────────────────────────────────────────

    async def fetch_data(
        self, source_id: str, budget: Optional[float] = None,
    ) -> list[TransformedEvent]:
        """Events for *source_id*; *budget* bounds the whole upstream call in seconds."""
        source = self._catalog.get_source(source_id)
        config = self._catalog.get_config(source_id)
        if source is None or config is None:
            logger.error("Source configuration not found for: %s", source_id)
            return self._fallback(source_id, f"Source {source_id} not configured")

        if config.type != SourceType.REAL_API:
            logger.debug("Source %s is mocked, synthesizing events", source_id)
            return self._signal_source.generate_events(source_id)

        if self._failures.is_tripped(source_id):
            logger.warning("API for %s temporarily disabled due to repeated failures", source_id)
            return self._fallback(source_id, "API temporarily disabled")

        if budget is not None and budget <= 0:
            logger.warning("No time left to call the %s API", source_id)
            return self._fallback(source_id, "No time left for API call")

        started = time.monotonic()
        try:
            body = await self._request(source_id, config, budget)
        except asyncio.CancelledError:
            logger.error("Real API fetch for %s cancelled before completing", source_id)
            self._failures.record_failure(source_id)
            raise
        except Exception as exc:
            logger.error("Real API fetch failed for %s: %s", source_id, exc)
            self._failures.record_failure(source_id)
            return self._fallback(source_id, str(exc) or type(exc).__name__)
        response_time = round((time.monotonic() - started) * 1000, 1)

        self._failures.clear(source_id)
        try:
            events = self._adapters.transform(source_id, body, response_time)
        except TransformationError as exc:
            logger.error("%s", exc)
            return []
        logger.info("Fetched %d events from %s API", len(events), source_id)
        return events

    async def _request(
        self, source_id: str, config: SourceConfig, budget: Optional[float] = None,
    ) -> Any:
        adapter = self._adapters.for_source(source_id)
        api_config = config.api_config
        endpoint = (api_config and api_config.endpoint) or adapter.default_endpoint(source_id)
        headers = adapter.headers(api_config.auth_token if api_config else None)

        deadline = time.monotonic() + budget if budget is not None else None
        last_error: Exception | None = None
        for attempt in range(self._retry_attempts + 1):
            timeout = self._timeout
            if deadline is not None:
                timeout = min(timeout, deadline - time.monotonic())
                if timeout <= 0:
                    last_error = TimeoutError(f"request budget of {budget:.2f}s exhausted")
                    break
            try:
                logger.debug(
                    "API request for %s (attempt %d/%d)",
                    source_id, attempt + 1, self._retry_attempts + 1,
                )
                return await asyncio.wait_for(
                    asyncio.to_thread(self._http.get_json, endpoint, headers, timeout),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"request timed out after {timeout:.2f}s")
            except Exception as exc:
                last_error = exc
            logger.warning(
                "API request attempt %d failed for %s: %s",
                attempt + 1, source_id, last_error,
            )
            if attempt < self._retry_attempts:
                delay = self._retry_delay * (attempt + 1)
                if deadline is not None and time.monotonic() + delay >= deadline:
                    logger.warning("No budget left to retry %s after %d attempts", source_id, attempt + 1)
                    break
                await self._sleep(delay)
        assert last_error is not None
        raise last_error

    def _fallback(self, source_id: str, reason: str) -> list[TransformedEvent]:
        logger.info("Falling back to mock data for %s: %s", source_id, reason)
        stamp = iso_now()
        return [
            event.model_copy(update={
                "metadata": event.metadata.model_copy(update={
                    "api_fallback": True,
                    "fallback_reason": reason,
                    "fallback_timestamp": stamp,
                }),
            })
            for event in self._signal_source.generate_events(source_id)
        ]

    # ── Circuit breaker ──────────────────────────────────────────────────

    def is_temporarily_disabled(self, source_id: str) -> bool:
        return self._failures.is_tripped(source_id)

    def reset_failures(self, source_id: str) -> None:
        self._failures.clear(source_id)
        logger.info("Reset failure tracking for %s", source_id)

    def source_health(self, source_id: str) -> HealthStatus:
        if self._failures.is_tripped(source_id):
            return HealthStatus.UNAVAILABLE
        record = self._failures.get(source_id)
        if record is not None and record.count > 0:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def health_status(self) -> dict[str, SourceHealth]:
        self._failures.sweep_expired()
        report: dict[str, SourceHealth] = {}
        for source in self._catalog.all_sources():
            config = self._catalog.get_config(source.id)
            record = self._failures.get(source.id)
            report[source.id] = SourceHealth(
                configured_type=config.type.value if config else "unknown",
                enabled=config.enabled if config else False,
                has_api_config=bool(config and config.api_config and config.api_config.endpoint),
                failure_count=record.count if record else 0,
                last_failure=to_iso(record.last_failure) if record else None,
                temporarily_disabled=self.is_temporarily_disabled(source.id),
                health_status=self.source_health(source.id),
            )
        return report

    async def test_connection(self, source_id: str) -> ConnectionTestResult:
        started = time.monotonic()
        events = await self.fetch_data(source_id)
        elapsed = round((time.monotonic() - started) * 1000, 1)
        if events and events[0].metadata.is_real_api:
            return ConnectionTestResult(
                success=True,
                message=f"Successfully connected to {source_id} API and fetched {len(events)} events",
                response_time=elapsed,
            )
        return ConnectionTestResult(
            success=False,
            message=f"Connected but using mock data for {source_id} (API may be configured incorrectly)",
            response_time=elapsed,
        )
