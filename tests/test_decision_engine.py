"""Tests for the DecisionEngine, its LangGraph pipeline and the random fallback.

Randomness is pinned with seeded content providers and a static signal
source, so every run produces the same ranking.
"""

from __future__ import annotations

import asyncio
import random
import time
from datetime import timedelta
from typing import Any

import pytest

from chat2campaign.core.aggregator import SignalAggregator
from chat2campaign.core.decision_engine import DecisionEngine, normalize_channels
from chat2campaign.core.fallback import FALLBACK_ENGINE_VERSION, MAX_CHANNELS, RandomCampaignGenerator
from chat2campaign.domain.enums import SourceType, UrgencyLevel
from chat2campaign.domain.messages import SimulationConfig
from chat2campaign.domain.rules import ChannelRule, UrgencyEquals
from chat2campaign.domain.signal import AggregatedSignals
from chat2campaign.gateway.api_gateway import APIGateway
from chat2campaign.gateway.failures import FailureTracker
from chat2campaign.gateway.http import UpstreamRequestError
from chat2campaign.sources.catalog import DataSourceCatalog
from chat2campaign.sources.content import TemplateContentProvider
from chat2campaign.sources.mock import MockSignalSource
from chat2campaign.validation.validator import RecommendationValidator

from tests.test_aggregator import FakeGateway, StaticSignalSource
from tests.test_gateway import FakeHttpClient
from tests.test_signal import _signal


def _content(seed: int = 7) -> TemplateContentProvider:
    return TemplateContentProvider(random.Random(seed))


def _engine(signals: dict | None = None, **kwargs) -> DecisionEngine:
    source = StaticSignalSource(signals if signals is not None else {
        "website": [_signal(signal_type="cart_abandonment", weight=0.9, confidence=0.9)],
    })
    aggregator = SignalAggregator(DataSourceCatalog(), source, FakeGateway([]))
    return DecisionEngine(aggregator, _content(), **kwargs)


def _config(sources=("website",), channels=("Email", "SMS")) -> SimulationConfig:
    return SimulationConfig(selected_sources=list(sources), selected_channels=list(channels))


class SlowAggregator:
    async def aggregate(self, source_ids: list[str], budget: float | None = None) -> AggregatedSignals:
        await asyncio.sleep(5)
        return AggregatedSignals()


class BrokenAggregator:
    async def aggregate(self, source_ids: list[str], budget: float | None = None) -> AggregatedSignals:
        raise RuntimeError("upstream exploded")


class TestNormalizeChannels:
    def test_dedupes_and_keeps_order(self) -> None:
        assert normalize_channels(["SMS", "Email", "SMS"]) == ["SMS", "Email"]

    def test_unknown_dropped_and_default_email(self) -> None:
        assert normalize_channels(["Fax"]) == ["Email"]
        assert normalize_channels([]) == ["Email"]


class TestDecisionEngine:
    @pytest.mark.asyncio
    async def test_cart_abandonment_end_to_end(self) -> None:
        doc = await _engine().generate(_config())

        assert RecommendationValidator().validate(doc).valid
        assert doc["campaign_meta"]["urgency_level"] == UrgencyLevel.HIGH.value
        assert doc["campaign_meta"]["engine_version"] == "v1.0-decision-engine"
        assert doc["audience"]["segment_id"] == "high-intent-customers"

        plan = doc["channel_plan"]
        assert [e["priority"] for e in plan] == [1, 2]
        assert plan[0]["channel"] == "SMS"
        assert plan[0]["delivery_instructions"]["retry_policy"] == "exponential_backoff"
        assert plan[1]["delivery_instructions"]["retry_policy"] == "linear"

    @pytest.mark.asyncio
    async def test_snapshot_and_reasoning_follow_signals(self) -> None:
        doc = await _engine().generate(_config())
        assert doc["campaign_meta"]["source_snapshot"] == {"website": {"cart_abandonment": {"cart_value": 150}}}
        assert doc["campaign_meta"]["signal_count"] == 1
        assert doc["reasoning"]["score"] == round(0.9 * 0.9, 2)
        assert len(doc["reasoning"]["signals"]) == 1
        assert doc["campaign_meta"]["processing_time"] >= 0

    @pytest.mark.asyncio
    async def test_enhancement_flags_meta(self) -> None:
        doc = await _engine(enhance=True).generate(_config())
        assert doc["campaign_meta"]["ai_enhanced"] is True
        assert 0.85 <= doc["campaign_meta"]["ai_confidence"] <= 0.95

    @pytest.mark.asyncio
    async def test_enhancement_can_be_disabled(self) -> None:
        doc = await _engine(enhance=False).generate(_config())
        assert "ai_enhanced" not in doc["campaign_meta"]

    @pytest.mark.asyncio
    async def test_at_most_top_four_signal_descriptions(self) -> None:
        signals = {"website": [_signal(id=f"s{i}", signal_type="page_view", weight=0.4) for i in range(6)]}
        doc = await _engine(signals).generate(_config())
        assert len(doc["reasoning"]["signals"]) == 4

    @pytest.mark.asyncio
    async def test_empty_signal_set_uses_fallback(self) -> None:
        doc = await _engine(signals={}).generate(_config())
        assert doc["campaign_meta"]["engine_version"] == FALLBACK_ENGINE_VERSION
        assert RecommendationValidator().validate(doc).valid

    @pytest.mark.asyncio
    async def test_pipeline_error_uses_fallback(self) -> None:
        engine = DecisionEngine(BrokenAggregator(), _content())
        doc = await engine.generate(_config())
        assert doc["campaign_meta"]["engine_version"] == FALLBACK_ENGINE_VERSION
        assert {e["channel"] for e in doc["channel_plan"]} <= {"Email", "SMS"}

    @pytest.mark.asyncio
    async def test_timeout_uses_fallback(self) -> None:
        engine = DecisionEngine(SlowAggregator(), _content(), timeout=0.05)
        doc = await engine.generate(_config())
        assert doc["campaign_meta"]["engine_version"] == FALLBACK_ENGINE_VERSION

    def test_time_bound_capped_by_interval(self) -> None:
        engine = _engine(timeout=10.0)
        assert engine.time_bound(SimulationConfig(interval=3000)) == 3.0
        assert engine.time_bound(SimulationConfig(interval=60000)) == 10.0
        assert engine.time_bound(SimulationConfig()) == 10.0

    @pytest.mark.asyncio
    async def test_short_interval_falls_back_on_slow_aggregation(self) -> None:
        engine = DecisionEngine(SlowAggregator(), _content(), timeout=10.0)
        doc = await engine.generate(SimulationConfig(selected_channels=["Push"], interval=50))
        assert doc["campaign_meta"]["engine_version"] == FALLBACK_ENGINE_VERSION

    @pytest.mark.asyncio
    async def test_custom_engine_version(self) -> None:
        doc = await _engine(engine_version="v2-test").generate(_config())
        assert doc["campaign_meta"]["engine_version"] == "v2-test"


class TestUpstreamFailuresUnderTimeBound:
    def _wired(self, http: FakeHttpClient) -> tuple[DecisionEngine, APIGateway]:
        catalog = DataSourceCatalog()
        catalog.set_source_type("website", SourceType.REAL_API)
        mock = MockSignalSource(catalog, random.Random(9))
        gateway = APIGateway(
            catalog, mock,
            FailureTracker(max_failures=3, reset_window=timedelta(minutes=5)),
            http=http, retry_attempts=2, retry_delay=0.15, timeout=30.0,
        )
        engine = DecisionEngine(SignalAggregator(catalog, mock, gateway), _content(), timeout=10.0)
        return engine, gateway

    @pytest.mark.asyncio
    async def test_failing_upstream_trips_breaker_within_interval(self) -> None:
        http = FakeHttpClient(UpstreamRequestError("https://x", "HTTP 503: Service Unavailable", 503))
        engine, gateway = self._wired(http)
        config = SimulationConfig(selected_sources=["website"], selected_channels=["Email"], interval=400)

        for _ in range(3):
            doc = await engine.generate(config)
            assert doc["campaign_meta"]["engine_version"] == "v1.0-decision-engine"

        assert len(http.calls) == 6
        assert gateway.failures.get("website").count == 3
        assert gateway.is_temporarily_disabled("website") is True

        await engine.generate(config)
        assert len(http.calls) == 6

    @pytest.mark.asyncio
    async def test_hanging_upstream_still_records_failure(self) -> None:
        class HangingHttpClient(FakeHttpClient):
            def get_json(self, url: str, headers: dict[str, str], timeout: float) -> Any:
                self.calls.append((url, headers, timeout))
                time.sleep(timeout)
                raise TimeoutError("read timed out")

        http = HangingHttpClient()
        engine, gateway = self._wired(http)
        config = SimulationConfig(selected_sources=["website"], selected_channels=["Email"], interval=200)
        await engine.generate(config)
        assert all(t <= 0.2 for _, _, t in http.calls)
        assert gateway.failures.get("website").count == 1


class TestRuleManagement:
    def _rule(self, rule_id: str = "email-first", priority: int = 20) -> ChannelRule:
        return ChannelRule(
            id=rule_id, name="Email First", condition=UrgencyEquals(level=UrgencyLevel.HIGH),
            priority=priority, channels=["Email"],
        )

    def test_add_and_remove(self) -> None:
        engine = _engine()
        before = len(engine.rules)
        engine.add_rule(self._rule())
        assert len(engine.rules) == before + 1
        assert engine.remove_rule("email-first") is True
        assert engine.remove_rule("email-first") is False
        assert len(engine.rules) == before

    def test_same_id_replaces(self) -> None:
        engine = _engine()
        engine.add_rule(self._rule(priority=1))
        engine.add_rule(self._rule(priority=2))
        matching = [r for r in engine.rules if r.id == "email-first"]
        assert len(matching) == 1
        assert matching[0].priority == 2

    @pytest.mark.asyncio
    async def test_added_rule_changes_ranking(self) -> None:
        engine = _engine(rules=[self._rule()])
        doc = await engine.generate(_config())
        assert doc["channel_plan"][0]["channel"] == "Email"


class TestRandomCampaignGenerator:
    def test_output_is_valid(self) -> None:
        validator = RecommendationValidator()
        for doc in RandomCampaignGenerator(_content(3)).generate_batch(10):
            assert validator.validate(doc).valid

    def test_channels_drawn_from_selection(self) -> None:
        gen = RandomCampaignGenerator(_content(11))
        for _ in range(10):
            doc = gen.generate(_config(channels=("Push", "Ads")))
            channels = [e["channel"] for e in doc["channel_plan"]]
            assert set(channels) <= {"Push", "Ads"}
            assert len(channels) == len(set(channels))
            assert [e["priority"] for e in doc["channel_plan"]] == list(range(1, len(channels) + 1))

    def test_never_more_than_max_channels(self) -> None:
        gen = RandomCampaignGenerator(_content(5))
        config = _config(channels=("Email", "Push", "SMS", "WhatsApp", "Voice"))
        for _ in range(20):
            assert 1 <= len(gen.generate(config)["channel_plan"]) <= MAX_CHANNELS

    def test_snapshots_are_not_shared(self) -> None:
        gen = RandomCampaignGenerator(_content(1))
        a = gen.generate()
        a["campaign_meta"]["source_snapshot"].clear()
        b = gen.generate()
        assert b["campaign_meta"]["source_snapshot"]
