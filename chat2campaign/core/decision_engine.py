"""DecisionEngine — turns a simulation config into one CampaignRecommendation.

Flow:
    1. Aggregate signals for the selected sources (async, may hit the gateway).
    2. Run the compiled decision graph over the snapshot in a worker thread.
    3. Return the finished recommendation dict.

Failure policy:
    generate() never raises.  An empty signal set, any exception inside the
    pipeline, or running past the time bound all degrade to a recommendation
    from the RandomCampaignGenerator for the same channel selection.  The
    time bound is the configured timeout, capped at the simulation interval.
    Aggregation gets AGGREGATION_SHARE of it as the gateway budget, so
    upstream retries end, and count as failures, before the bound cancels them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

from chat2campaign.core.aggregator import SignalAggregator
from chat2campaign.core.fallback import RandomCampaignGenerator
from chat2campaign.domain.enums import Channel
from chat2campaign.domain.messages import SimulationConfig
from chat2campaign.domain.rules import ChannelRule, default_channel_rules
from chat2campaign.graph.builder import build_decision_graph
from chat2campaign.graph.state import CampaignState
from chat2campaign.sources.base import ContentTemplateProvider

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_VERSION = "v1.0-decision-engine"
AGGREGATION_SHARE = 0.8


class EmptySignalSetError(Exception):
    """Raised when none of the selected sources produced a signal."""

    def __init__(self, source_ids: list[str]) -> None:
        self.source_ids = source_ids
        super().__init__(f"No signals collected from sources: {source_ids}")


def normalize_channels(channels: list[str]) -> list[str]:
    """Known channels in client order without duplicates; Email if none remain."""
    known = Channel.values()
    selected: list[str] = []
    for channel in channels:
        if channel in known and channel not in selected:
            selected.append(channel)
    return selected or [Channel.EMAIL.value]


class DecisionEngine:
    """Rule-driven recommendation generator with a random fallback.

    Args:
        aggregator: Collects the signal snapshot for a source selection.
        content: Supplies explanation and payload copy.
        fallback: Used whenever the rule-driven path cannot produce a result.
        rules: Channel rules in evaluation order; defaults to the built-in table.
        engine_version: Stamped into campaign_meta.
        enhance: Run the explanation-enhancement step.
        timeout: Seconds allowed for aggregation plus graph execution.
    """

    def __init__(
        self,
        aggregator: SignalAggregator,
        content: ContentTemplateProvider,
        fallback: RandomCampaignGenerator | None = None,
        rules: list[ChannelRule] | None = None,
        engine_version: str = DEFAULT_ENGINE_VERSION,
        enhance: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._aggregator = aggregator
        self._fallback = fallback or RandomCampaignGenerator(content)
        self._rules: list[ChannelRule] = list(rules) if rules is not None else default_channel_rules()
        self._engine_version = engine_version
        self._enhance = enhance
        self._timeout = timeout
        self._graph = build_decision_graph(content)

    # ── Public API ───────────────────────────────────────────────────────

    async def generate(self, config: SimulationConfig) -> dict[str, Any]:
        """Produce one recommendation for *config*; falls back instead of raising."""
        timeout = self.time_bound(config)
        try:
            return await asyncio.wait_for(self._generate(config, timeout), timeout=timeout)
        except EmptySignalSetError as exc:
            logger.warning("%s, using fallback generator", exc)
        except asyncio.TimeoutError:
            logger.error(
                "Recommendation generation exceeded %.2fs, using fallback generator", timeout,
            )
        except Exception:
            logger.exception("Decision engine failed, using fallback generator")
        return self._fallback.generate(self._fallback_config(config))

    def time_bound(self, config: SimulationConfig) -> float:
        """Seconds allowed for one generation: never longer than the client's interval."""
        if config.interval:
            return min(self._timeout, config.interval / 1000)
        return self._timeout

    @property
    def rules(self) -> list[ChannelRule]:
        return list(self._rules)

    def add_rule(self, rule: ChannelRule) -> None:
        """Append *rule*; a rule with the same id is replaced in place."""
        for index, existing in enumerate(self._rules):
            if existing.id == rule.id:
                self._rules[index] = rule
                logger.info("Replaced channel rule %s", rule.id)
                return
        self._rules.append(rule)
        logger.info("Added channel rule %s", rule.id)

    def remove_rule(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.id != rule_id]
        removed = len(self._rules) < before
        if removed:
            logger.info("Removed channel rule %s", rule_id)
        return removed

    # ── Internals ────────────────────────────────────────────────────────

    async def _generate(self, config: SimulationConfig, bound: float) -> dict[str, Any]:
        started = time.monotonic()
        aggregated = await self._aggregator.aggregate(
            config.selected_sources, budget=bound * AGGREGATION_SHARE,
        )
        if aggregated.count == 0:
            raise EmptySignalSetError(config.selected_sources)

        initial_state: CampaignState = {
            "aggregated": aggregated,
            "selected_channels": normalize_channels(config.selected_channels),
            "rules": list(self._rules),
            "engine_version": self._engine_version,
            "enhance": self._enhance,
            "started_at": started,
        }
        # Graph nodes are CPU-only; run off the loop so other connections keep flowing
        final_state = await asyncio.to_thread(self._graph.invoke, initial_state)
        recommendation = final_state["recommendation"]

        logger.info(
            "Generated recommendation %s: segment=%s urgency=%s channels=%s",
            recommendation["id"],
            recommendation["audience"]["segment_id"],
            aggregated.urgency_level.value,
            [p["channel"] for p in recommendation["channel_plan"]],
        )
        return recommendation

    @staticmethod
    def _fallback_config(config: SimulationConfig) -> Optional[SimulationConfig]:
        if not config.selected_channels:
            return None
        return config
