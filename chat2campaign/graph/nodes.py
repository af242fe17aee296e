"""LangGraph nodes — functions that transform CampaignState.

Each node:
    - Receives the full CampaignState
    - Returns a partial dict update
    - Never touches the gateway, aggregator or hub

Nodes that need content (explanations, payload copy) are built by
``make_*`` factories closing over a ContentTemplateProvider, so a seeded
provider makes the whole graph reproducible.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from chat2campaign.core import scoring
from chat2campaign.foundation.clock import iso_now, utc_now
from chat2campaign.foundation.identifiers import new_id
from chat2campaign.graph.state import CampaignState
from chat2campaign.sources.base import ContentTemplateProvider

logger = logging.getLogger(__name__)

Node = Callable[[CampaignState], dict]

TOP_SIGNAL_COUNT = 4


# ── 1. select_audience ──────────────────────────────────────────────────────

def select_audience(state: CampaignState) -> dict:
    audience = scoring.select_audience(state["aggregated"])
    logger.debug("Selected audience segment %s", audience["segment_id"])
    return {"audience": audience}


# ── 2. build_reasoning ──────────────────────────────────────────────────────

def make_build_reasoning(content: ContentTemplateProvider) -> Node:
    def build_reasoning(state: CampaignState) -> dict:
        aggregated = state["aggregated"]
        descriptions = [
            content.signal_description(s) for s in aggregated.signals[:TOP_SIGNAL_COUNT]
        ]
        return {"reasoning": {
            "signals": descriptions,
            "score": round(aggregated.audience_score, 2),
            "explain": content.explanation(aggregated),
        }}

    return build_reasoning


# ── 3. score_channels ───────────────────────────────────────────────────────

def score_channels(state: CampaignState) -> dict:
    priorities = scoring.calculate_channel_priorities(
        state["selected_channels"],
        state["aggregated"],
        state["audience"],
        state.get("rules", []),
    )
    logger.debug(
        "Channel ranking: %s",
        ", ".join(f"{p.channel}={p.score:.2f}" for p in priorities),
    )
    return {"channel_priorities": [p.model_dump() for p in priorities]}


# ── 4. plan_channels ────────────────────────────────────────────────────────

def make_plan_channels(content: ContentTemplateProvider) -> Node:
    def plan_channels(state: CampaignState) -> dict:
        urgency = state["aggregated"].urgency_level
        now = utc_now()
        plan = [
            {
                "channel": p["channel"],
                "send_at": scoring.send_at(now, urgency, p["priority"]),
                "priority": p["priority"],
                "payload": content.channel_payload(p["channel"], p["priority"]),
                "delivery_instructions": scoring.delivery_instructions(p["channel"], p["priority"]),
            }
            for p in state["channel_priorities"]
        ]
        return {"channel_plan": plan}

    return plan_channels


# ── 5. assemble_meta ────────────────────────────────────────────────────────

def assemble_meta(state: CampaignState) -> dict:
    aggregated = state["aggregated"]
    return {"campaign_meta": {
        "source_snapshot": scoring.build_source_snapshot(aggregated.signals),
        "engine_version": state["engine_version"],
        "confidence": aggregated.audience_score,
        "signal_count": aggregated.count,
        "urgency_level": aggregated.urgency_level.value,
    }}


def route_enhancement(state: CampaignState) -> str:
    return "enhance" if state.get("enhance") else "skip"


# ── 6. enhance_explanation ──────────────────────────────────────────────────

def make_enhance_explanation(content: ContentTemplateProvider) -> Node:
    """Rewrite the explanation in a richer register and flag the meta.

    Stands in for an LLM pass; all wording comes from the content provider.
    """

    def enhance_explanation(state: CampaignState) -> dict:
        aggregated = state["aggregated"]
        return {
            "reasoning": {
                **state["reasoning"],
                "explain": content.enhanced_explanation(aggregated),
            },
            "campaign_meta": {
                **state["campaign_meta"],
                "ai_enhanced": True,
                "ai_confidence": round(content.uniform(0.85, 0.95), 2),
            },
        }

    return enhance_explanation


# ── 7. finalize ─────────────────────────────────────────────────────────────

def finalize(state: CampaignState) -> dict:
    elapsed_ms = (time.monotonic() - state.get("started_at", time.monotonic())) * 1000
    meta = {**state["campaign_meta"], "processing_time": round(elapsed_ms, 2)}
    return {"recommendation": {
        "id": new_id(),
        "timestamp": iso_now(),
        "audience": state["audience"],
        "reasoning": state["reasoning"],
        "channel_plan": state["channel_plan"],
        "campaign_meta": meta,
    }}
