"""Graph builder — constructs the LangGraph decision topology.

Topology:

    START → select_audience → build_reasoning → score_channels
          → plan_channels → assemble_meta
               ├── "enhance" → enhance_explanation → finalize
               └── "skip"    → finalize
          finalize → END

The graph is compiled once and can be invoked many times.
"""

from __future__ import annotations

from langgraph.graph import END, START, StateGraph

from chat2campaign.graph.nodes import (
    assemble_meta,
    finalize,
    make_build_reasoning,
    make_enhance_explanation,
    make_plan_channels,
    route_enhancement,
    score_channels,
    select_audience,
)
from chat2campaign.graph.state import CampaignState
from chat2campaign.sources.base import ContentTemplateProvider


def build_decision_graph(content: ContentTemplateProvider):
    """Construct and compile the decision graph.

    Args:
        content: Supplies explanation and payload copy to the content nodes.

    Returns:
        A compiled LangGraph application.
    """
    graph = StateGraph(CampaignState)

    # ── Register nodes ───────────────────────────────────────────────────
    graph.add_node("select_audience", select_audience)
    graph.add_node("build_reasoning", make_build_reasoning(content))
    graph.add_node("score_channels", score_channels)
    graph.add_node("plan_channels", make_plan_channels(content))
    graph.add_node("assemble_meta", assemble_meta)
    graph.add_node("enhance_explanation", make_enhance_explanation(content))
    graph.add_node("finalize", finalize)

    # ── Edges ────────────────────────────────────────────────────────────
    graph.add_edge(START, "select_audience")
    graph.add_edge("select_audience", "build_reasoning")
    graph.add_edge("build_reasoning", "score_channels")
    graph.add_edge("score_channels", "plan_channels")
    graph.add_edge("plan_channels", "assemble_meta")

    # ── Optional enhancement ─────────────────────────────────────────────
    graph.add_conditional_edges(
        "assemble_meta",
        route_enhancement,
        {
            "enhance": "enhance_explanation",
            "skip": "finalize",
        },
    )
    graph.add_edge("enhance_explanation", "finalize")
    graph.add_edge("finalize", END)

    return graph.compile()
