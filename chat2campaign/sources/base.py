"""Abstract seams for non-deterministic collaborators.

Signal sources and content providers are the only places randomness enters
the pipeline.  The aggregation, scoring and validation core depends on these
interfaces so tests can inject seeded or fixed-sequence implementations.

Architectural rules:
    1. Implementations must return fresh objects; callers may keep them.
    2. No implementation may call the gateway, engine or hub.
    3. No scoring logic lives here, only content.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence, TypeVar

from chat2campaign.domain.signal import AggregatedSignals, Signal, TransformedEvent

T = TypeVar("T")


class SignalSource(ABC):
    """Produces timestamped, weighted, source-tagged observations."""

    @abstractmethod
    def generate_signals(self, source_id: str) -> list[Signal]:
        """Return the signals observed for *source_id* in this cycle."""
        ...

    @abstractmethod
    def generate_events(self, source_id: str) -> list[TransformedEvent]:
        """Return synthetic events in the common TransformedEvent shape.

        Used by the API gateway for mocked sources and for fallback output.
        """
        ...


class ContentTemplateProvider(ABC):
    """Supplies human-readable content and random picks for recommendations."""

    @abstractmethod
    def pick(self, options: Sequence[T]) -> T:
        ...

    @abstractmethod
    def sample(self, options: Sequence[T], k: int) -> list[T]:
        ...

    @abstractmethod
    def uniform(self, low: float, high: float) -> float:
        ...

    @abstractmethod
    def explanation(self, aggregated: AggregatedSignals) -> str:
        """Explain a recommendation from the aggregation snapshot."""
        ...

    @abstractmethod
    def enhanced_explanation(self, aggregated: AggregatedSignals) -> str:
        """A richer explanation, standing in for an LLM rewrite."""
        ...

    @abstractmethod
    def channel_payload(self, channel: str, priority: int) -> dict[str, Any]:
        """Message payload (body, cta, metadata, optional subject/title) for *channel*."""
        ...

    @abstractmethod
    def signal_description(self, signal: Signal) -> str:
        ...
