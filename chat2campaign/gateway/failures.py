"""Per-source failure tracking for the API gateway's circuit breaker.

A source trips once it accumulates ``max_failures`` failures and stays
tripped until ``reset_window`` has passed since its most recent failure.
Checking a source whose window has elapsed clears its record.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from chat2campaign.foundation.clock import utc_now

logger = logging.getLogger(__name__)


class FailureRecord:
    """Failure count and time of the latest failure for one source."""

    __slots__ = ("count", "last_failure")

    def __init__(self, count: int = 0, last_failure: datetime | None = None) -> None:
        self.count = count
        self.last_failure = last_failure or utc_now()


class FailureTracker:
    """In-memory failure table keyed by source id.

    Args:
        max_failures: Failures within the window that disable a source.
        reset_window: Quiet period after the last failure that clears the record.
    """

    def __init__(
        self,
        max_failures: int = 3,
        reset_window: timedelta = timedelta(minutes=5),
    ) -> None:
        self._max_failures = max_failures
        self._reset_window = reset_window
        self._records: dict[str, FailureRecord] = {}

    @property
    def max_failures(self) -> int:
        return self._max_failures

    def record_failure(self, source_id: str) -> FailureRecord:
        record = self._records.get(source_id)
        if record is None:
            record = FailureRecord()
            self._records[source_id] = record
        record.count += 1
        record.last_failure = utc_now()
        logger.warning(
            "API failure count for %s: %d/%d",
            source_id, record.count, self._max_failures,
        )
        return record

    def clear(self, source_id: str) -> None:
        self._records.pop(source_id, None)

    def get(self, source_id: str) -> FailureRecord | None:
        return self._records.get(source_id)

    def is_tripped(self, source_id: str) -> bool:
        """True while *source_id* has hit the threshold inside the reset window."""
        record = self._records.get(source_id)
        if record is None:
            return False
        if self._expired(record):
            self.clear(source_id)
            return False
        return record.count >= self._max_failures

    def sweep_expired(self) -> list[str]:
        """Drop every record whose reset window has elapsed; return their ids."""
        expired = [sid for sid, rec in self._records.items() if self._expired(rec)]
        for sid in expired:
            del self._records[sid]
        if expired:
            logger.info("Cleared %d expired failure record(s)", len(expired))
        return expired

    def __len__(self) -> int:
        return len(self._records)

    def _expired(self, record: FailureRecord) -> bool:
        return utc_now() - record.last_failure > self._reset_window
