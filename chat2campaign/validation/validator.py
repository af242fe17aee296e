"""RecommendationValidator — schema checks and best-effort repair.

validate() checks a document against the CampaignRecommendation models and
reports each problem as ``"<path>: <message>"`` (``root`` for the document
itself).  Every reported error is counted in the running stats.

sanitize() repairs a deep copy field by field, records a human-readable
change string for each repair, and then validates the result.  The repair
rules cover every way a document can fail the schema, so the repaired copy
always validates, and repairing an already repaired copy changes nothing.
"""

from __future__ import annotations

import copy
import logging
import math
from collections import Counter
from datetime import timedelta
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from chat2campaign.domain.enums import Channel
from chat2campaign.domain.recommendation import CampaignRecommendation
from chat2campaign.foundation.clock import is_canonical_iso, iso_now, to_iso, utc_now
from chat2campaign.foundation.identifiers import prefixed_id

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_VERSION = "v1.0-decision-engine"
DEFAULT_SCORE = 0.5
DEFAULT_TIMEOUT_SEC = 30
DEFAULT_RETRY_POLICY = "exponential_backoff"
DEFAULT_BODY = "Auto-generated campaign message"
DEFAULT_SIGNALS = ["Auto-generated reasoning"]
DEFAULT_EXPLAIN = "Auto-generated campaign recommendation"
DEFAULT_SEGMENT_ID = "auto-generated"
DEFAULT_SEGMENT_NAME = "Auto-Generated Segment"

# Repaired send_at: now + 5 minutes, staggered one minute per plan entry.
SEND_AT_BASE = timedelta(minutes=5)
SEND_AT_STEP = timedelta(minutes=1)


# ── Results ──────────────────────────────────────────────────────────────────

class ValidationResult(BaseModel):
    valid: bool
    errors: Optional[list[str]] = None


class SanitizeResult(BaseModel):
    valid: bool
    sanitized: Optional[dict[Any, Any]] = None
    changes: list[str] = Field(default_factory=list)
    errors: Optional[list[str]] = None


class BatchItemResult(BaseModel):
    index: int
    valid: bool
    errors: Optional[list[str]] = None


class BatchValidationResult(BaseModel):
    valid: int
    invalid: int
    results: list[BatchItemResult] = Field(default_factory=list)


class ValidationStats:
    """Running validation counters for observability."""

    __slots__ = (
        "total_validations", "valid_count", "invalid_count",
        "most_common_errors", "last_validation_time",
    )

    def __init__(self) -> None:
        self.total_validations: int = 0
        self.valid_count: int = 0
        self.invalid_count: int = 0
        self.most_common_errors: Counter[str] = Counter()
        self.last_validation_time: str = iso_now()

    def to_dict(self) -> dict:
        return {
            "total_validations": self.total_validations,
            "valid_count": self.valid_count,
            "invalid_count": self.invalid_count,
            "most_common_errors": dict(self.most_common_errors),
            "last_validation_time": self.last_validation_time,
        }


# ── Value checks ─────────────────────────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite(value: Any) -> bool:
    if not _is_number(value):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _is_unit(value: Any) -> bool:
    return _is_finite(value) and 0.0 <= value <= 1.0


def _clamp_unit(value: Any) -> float:
    if not _is_number(value) or (isinstance(value, float) and math.isnan(value)):
        return DEFAULT_SCORE
    return float(min(max(value, 0.0), 1.0))


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _format_error(error: dict[str, Any]) -> str:
    loc = error.get("loc") or ()
    path = "/" + "/".join(str(part) for part in loc) if loc else "root"
    return f"{path}: {error.get('msg', 'Unknown error')}"


def _default_payload() -> dict[str, Any]:
    return {"body": DEFAULT_BODY, "cta": {"action": "view", "url": "#"}, "metadata": {}}


def _default_delivery() -> dict[str, Any]:
    return {"retry_policy": DEFAULT_RETRY_POLICY, "timeout_sec": DEFAULT_TIMEOUT_SEC}


# ── Validator ────────────────────────────────────────────────────────────────

class RecommendationValidator:
    """Validates recommendation documents and repairs malformed ones.

    Usage:
        validator = RecommendationValidator()
        result = validator.validate(doc)
        if not result.valid:
            doc = validator.sanitize(doc).sanitized
    """

    def __init__(self, engine_version: str = DEFAULT_ENGINE_VERSION) -> None:
        self._engine_version = engine_version
        self._stats = ValidationStats()

    # ── Validation ───────────────────────────────────────────────────────

    def validate(self, doc: Any) -> ValidationResult:
        self._stats.total_validations += 1
        self._stats.last_validation_time = iso_now()
        try:
            CampaignRecommendation.model_validate(doc)
        except ValidationError as exc:
            errors = [_format_error(e) for e in exc.errors()]
            self._stats.invalid_count += 1
            self._stats.most_common_errors.update(errors)
            logger.debug("Recommendation failed validation: %s", errors)
            return ValidationResult(valid=False, errors=errors)
        self._stats.valid_count += 1
        return ValidationResult(valid=True)

    def validate_batch(self, docs: list[Any]) -> BatchValidationResult:
        results = []
        for index, doc in enumerate(docs):
            result = self.validate(doc)
            results.append(BatchItemResult(index=index, valid=result.valid, errors=result.errors))
        valid = sum(1 for r in results if r.valid)
        return BatchValidationResult(valid=valid, invalid=len(results) - valid, results=results)

    # ── Repair ───────────────────────────────────────────────────────────

    def sanitize(self, doc: Any) -> SanitizeResult:
        """Repair a copy of *doc*; the input is never mutated."""
        changes: list[str] = []
        out: dict[str, Any] = copy.deepcopy(doc) if isinstance(doc, dict) else {}
        now = utc_now()

        if not _is_text(out.get("id")):
            out["id"] = prefixed_id("auto")
            changes.append("Generated missing id")

        if not is_canonical_iso(out.get("timestamp")):
            out["timestamp"] = to_iso(now)
            changes.append("Fixed invalid timestamp")

        self._repair_audience(out, changes)
        self._repair_reasoning(out, changes)
        self._repair_channel_plan(out, changes, now)
        self._repair_meta(out, changes)

        result = self.validate(out)
        if changes:
            logger.info("Sanitized recommendation %s: %d change(s)", out["id"], len(changes))
        if not result.valid:
            logger.error("Sanitized recommendation still invalid: %s", result.errors)
        return SanitizeResult(
            valid=result.valid,
            sanitized=out if result.valid else None,
            changes=changes,
            errors=result.errors,
        )

    def _repair_audience(self, out: dict[str, Any], changes: list[str]) -> None:
        audience = out.get("audience")
        if not isinstance(audience, dict):
            out["audience"] = {
                "segment_id": DEFAULT_SEGMENT_ID, "name": DEFAULT_SEGMENT_NAME, "filters": {},
            }
            changes.append("Fixed missing audience structure")
            return
        if not _is_text(audience.get("segment_id")):
            audience["segment_id"] = DEFAULT_SEGMENT_ID
            changes.append("Added missing audience.segment_id")
        if not _is_text(audience.get("name")):
            audience["name"] = DEFAULT_SEGMENT_NAME
            changes.append("Added missing audience.name")
        if not isinstance(audience.get("filters"), dict):
            audience["filters"] = {}
            changes.append("Added missing audience.filters")

    def _repair_reasoning(self, out: dict[str, Any], changes: list[str]) -> None:
        reasoning = out.get("reasoning")
        if not isinstance(reasoning, dict):
            out["reasoning"] = {
                "signals": list(DEFAULT_SIGNALS), "score": DEFAULT_SCORE, "explain": DEFAULT_EXPLAIN,
            }
            changes.append("Fixed missing reasoning structure")
            return

        signals = reasoning.get("signals")
        if not isinstance(signals, list) or not signals or not all(isinstance(s, str) for s in signals):
            kept = [s for s in signals if isinstance(s, str)] if isinstance(signals, list) else []
            reasoning["signals"] = kept or list(DEFAULT_SIGNALS)
            changes.append("Fixed missing reasoning.signals")
        if not _is_unit(reasoning.get("score")):
            reasoning["score"] = _clamp_unit(reasoning.get("score"))
            changes.append("Fixed invalid reasoning.score")
        if not _is_text(reasoning.get("explain")):
            reasoning["explain"] = DEFAULT_EXPLAIN
            changes.append("Added missing reasoning.explain")

    def _repair_channel_plan(self, out: dict[str, Any], changes: list[str], now) -> None:
        plan = out.get("channel_plan")
        if not isinstance(plan, list) or not plan:
            out["channel_plan"] = [{
                "channel": Channel.EMAIL.value,
                "send_at": to_iso(now + SEND_AT_BASE),
                "priority": 1,
                "payload": {"subject": "Campaign Recommendation", **_default_payload()},
                "delivery_instructions": _default_delivery(),
            }]
            changes.append("Fixed missing channel_plan")
            return
        out["channel_plan"] = [
            self._repair_entry(entry, index, changes, now) for index, entry in enumerate(plan)
        ]

    def _repair_entry(self, entry: Any, index: int, changes: list[str], now) -> dict[str, Any]:
        n = index + 1
        if not isinstance(entry, dict):
            entry = {}
            changes.append(f"Replaced invalid entry in plan {n}")

        if entry.get("channel") not in Channel.values():
            entry["channel"] = Channel.EMAIL.value
            changes.append(f"Fixed invalid channel in plan {n}")

        if not is_canonical_iso(entry.get("send_at")):
            entry["send_at"] = to_iso(now + SEND_AT_BASE + SEND_AT_STEP * index)
            changes.append(f"Fixed invalid send_at in plan {n}")

        priority = entry.get("priority")
        if not isinstance(priority, int) or isinstance(priority, bool) or priority < 1:
            entry["priority"] = n
            changes.append(f"Fixed invalid priority in plan {n}")

        payload = entry.get("payload")
        if not isinstance(payload, dict):
            entry["payload"] = _default_payload()
            changes.append(f"Fixed missing payload in plan {n}")
        else:
            if not _is_text(payload.get("body")):
                payload["body"] = DEFAULT_BODY
                changes.append(f"Added missing body in plan {n}")
            if not isinstance(payload.get("cta"), dict):
                payload["cta"] = {"action": "view", "url": "#"}
                changes.append(f"Added missing cta in plan {n}")
            if not isinstance(payload.get("metadata"), dict):
                payload["metadata"] = {}
                changes.append(f"Added missing metadata in plan {n}")
            for key in ("subject", "title"):
                if payload.get(key) is not None and not isinstance(payload[key], str):
                    del payload[key]
                    changes.append(f"Removed invalid {key} in plan {n}")

        delivery = entry.get("delivery_instructions")
        if not isinstance(delivery, dict):
            entry["delivery_instructions"] = _default_delivery()
            changes.append(f"Fixed missing delivery_instructions in plan {n}")
        else:
            if not _is_text(delivery.get("retry_policy")):
                delivery["retry_policy"] = DEFAULT_RETRY_POLICY
                changes.append(f"Added missing retry_policy in plan {n}")
            timeout = delivery.get("timeout_sec")
            if not (_is_finite(timeout) and timeout > 0):
                delivery["timeout_sec"] = DEFAULT_TIMEOUT_SEC
                changes.append(f"Fixed invalid timeout_sec in plan {n}")

        return entry

    def _repair_meta(self, out: dict[str, Any], changes: list[str]) -> None:
        meta = out.get("campaign_meta")
        if not isinstance(meta, dict):
            out["campaign_meta"] = {
                "source_snapshot": {},
                "engine_version": self._engine_version,
                "confidence": DEFAULT_SCORE,
            }
            changes.append("Fixed missing campaign_meta structure")
            return
        if not isinstance(meta.get("source_snapshot"), dict):
            meta["source_snapshot"] = {}
            changes.append("Added missing source_snapshot")
        if not _is_text(meta.get("engine_version")):
            meta["engine_version"] = self._engine_version
            changes.append("Added missing engine_version")
        if not _is_unit(meta.get("confidence")):
            meta["confidence"] = _clamp_unit(meta.get("confidence"))
            changes.append("Fixed invalid confidence score")

    # ── Stats ────────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        return self._stats.to_dict()

    def reset_stats(self) -> None:
        self._stats = ValidationStats()

    # ── Samples ──────────────────────────────────────────────────────────

    def sample_recommendation(self) -> dict[str, Any]:
        """A known-valid document, timestamped now."""
        now = utc_now()
        return {
            "id": prefixed_id("sample"),
            "timestamp": to_iso(now),
            "audience": {
                "segment_id": "high-intent-customers",
                "name": "High Intent Customers",
                "filters": {"intent_score": ">= 0.8", "recent_activity": "<= 1h"},
            },
            "reasoning": {
                "signals": [
                    "Recent cart abandonment detected",
                    "High product engagement activity",
                    "Extended browsing session indicates interest",
                ],
                "score": 0.85,
                "explain": (
                    "Customer demonstrates high urgency with 3 positive signals "
                    "indicating strong conversion potential."
                ),
            },
            "channel_plan": [{
                "channel": "Email",
                "send_at": to_iso(now + SEND_AT_BASE),
                "priority": 1,
                "payload": {
                    "subject": "Complete your purchase - Limited time offer!",
                    "title": "Don't miss out!",
                    "body": "You left some great items in your cart. Complete your purchase now and get 10% off!",
                    "cta": {"text": "Complete Purchase", "url": "https://example.com/checkout", "action": "checkout"},
                    "metadata": {"campaign_type": "cart_abandonment", "discount_code": "SAVE10"},
                },
                "delivery_instructions": {"retry_policy": "exponential_backoff", "timeout_sec": 30},
            }],
            "campaign_meta": {
                "source_snapshot": {"website": {"cart_abandonment": {"cart_value": 150, "items_count": 3}}},
                "engine_version": self._engine_version,
                "confidence": 0.87,
            },
        }
