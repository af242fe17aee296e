"""Tests for clock helpers and identifier generation."""

import random
import re
from datetime import datetime, timedelta, timezone

import pytest

from chat2campaign.foundation.clock import is_canonical_iso, parse_iso, to_iso
from chat2campaign.foundation.identifiers import new_id, prefixed_id


class TestCanonicalIso:
    def test_to_iso_has_millisecond_precision_and_z(self) -> None:
        dt = datetime(2024, 3, 5, 7, 8, 9, 123456, tzinfo=timezone.utc)
        assert to_iso(dt) == "2024-03-05T07:08:09.123Z"

    def test_to_iso_converts_offsets_to_utc(self) -> None:
        dt = datetime(2024, 3, 5, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_iso(dt) == "2024-03-05T10:00:00.000Z"

    def test_naive_datetime_treated_as_utc(self) -> None:
        assert to_iso(datetime(2024, 1, 1)) == "2024-01-01T00:00:00.000Z"

    def test_parse_iso_accepts_z_suffix(self) -> None:
        dt = parse_iso("2024-01-15T10:30:00.000Z")
        assert dt.tzinfo is not None
        assert dt.hour == 10

    def test_parse_iso_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            parse_iso("yesterday")

    @pytest.mark.parametrize("value", [
        "2024-01-15T10:30:00.000Z",
        "1999-12-31T23:59:59.999Z",
    ])
    def test_canonical_values_accepted(self, value: str) -> None:
        assert is_canonical_iso(value)

    @pytest.mark.parametrize("value", [
        "2024-01-15T10:30:00Z",
        "2024-01-15T10:30:00.000+00:00",
        "2024-01-15",
        "2024-13-45T10:30:00.000Z",
        "not-a-date",
        "",
        None,
        1700000000000,
    ])
    def test_non_canonical_values_rejected(self, value) -> None:
        assert not is_canonical_iso(value)


class TestIdentifiers:
    def test_new_id_is_unique(self) -> None:
        assert new_id() != new_id()

    def test_prefixed_id_shape(self) -> None:
        value = prefixed_id("auto")
        assert re.fullmatch(r"auto_\d{13}_[a-z0-9]{9}", value)

    def test_prefixed_id_suffix_follows_rng(self) -> None:
        a = prefixed_id("x", random.Random(3)).rsplit("_", 1)[1]
        b = prefixed_id("x", random.Random(3)).rsplit("_", 1)[1]
        assert a == b
