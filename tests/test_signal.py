"""Tests for Signal models and the client wire messages."""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from chat2campaign.domain.enums import CommandType, MessageType
from chat2campaign.domain.messages import InboundCommand, SimulationConfig, StreamingMessage
from chat2campaign.domain.signal import AggregatedSignals, Signal
from chat2campaign.foundation.clock import is_canonical_iso


def _valid_signal(**overrides) -> dict:
    """Return a valid signal dict, with optional overrides."""
    base = {
        "id": "sig-1",
        "source": "website",
        "signal_type": "cart_abandonment",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": {"cart_value": 150},
        "weight": 0.9,
        "confidence": 0.9,
    }
    base.update(overrides)
    return base


def _signal(**overrides) -> Signal:
    return Signal.model_validate(_valid_signal(**overrides))


class TestSignalValidation:
    def test_valid_signal_parses(self) -> None:
        signal = _signal()
        assert signal.signal_type == "cart_abandonment"
        assert signal.weight == 0.9

    def test_weight_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _signal(weight=1.5)

    def test_confidence_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _signal(confidence=-0.1)

    def test_empty_source_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _signal(source="")

    def test_naive_timestamp_gets_utc(self) -> None:
        signal = _signal(timestamp=datetime.now().isoformat())
        assert signal.timestamp.tzinfo is not None

    def test_signal_is_frozen(self) -> None:
        signal = _signal()
        with pytest.raises(ValidationError):
            signal.weight = 0.1


class TestAggregatedSignals:
    def test_empty_snapshot_is_all_zero(self) -> None:
        snapshot = AggregatedSignals()
        assert snapshot.count == 0
        assert snapshot.audience_score == 0.0
        assert snapshot.urgency_level.value == "low"

    def test_count_follows_signals(self) -> None:
        snapshot = AggregatedSignals(signals=[_signal(), _signal(id="sig-2")])
        assert snapshot.count == 2


class TestSimulationConfig:
    def test_accepts_camel_case_keys(self) -> None:
        config = SimulationConfig.model_validate({
            "selectedSources": ["website"],
            "selectedChannels": ["Email", "SMS"],
            "interval": 1000,
        })
        assert config.selected_sources == ["website"]
        assert config.selected_channels == ["Email", "SMS"]

    def test_accepts_snake_case_keys(self) -> None:
        config = SimulationConfig(selected_sources=["crm_system"])
        assert config.selected_sources == ["crm_system"]

    def test_unknown_channel_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SimulationConfig.model_validate({"selectedChannels": ["Carrier Pigeon"]})

    def test_non_positive_interval_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SimulationConfig.model_validate({"interval": 0})

    def test_with_defaults_fills_only_missing(self) -> None:
        config = SimulationConfig(interval=500).with_defaults(3000, 60000)
        assert config.interval == 500
        assert config.duration == 60000


class TestInboundCommand:
    def test_known_type_maps_to_command(self) -> None:
        cmd = InboundCommand.model_validate({"type": "start_simulation", "config": {}})
        assert cmd.command == CommandType.START_SIMULATION

    def test_unknown_type_is_tolerated(self) -> None:
        cmd = InboundCommand.model_validate({"type": "dance"})
        assert cmd.command is None

    def test_missing_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            InboundCommand.model_validate({"config": {}})


class TestStreamingMessage:
    def test_system_message_envelope(self) -> None:
        wire = json.loads(StreamingMessage.system("pong").model_dump_json())
        assert wire["type"] == MessageType.SYSTEM_MESSAGE.value
        assert wire["data"] == "pong"
        assert is_canonical_iso(wire["timestamp"])

    def test_recommendation_carries_document(self) -> None:
        msg = StreamingMessage.recommendation({"id": "r1"})
        assert msg.type == MessageType.CAMPAIGN_RECOMMENDATION
        assert msg.data == {"id": "r1"}

    def test_error_type(self) -> None:
        assert StreamingMessage.error("bad").type == MessageType.ERROR
