"""Tests for warning payload validation and pipeline value types."""

import json

import pytest

from alert_relay.alerts.config import AlertConfig
from alert_relay.alerts.schemas import (
    ALERT_TITLES,
    DEFAULT_BODY,
    DEFAULT_TITLE,
    UNKNOWN_CATEGORY,
    AlertEvent,
    CooldownKey,
    DispatchResult,
    NotificationContent,
    Recipient,
    device_id_from_topic,
    parse_warning,
)
from alert_relay.errors import InvalidDeviceError, ParseError

TOPIC = "smart_home/dev1/warning"


def _payload(**fields) -> bytes:
    return json.dumps(fields).encode("utf-8")


# ── parse_warning ────────────────────────────────────────


class TestParseWarning:
    """Payload validation into AlertEvent."""

    def test_full_payload(self):
        event = parse_warning(
            TOPIC,
            _payload(alertCategory="GAS", severity="high", message="Gas level 820ppm"),
            received_at=12.5,
        )

        assert event.device_id == "dev1"
        assert event.alert_category == "GAS"
        assert event.severity == "high"
        assert event.message == "Gas level 820ppm"
        assert event.received_at == 12.5
        assert event.topic == TOPIC
        assert event.cooldown_key == CooldownKey("dev1", "GAS")

    def test_legacy_alert_type_field(self):
        event = parse_warning(TOPIC, _payload(alertType="FIRE"), received_at=0.0)
        assert event.alert_category == "FIRE"

    def test_missing_category_defaults_to_unknown(self):
        event = parse_warning(TOPIC, _payload(severity=3), received_at=0.0)
        assert event.alert_category == UNKNOWN_CATEGORY

    def test_empty_category_defaults_to_unknown(self):
        event = parse_warning(TOPIC, _payload(alertCategory=""), received_at=0.0)
        assert event.alert_category == UNKNOWN_CATEGORY

    def test_numeric_severity_passed_through(self):
        event = parse_warning(TOPIC, _payload(alertCategory="GAS", severity=4), received_at=0.0)
        assert event.severity == 4

    def test_unknown_fields_ignored(self):
        event = parse_warning(
            TOPIC, _payload(alertCategory="GAS", gas=812, temperature=31.2), received_at=0.0,
        )
        assert event.alert_category == "GAS"

    def test_str_payload_accepted(self):
        event = parse_warning(TOPIC, '{"alertCategory": "INTRUSION"}', received_at=0.0)
        assert event.alert_category == "INTRUSION"

    @pytest.mark.parametrize("raw", [
        b"not json",
        b"",
        b"[1, 2, 3]",
        b'"GAS"',
        b"\xff\xfe\x00",
        b'{"alertCategory": 42}',
        b'{"message": {"nested": true}}',
    ])
    def test_malformed_payload_raises_parse_error(self, raw):
        with pytest.raises(ParseError):
            parse_warning(TOPIC, raw, received_at=0.0)

    def test_payload_checked_before_topic(self):
        with pytest.raises(ParseError):
            parse_warning("smart_home/unknown/warning", b"{oops", received_at=0.0)


class TestDeviceIdFromTopic:
    """Device id extraction from the topic address."""

    def test_extracts_second_segment(self):
        assert device_id_from_topic("smart_home/controller-01/warning") == "controller-01"

    @pytest.mark.parametrize("topic", [
        "smart_home/unknown/warning",
        "smart_home//warning",
        "smart_home/   /warning",
        "smart_home",
        "",
        "smart_home/dev1/status",
        "smart_home/dev1/warning/extra",
        "smart_home/dev1/sub/warning",
        "smart_homes/dev1/warning",
        "other/dev1/warning",
        "smart_home/warning",
    ])
    def test_invalid_device_rejected(self, topic):
        with pytest.raises(InvalidDeviceError):
            device_id_from_topic(topic)

    def test_multi_segment_prefix(self):
        assert device_id_from_topic("home/ctrl/dev1/warning", prefix="home/ctrl") == "dev1"
        assert device_id_from_topic("home/ctrl/dev1/warning", prefix="home/ctrl/") == "dev1"

    @pytest.mark.parametrize("topic", [
        "home/ctrl/warning",
        "home/ctrl/dev1/dev2/warning",
        "home/dev1/warning",
    ])
    def test_multi_segment_prefix_rejects_other_shapes(self, topic):
        with pytest.raises(InvalidDeviceError):
            device_id_from_topic(topic, prefix="home/ctrl")

    def test_parse_warning_uses_prefix(self):
        event = parse_warning(
            "home/ctrl/dev1/warning", _payload(alertCategory="GAS"), received_at=0.0,
            topic_prefix="home/ctrl",
        )
        assert event.device_id == "dev1"
        assert event.cooldown_key == CooldownKey("dev1", "GAS")

    def test_default_prefix_does_not_match_nested_prefix(self):
        with pytest.raises(InvalidDeviceError):
            parse_warning("home/ctrl/dev1/warning", _payload(alertCategory="GAS"), received_at=0.0)

    @pytest.mark.parametrize("prefix, expected", [
        ("smart_home", "smart_home/+/warning"),
        ("home/ctrl", "home/ctrl/+/warning"),
        ("home/ctrl/", "home/ctrl/+/warning"),
    ])
    def test_subscription_pattern(self, prefix, expected):
        assert AlertConfig(topic_prefix=prefix).subscription_pattern == expected


# ── NotificationContent ──────────────────────────────────


class TestNotificationContent:
    """Push content built from an event."""

    def test_known_category_title(self):
        content = NotificationContent.from_event(
            AlertEvent(device_id="dev1", alert_category="FIRE", message="Smoke in kitchen"),
        )
        assert content.title == ALERT_TITLES["FIRE"]
        assert content.body == "Smoke in kitchen"

    def test_fallback_title_and_body(self):
        content = NotificationContent.from_event(
            AlertEvent(device_id="dev1", alert_category="FLOOD"),
        )
        assert content.title == DEFAULT_TITLE
        assert content.body == DEFAULT_BODY

    def test_data_values_are_strings(self):
        content = NotificationContent.from_event(
            AlertEvent(device_id="dev1", alert_category="GAS", severity=3),
        )
        assert content.data["alertCategory"] == "GAS"
        assert content.data["severity"] == "3"
        assert content.data["deviceId"] == "dev1"
        assert all(isinstance(v, str) for v in content.data.values())

    def test_missing_severity_is_empty_string(self):
        content = NotificationContent.from_event(AlertEvent(device_id="dev1"))
        assert content.data["severity"] == ""


# ── Value types ──────────────────────────────────────────


class TestValueTypes:

    @pytest.mark.parametrize("token,expected", [
        ("tok", True),
        (None, False),
        ("", False),
        ("   ", False),
    ])
    def test_recipient_has_token(self, token, expected):
        assert Recipient("u1", token).has_token is expected

    def test_dispatch_result_all_failed(self):
        assert DispatchResult(attempted=2, succeeded=0, failed=2).all_failed is True
        assert DispatchResult(attempted=2, succeeded=1, failed=1).all_failed is False
        assert DispatchResult(attempted=0, succeeded=0, failed=0).all_failed is False
