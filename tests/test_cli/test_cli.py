"""Tests for the alert-relay command group."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from alert_relay.cli import main


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _no_firebase_env(monkeypatch):
    monkeypatch.delenv("FIREBASE_CREDENTIALS_PATH", raising=False)


def _mock_source(receivers=1, healthy=True):
    source = MagicMock()
    source.connect = AsyncMock()
    source.publish = AsyncMock(return_value=receivers)
    source.health_check = AsyncMock(return_value=healthy)
    source.close = AsyncMock()
    return source


def _mock_database(healthy=True):
    db = MagicMock()
    db.connect = AsyncMock()
    db.health_check = AsyncMock(return_value=healthy)
    db.close = AsyncMock()
    return db


# ── publish-warning ───────────────────────────────────────


class TestPublishWarning:

    def test_publishes_to_device_channel(self, runner):
        source = _mock_source(receivers=2)
        with patch("alert_relay.events.source.RedisEventSource", return_value=source):
            result = runner.invoke(
                main, ["publish-warning", "dev1", "--category", "FIRE", "--message", "Smoke"],
            )

        assert result.exit_code == 0, result.output
        assert "smart_home/dev1/warning" in result.output
        assert "2 subscriber(s)" in result.output

        topic, payload = source.publish.await_args.args
        assert topic == "smart_home/dev1/warning"
        assert json.loads(payload) == {
            "alertCategory": "FIRE",
            "severity": "high",
            "message": "Smoke",
        }
        source.close.assert_awaited_once()

    def test_defaults_without_message(self, runner):
        source = _mock_source()
        with patch("alert_relay.events.source.RedisEventSource", return_value=source):
            result = runner.invoke(main, ["publish-warning", "dev9"])

        assert result.exit_code == 0, result.output
        _, payload = source.publish.await_args.args
        assert json.loads(payload) == {"alertCategory": "GAS", "severity": "high"}

    def test_closes_source_when_publish_fails(self, runner):
        source = _mock_source()
        source.publish.side_effect = ConnectionError("refused")
        with patch("alert_relay.events.source.RedisEventSource", return_value=source):
            result = runner.invoke(main, ["publish-warning", "dev1"])

        assert result.exit_code != 0
        source.close.assert_awaited_once()


# ── health ────────────────────────────────────────────────


class TestHealth:

    def test_all_healthy(self, runner):
        with patch("alert_relay.events.source.RedisEventSource", return_value=_mock_source()), \
             patch("alert_relay.storage.database.Database", return_value=_mock_database()):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 0
        assert "redis: True" in result.output
        assert "postgres: True" in result.output
        assert "firebase_configured: False" in result.output

    def test_postgres_down(self, runner):
        db = _mock_database()
        db.connect.side_effect = OSError("connection refused")
        with patch("alert_relay.events.source.RedisEventSource", return_value=_mock_source()), \
             patch("alert_relay.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 1
        assert "postgres: False" in result.output

    def test_firebase_missing_does_not_fail(self, runner):
        """Firebase config is informational; only Redis and Postgres gate the exit code."""
        with patch("alert_relay.events.source.RedisEventSource", return_value=_mock_source()), \
             patch("alert_relay.storage.database.Database", return_value=_mock_database()):
            result = runner.invoke(main, ["health"])

        assert "firebase_configured: False" in result.output
        assert result.exit_code == 0


# ── listen ────────────────────────────────────────────────


class TestListen:

    def test_runs_service_until_it_returns(self, runner):
        service = MagicMock()
        service.start = AsyncMock()
        with patch(
            "alert_relay.alerts.service.AlertRelayService.from_settings",
            return_value=service,
        ):
            result = runner.invoke(main, ["listen", "--no-metrics"])

        assert result.exit_code == 0, result.output
        service.start.assert_awaited_once()
