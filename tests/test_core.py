"""Tests for configuration, logging, Sentry and metrics setup."""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest

from agent_resilience.core.config import Settings, validate_settings
from agent_resilience.core.logging import JSONFormatter, setup_logging
from agent_resilience.core.metrics import metrics_text
from agent_resilience.core.sentry import init_sentry


class TestSettings:
    def test_defaults(self):
        config = Settings(_env_file=None)
        assert config.retry_max_retries == 3
        assert config.breaker_failure_threshold == 5
        assert config.dedupe_ttl == 5.0
        assert config.toast_critical_duration == 10.0

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("RESILIENCE_RETRY_MAX_RETRIES", "6")
        monkeypatch.setenv("RESILIENCE_LOG_JSON", "true")
        config = Settings(_env_file=None)
        assert config.retry_max_retries == 6
        assert config.log_json is True

    def test_validate_ok(self):
        validate_settings(Settings(_env_file=None))

    def test_validate_collects_all_errors(self):
        config = Settings(
            _env_file=None,
            retry_max_retries=-1,
            breaker_failure_threshold=0,
            app_env="production",
            log_level="DEBUG",
        )
        with pytest.raises(SystemExit) as exc_info:
            validate_settings(config)

        message = str(exc_info.value)
        assert "RETRY_MAX_RETRIES" in message
        assert "BREAKER_FAILURE_THRESHOLD" in message
        assert "DEBUG in production" in message


class TestLogging:
    def test_json_formatter_includes_structured_fields(self):
        record = logging.LogRecord("agent_resilience.test", logging.ERROR, __file__, 1, "Request failed: %s", ("X",), None)
        record.code = "SERVER_ERROR"
        record.correlation_id = "cid_1_abcdef012"

        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "ERROR"
        assert data["message"] == "Request failed: X"
        assert data["code"] == "SERVER_ERROR"
        assert data["correlation_id"] == "cid_1_abcdef012"
        assert "trace_id" not in data

    def test_json_formatter_uses_record_time(self):
        record = logging.LogRecord("agent_resilience.test", logging.INFO, __file__, 1, "tick", (), None)
        record.created = 0.0

        data = json.loads(JSONFormatter().format(record))
        assert data["timestamp"] == "1970-01-01T00:00:00+00:00"

    def test_setup_logging(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(Settings(_env_file=None, log_level="WARNING", log_json=True))
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestSentry:
    def test_disabled_without_dsn(self):
        assert init_sentry(Settings(_env_file=None, sentry_dsn="")) is False

    def test_enabled_with_dsn(self):
        config = Settings(_env_file=None, sentry_dsn="https://key@o0.ingest.sentry.io/0")
        with patch("sentry_sdk.init") as mock_init:
            assert init_sentry(config) is True
        assert mock_init.call_args.kwargs["dsn"] == config.sentry_dsn
        assert mock_init.call_args.kwargs["environment"] == "development"


class TestMetrics:
    def test_exposition_contains_pipeline_counters(self):
        text = metrics_text()
        assert "resilience_retry_attempts" in text
        assert "resilience_circuit_transitions" in text
        assert "agent_resilience_info" in text
