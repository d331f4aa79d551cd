"""Tests for uptrends_spine.core.logging — structlog configuration."""

from __future__ import annotations

import logging

import structlog

from uptrends_spine.core.logging import (
    NOISY_LIBRARIES,
    REDACTED,
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    redact_secrets,
)


class TestLogContext:
    def teardown_method(self):
        clear_context()

    def test_scoped_binding(self):
        with LogContext(cycle_id="abc123"):
            assert structlog.contextvars.get_contextvars()["cycle_id"] == "abc123"
        assert "cycle_id" not in structlog.contextvars.get_contextvars()

    def test_exit_keeps_outer_bindings(self):
        bind_context(service_run="r1")
        with LogContext(cycle_id="abc123"):
            pass
        assert structlog.contextvars.get_contextvars() == {"service_run": "r1"}

    def test_nested_restores_outer_value(self):
        with LogContext(operation="outer"):
            with LogContext(operation="inner"):
                assert structlog.contextvars.get_contextvars()["operation"] == "inner"
            assert structlog.contextvars.get_contextvars()["operation"] == "outer"


class TestRedactSecrets:
    def test_top_level_keys(self):
        event = redact_secrets(None, "info", {"event": "x", "password": "s3cret", "user": "u"})
        assert event == {"event": "x", "password": REDACTED, "user": "u"}

    def test_nested_headers(self):
        event = redact_secrets(
            None, "info", {"event": "x", "headers": {"Authorization": "Basic abc", "Accept": "*/*"}}
        )
        assert event["headers"] == {"Authorization": REDACTED, "Accept": "*/*"}


class TestConfigureLogging:
    def teardown_method(self):
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()
        for name in NOISY_LIBRARIES:
            logging.getLogger(name).setLevel(logging.NOTSET)

    def test_json_output_stays_off_stdout(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("uptrends.test").info("cycle.complete", records=3)
        captured = capsys.readouterr()
        assert captured.out == ""
        assert '"cycle.complete"' in captured.err

    def test_renderer_follows_format(self):
        configure_logging(json_format=True)
        assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)
        configure_logging(json_format=False)
        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)

    def test_library_loggers_quieted_unless_debug(self):
        configure_logging(level="INFO", json_format=True)
        assert logging.getLogger("apscheduler").level == logging.WARNING
        configure_logging(level="DEBUG", json_format=True)
        assert logging.getLogger("httpx").level == logging.DEBUG
