"""Tests for uptrends_spine.cli — command smoke tests via CliRunner.

Logging configuration is patched out so structlog never binds to the
runner's temporary streams; HTTP goes through ``httpx.MockTransport``.
"""

from __future__ import annotations

import importlib
import json
import textwrap
from unittest.mock import patch

import httpx
import pytest
from typer.testing import CliRunner

from uptrends_spine import __version__
from uptrends_spine.cli.app import app
from uptrends_spine.polling.client import ParallelClient

runner = CliRunner()

DOCUMENT = textwrap.dedent(
    """
    schedule:
      every: 1h
    auth:
      user: api-user
      password: s3cret
    target: uptrends
    operations:
      probes: probes
      monthly:
        path: probegroups/0123456789abcdef0123456789abcdef/statistics
        type: sla
        parameters:
          Start: first_day_of_previous_month
    """
)


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch, tmp_path):
    monkeypatch.setattr(
        importlib.import_module("uptrends_spine.cli.app"), "configure_logging", lambda **kwargs: None
    )
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "poller.yaml"
    path.write_text(DOCUMENT, encoding="utf-8")
    return path


def _records(output: str) -> list[dict]:
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestValidate:
    """The 'validate' command never sends requests."""

    def test_valid_document(self, config_file):
        result = runner.invoke(app, ["validate", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_invalid_path_exits_with_config_code(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(DOCUMENT.replace("probes: probes", "probes: widgets"), encoding="utf-8")
        result = runner.invoke(app, ["validate", "-c", str(path)])
        assert result.exit_code == 2
        assert "Configuration error" in result.output

    def test_missing_schedule(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(DOCUMENT.replace("schedule:\n  every: 1h\n", ""), encoding="utf-8")
        result = runner.invoke(app, ["validate", "-c", str(path)])
        assert result.exit_code == 2

    def test_default_config_file_missing(self):
        result = runner.invoke(app, ["validate"])
        assert result.exit_code == 2
        assert "uptrends.yaml" in result.output


class TestOnce:
    def test_emits_json_lines(self, config_file):
        client = ParallelClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[{"n": 1}])),
            automatic_retries=0,
        )
        with patch.object(ParallelClient, "from_settings", return_value=client):
            result = runner.invoke(app, ["once", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        records = _records(result.stdout)
        assert len(records) == 2
        assert all(r["uptrends"] == {"n": 1} for r in records)
        assert {r.get("type") for r in records} == {None, "sla"}

    def test_once_ignores_schedule(self, tmp_path):
        path = tmp_path / "no-schedule.yaml"
        path.write_text(DOCUMENT.replace("schedule:\n  every: 1h\n", ""), encoding="utf-8")
        client = ParallelClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(204)),
            automatic_retries=0,
        )
        with patch.object(ParallelClient, "from_settings", return_value=client):
            result = runner.invoke(app, ["once", "-c", str(path)])
        assert result.exit_code == 0, result.output
        assert len(_records(result.stdout)) == 2


class TestDates:
    def test_resolve_date(self):
        result = runner.invoke(
            app, ["resolve-date", "first_day_of_previous_month", "--today", "2024-03-15"]
        )
        assert result.exit_code == 0
        assert result.stdout.strip() == "2024/02/01"

    def test_unknown_token(self):
        result = runner.invoke(app, ["resolve-date", "tomorrow"])
        assert result.exit_code == 1
        assert "tomorrow" in result.output

    def test_bad_reference_date(self):
        result = runner.invoke(app, ["resolve-date", "today", "--today", "15/03/2024"])
        assert result.exit_code != 0

    def test_tokens_table(self):
        result = runner.invoke(app, ["tokens", "--today", "2024-03-15"])
        assert result.exit_code == 0
        assert "last_day_of_previous_month" in result.output
        assert "2024/02/29" in result.output
