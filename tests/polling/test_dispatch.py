"""Tests for uptrends_spine.polling.dispatch — one concurrent cycle."""

from __future__ import annotations

from datetime import date
from unittest.mock import patch

import httpx

from uptrends_spine.core.errors import InvalidConfigError
from uptrends_spine.polling.client import HttpFailure, HttpSuccess
from uptrends_spine.polling.dispatch import DispatchEngine
from uptrends_spine.polling.registry import normalize
from uptrends_spine.polling.request_builder import build_for


class TestRunCycle:
    def test_one_outcome_per_operation(self, registry, make_client, json_handler, reference_date):
        engine = DispatchEngine(make_client(json_handler), clock=lambda: reference_date)
        results = engine.run_cycle(registry)

        assert [r.name for r in results] == ["probes", "monthly"]
        assert all(isinstance(r.outcome, HttpSuccess) for r in results)
        assert all(r.succeeded for r in results)
        assert all(r.elapsed >= 0 for r in results)

    def test_requests_carry_resolved_query_and_auth(self, registry, make_client, reference_date):
        seen = {}

        def handler(request):
            seen[request.url.path] = request
            return httpx.Response(200)

        DispatchEngine(make_client(handler), clock=lambda: reference_date).run_cycle(registry)

        monthly = seen["/v3/probegroups/0123456789abcdef0123456789abcdef/statistics"]
        assert monthly.url.params["Start"] == "2024/02/01"
        assert monthly.url.params["End"] == "2024/02/29"
        assert monthly.url.params["format"] == "json"
        assert monthly.headers["authorization"].startswith("Basic ")
        assert seen["/v3/probes"].url.params["format"] == "json"

    def test_failure_does_not_suppress_success(self, registry, make_client, reference_date):
        def handler(request):
            if "statistics" in request.url.path:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=[])

        results = DispatchEngine(make_client(handler), clock=lambda: reference_date).run_cycle(registry)
        by_name = {r.name: r for r in results}

        assert isinstance(by_name["probes"].outcome, HttpSuccess)
        assert isinstance(by_name["monthly"].outcome, HttpFailure)
        assert not by_name["monthly"].succeeded

    def test_clock_read_once_per_cycle(self, registry, make_client, json_handler):
        calls = []

        def clock():
            calls.append(1)
            return date(2024, 3, 15)

        DispatchEngine(make_client(json_handler), clock=clock).run_cycle(registry)
        assert len(calls) == 1

    def test_request_urls_reported(self, registry, make_client, json_handler, reference_date):
        results = DispatchEngine(make_client(json_handler), clock=lambda: reference_date).run_cycle(registry)
        probes = next(r for r in results if r.name == "probes")
        assert probes.url == "https://api.uptrends.com/v3/probes?format=json"

    def test_build_error_becomes_failure_outcome(self, registry, make_client, json_handler, reference_date):
        engine = DispatchEngine(make_client(json_handler), clock=lambda: reference_date)

        def flaky_build(operation, credentials, today):
            if operation.name == "monthly":
                raise InvalidConfigError("parameters", 1)
            return build_for(operation, credentials, today)

        with patch("uptrends_spine.polling.dispatch.build_for", side_effect=flaky_build):
            results = engine.run_cycle(registry)

        by_name = {r.name: r for r in results}
        assert by_name["probes"].succeeded
        assert isinstance(by_name["monthly"].outcome, HttpFailure)
        assert isinstance(by_name["monthly"].outcome.error, InvalidConfigError)
        assert by_name["monthly"].request is None
        assert by_name["monthly"].url == "https://api.uptrends.com/v3/probegroups/" \
            "0123456789abcdef0123456789abcdef/statistics"

    def test_every_cycle_builds_fresh_requests(self, make_client, json_handler, raw_auth):
        registry = normalize({"daily": {"path": "probes", "parameters": {"d": "today"}}}, raw_auth)
        days = iter([date(2024, 3, 15), date(2024, 3, 16)])
        engine = DispatchEngine(make_client(json_handler), clock=lambda: next(days))

        first = engine.run_cycle(registry)[0]
        second = engine.run_cycle(registry)[0]
        assert first.request.query["d"] == "2024/03/15"
        assert second.request.query["d"] == "2024/03/16"
