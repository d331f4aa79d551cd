"""
Shared pytest fixtures for uptrends-spine tests.

This module provides:
- HTTP doubles built on ``httpx.MockTransport`` (no network in tests)
- A sample operation registry and credentials
- A fixed reference date (2024-03-15, a Friday)
"""

import sys
from collections.abc import Callable, Generator
from datetime import date
from pathlib import Path

import httpx
import pytest

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from uptrends_spine.core.settings import clear_settings_cache
from uptrends_spine.polling.client import ParallelClient
from uptrends_spine.polling.registry import OperationRegistry, normalize

REFERENCE_DATE = date(2024, 3, 15)

GROUP_ID = "0123456789abcdef0123456789abcdef"


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Settings are cached per process; tests must not leak env overrides."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def reference_date() -> date:
    return REFERENCE_DATE


@pytest.fixture
def raw_auth() -> dict[str, str]:
    return {"user": "api-user", "password": "s3cret"}


@pytest.fixture
def raw_operations() -> dict:
    return {
        "probes": "probes",
        "monthly": {
            "path": f"probegroups/{GROUP_ID}/statistics",
            "type": "sla",
            "parameters": {
                "Start": "first_day_of_previous_month",
                "End": "last_day_of_previous_month",
                "Dimension": "Month",
            },
        },
    }


@pytest.fixture
def registry(raw_operations, raw_auth) -> OperationRegistry:
    return normalize(raw_operations, raw_auth)


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], ParallelClient]:
    """Build a ``ParallelClient`` whose requests are answered by ``handler``."""

    def _make(handler, **kwargs) -> ParallelClient:
        kwargs.setdefault("automatic_retries", 0)
        return ParallelClient(transport=httpx.MockTransport(handler), **kwargs)

    return _make


@pytest.fixture
def json_handler() -> Callable[[httpx.Request], httpx.Response]:
    """Answers every request with a two-element JSON array."""

    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"Name": "a"}, {"Name": "b"}])

    return _handler
