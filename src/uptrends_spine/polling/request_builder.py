"""Request builder — operation + reference date + credentials → request descriptor."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from urllib.parse import urlencode

from uptrends_spine.core.errors import InvalidConfigError
from uptrends_spine.polling.dates import is_token, render
from uptrends_spine.polling.registry import BASE_URL, Credentials, Operation

FORCED_QUERY = {"format": "json"}


@dataclass(frozen=True)
class RequestDescriptor:
    """A ready-to-send GET request. Built fresh every cycle, never stored."""

    url: str
    query: Mapping[str, str]
    credentials: Credentials

    @property
    def full_url(self) -> str:
        """URL with the encoded query string, as reported in metadata."""
        return f"{self.url}?{urlencode(dict(self.query))}"


def resolve_parameters(parameters: Mapping[str, str], today: date) -> dict[str, str]:
    """Replace date-token values by their rendered dates and force ``format=json``."""
    query: dict[str, str] = {}
    for key, value in parameters.items():
        if not isinstance(key, str) or not key:
            raise InvalidConfigError("parameters", key, f"Invalid parameter {key!r}")
        query[key] = render(value, today) if is_token(value) else value
    query.update(FORCED_QUERY)
    return query


def build(
    operation_path: str,
    parameters: Mapping[str, str],
    credentials: Credentials,
    today: date,
) -> RequestDescriptor:
    """Build the request for one operation against the cycle's reference date.

    Credentials are attached as-is; the HTTP client sends them eagerly on
    the first request rather than waiting for a 401 challenge.
    """
    return RequestDescriptor(
        url=BASE_URL + operation_path,
        query=MappingProxyType(resolve_parameters(parameters, today)),
        credentials=credentials,
    )


def build_for(operation: Operation, credentials: Credentials, today: date) -> RequestDescriptor:
    return build(operation.path, operation.parameters, credentials, today)


__all__ = ["FORCED_QUERY", "RequestDescriptor", "resolve_parameters", "build", "build_for"]
