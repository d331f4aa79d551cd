"""
Body codecs — bytes in, zero or more payloads out.

``json`` (default)
    An object yields one payload, an array yields one payload per element,
    a scalar yields ``{"message": value}``. A body that is not valid JSON
    yields ``{"message": <text>}`` tagged ``_jsonparsefailure`` instead of
    raising, so a broken response still reaches the sink.

``plain``
    The whole body as ``{"message": <text>}``.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from uptrends_spine.core.errors import InvalidConfigError
from uptrends_spine.core.logging import get_logger

logger = get_logger(__name__)

JSON_PARSE_FAILURE_TAG = "_jsonparsefailure"


@dataclass(frozen=True)
class Decoded:
    """One decoded payload plus tags the codec wants on its record."""

    payload: Any
    tags: tuple[str, ...] = ()


@runtime_checkable
class Codec(Protocol):
    name: str

    def decode(self, body: bytes) -> Iterator[Decoded]:
        ...


def _text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


def _as_mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {"message": value}


class JsonCodec:
    name = "json"

    def decode(self, body: bytes) -> Iterator[Decoded]:
        text = _text(body)
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("codec.json_parse_failure", error=str(e), size=len(body))
            yield Decoded({"message": text}, (JSON_PARSE_FAILURE_TAG,))
            return

        if isinstance(value, list):
            for element in value:
                yield Decoded(_as_mapping(element))
        else:
            yield Decoded(_as_mapping(value))


class PlainCodec:
    name = "plain"

    def decode(self, body: bytes) -> Iterator[Decoded]:
        yield Decoded({"message": _text(body)})


CODECS: dict[str, type] = {
    JsonCodec.name: JsonCodec,
    PlainCodec.name: PlainCodec,
}


def get_codec(name: str) -> Codec:
    try:
        return CODECS[name]()
    except KeyError:
        raise InvalidConfigError(
            "codec", name, f"Unknown codec {name!r}; expected one of {sorted(CODECS)}"
        ) from None


__all__ = ["Codec", "Decoded", "JsonCodec", "PlainCodec", "JSON_PARSE_FAILURE_TAG", "get_codec"]
