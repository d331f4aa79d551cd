"""Output records handed to the sink."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from uptrends_spine.core.errors import MappingError

TIMESTAMP_FIELD = "@timestamp"
TAGS_FIELD = "tags"


class OutputRecord:
    """A structured record: top-level fields plus a list of tags.

    Examples:
        >>> record = OutputRecord.from_payload({"ProbeName": "home"}, target="probe")
        >>> record.get_field("probe")
        {'ProbeName': 'home'}
        >>> record.tag("_http_request_failure")
        >>> record.tags
        ['_http_request_failure']
    """

    def __init__(self, fields: Mapping[str, Any] | None = None) -> None:
        self.timestamp = datetime.now(UTC)
        self._fields: dict[str, Any] = {}
        self._tags: list[str] = []
        for key, value in (fields or {}).items():
            if key == TAGS_FIELD:
                self._absorb_tags(value)
            else:
                self.set_field(key, value)

    def _absorb_tags(self, value: Any) -> None:
        # Payload tags may be a list or a single scalar label.
        if value is None:
            return
        labels = value if isinstance(value, list) else [value]
        for label in labels:
            if label is not None:
                self.tag(str(label))

    @classmethod
    def from_payload(cls, payload: Any, target: str | None = None) -> OutputRecord:
        """Build a record from one decoded payload.

        With ``target`` the payload is nested under that field; without it
        the payload must be a mapping and becomes the record root.
        """
        if target:
            return cls({target: payload})
        if not isinstance(payload, Mapping):
            raise MappingError(
                f"Payload of type {type(payload).__name__} cannot be a record root; "
                "set a target field"
            )
        return cls(payload)

    def set_field(self, key: str, value: Any) -> None:
        if not isinstance(key, str) or not key:
            raise MappingError(f"Invalid field name {key!r}")
        if key == TAGS_FIELD:
            raise MappingError("Use tag() to set tags")
        self._fields[key] = value

    def get_field(self, key: str, default: Any = None) -> Any:
        return self._fields.get(key, default)

    def has_field(self, key: str) -> bool:
        return key in self._fields

    def tag(self, label: str) -> None:
        if label not in self._tags:
            self._tags.append(label)

    @property
    def tags(self) -> list[str]:
        return list(self._tags)

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self._fields)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {TIMESTAMP_FIELD: self.timestamp.isoformat()}
        result.update(self._fields)
        if self._tags:
            result[TAGS_FIELD] = list(self._tags)
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        return f"OutputRecord(fields={sorted(self._fields)}, tags={self._tags})"


__all__ = ["OutputRecord", "TIMESTAMP_FIELD", "TAGS_FIELD"]
