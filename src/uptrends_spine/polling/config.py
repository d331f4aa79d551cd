"""
Poller document — the YAML file describing what to poll and when.

Example YAML::

    schedule:
      every: 1h
    auth:
      user: api-user
      password: secret
    target: uptrends
    metadata_target: "@metadata"
    tags: [uptrends]
    operations:
      probes: probes
      monthly_sla:
        path: probegroups/0123456789abcdef0123456789abcdef/statistics
        type: sla
        parameters:
          Start: first_day_of_previous_month
          End: last_day_of_previous_month
          Dimension: Month

pydantic checks the document's outer shape; ``schedule`` and ``operations``
are deliberately loose here and validated by ``ScheduleSpec.from_mapping``
and ``registry.normalize`` so every entry point reports the same errors.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from uptrends_spine.core.errors import InvalidConfigError, MissingConfigError
from uptrends_spine.core.scheduling.spec import ScheduleSpec
from uptrends_spine.polling.registry import OperationRegistry, normalize


class PollerConfig(BaseModel):
    """Validated poller document."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    schedule: dict[str, Any] | None = Field(
        default=None, description="Exactly one of cron, every, at, in"
    )
    operations: dict[Any, Any] = Field(
        default_factory=dict, description="name -> path | {path, parameters, type}"
    )
    auth: dict[str, Any] | None = Field(default=None, description="{user, password}")
    target: str | None = Field(
        default=None, description="Field to nest decoded payloads under"
    )
    metadata_target: str | None = Field(
        default=None, description="Field for the request/response metadata block"
    )
    codec: Literal["json", "plain"] = Field(default="json")
    tags: list[str] = Field(default_factory=list, description="Tags added to every record")

    @field_validator("metadata_target")
    @classmethod
    def _metadata_apart_from_payload(cls, v: str | None, info: ValidationInfo) -> str | None:
        if v and v == info.data.get("target"):
            raise ValueError(
                f"must differ from target ({v!r}); the metadata block would replace the payload"
            )
        return v

    # ── Derived, validated views ─────────────────────────────────

    def schedule_spec(self) -> ScheduleSpec:
        return ScheduleSpec.from_mapping(self.schedule)

    def registry(self) -> OperationRegistry:
        return normalize(self.operations, self.auth)

    # ── Loading ──────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Any) -> PollerConfig:
        if not isinstance(data, dict):
            raise InvalidConfigError(
                "<root>", type(data).__name__, "Poller config must be a mapping"
            )
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first["loc"]) or "<root>"
            raise InvalidConfigError(
                key, first.get("input"), f"Invalid config at {key}: {first['msg']}"
            ).with_context(errors=e.error_count()) from e

    @classmethod
    def from_yaml(cls, yaml_content: str) -> PollerConfig:
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise InvalidConfigError("<yaml>", None, f"Poller config is not valid YAML: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: str | Path) -> PollerConfig:
        path = Path(path)
        if not path.is_file():
            raise MissingConfigError("config_file", f"Poller config file not found: {path}")
        return cls.from_yaml(path.read_text(encoding="utf-8"))


__all__ = ["PollerConfig"]
