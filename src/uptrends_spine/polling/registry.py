"""
Operation registry — validated, immutable request definitions.

Raw configuration is loose: an operation may be a bare path string or a
mapping, parameter values may be strings or numbers, the path may carry
the full API base URL. ``normalize()`` runs once at registration and
turns all of that into frozen ``Operation`` and ``Credentials`` values so
nothing is coerced again at request time.

Allow-list grammar::

    [https://api.uptrends.com/v3/][/]ROOT[/ID/SUFFIX]

    ROOT   = probes | probegroups | checkpointservers
    ID     = 32 word characters (A-Z a-z 0-9 _)
    SUFFIX = anything

Every violation raises a ``ConfigError`` naming the operation and the
offending key or value; the poller refuses to start on any of them.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

from uptrends_spine.core.errors import InvalidConfigError, MissingConfigError
from uptrends_spine.core.logging import get_logger
from uptrends_spine.polling.dates import DATE_FORMAT

logger = get_logger(__name__)

BASE_URL = "https://api.uptrends.com/v3/"

PATH_ROOTS = ("probes", "probegroups", "checkpointservers")

PATH_PATTERN = re.compile(
    r"\A/?(?:" + "|".join(PATH_ROOTS) + r")(?:/\w{32}/.*)?\Z",
    re.ASCII | re.DOTALL,
)

OPERATION_KEYS = frozenset({"path", "parameters", "type"})

AUTH_KEYS = ("user", "password")


@dataclass(frozen=True)
class Credentials:
    """Basic-auth credentials shared by all operations."""

    user: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class Operation:
    """One named GET request definition.

    Attributes:
        name: Unique name within the registry
        path: Validated path relative to ``BASE_URL`` (no leading slash)
        parameters: Query parameters; values are literals or date token names
        type: Optional label copied onto every record the operation emits
    """

    name: str
    path: str
    parameters: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    type: str | None = None

    @property
    def url(self) -> str:
        return BASE_URL + self.path


@dataclass(frozen=True)
class OperationRegistry:
    """Immutable result of ``normalize()``."""

    operations: Mapping[str, Operation]
    credentials: Credentials

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations.values())

    def __len__(self) -> int:
        return len(self.operations)

    def __getitem__(self, name: str) -> Operation:
        return self.operations[name]

    @property
    def names(self) -> list[str]:
        return list(self.operations)


# =============================================================================
# NORMALIZATION
# =============================================================================


def normalize_path(name: str, raw_path: Any) -> str:
    """Strip the base URL, validate against the allow-list, drop the leading slash."""
    if not isinstance(raw_path, str) or not raw_path:
        raise InvalidConfigError(
            f"operations.{name}.path",
            raw_path,
            f"Operation '{name}' needs a non-empty path string, got {raw_path!r}",
        ).with_context(operation=name)

    path = raw_path[len(BASE_URL):] if raw_path.startswith(BASE_URL) else raw_path

    if not PATH_PATTERN.match(path):
        raise InvalidConfigError(
            f"operations.{name}.path",
            raw_path,
            f"Operation '{name}' has an invalid path {raw_path!r}: must start with "
            f"one of {', '.join(PATH_ROOTS)}, optionally followed by "
            "'/<32 character id>/<anything>'",
        ).with_context(operation=name)

    return path.lstrip("/")


def _literal(name: str, key: str, value: Any) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    # YAML loads unquoted ISO dates and timestamps as date/datetime
    if isinstance(value, datetime):
        return value.strftime(f"{DATE_FORMAT} %H:%M:%S")
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, (str, int, float)):
        return str(value)
    raise InvalidConfigError(
        f"operations.{name}.parameters.{key}",
        value,
        f"Operation '{name}' parameter '{key}' must be a string, number or date, got {value!r}",
    ).with_context(operation=name)


def normalize_parameters(name: str, raw_parameters: Any) -> Mapping[str, str]:
    """Check parameter keys and coerce values to query literals."""
    if raw_parameters is None:
        return MappingProxyType({})
    if not isinstance(raw_parameters, Mapping):
        raise InvalidConfigError(
            f"operations.{name}.parameters",
            raw_parameters,
            f"Operation '{name}' parameters must be a mapping, got "
            f"{type(raw_parameters).__name__}",
        ).with_context(operation=name)

    parameters: dict[str, str] = {}
    for key, value in raw_parameters.items():
        if not isinstance(key, str) or not key:
            raise InvalidConfigError(
                f"operations.{name}.parameters",
                key,
                f"Invalid parameter {key!r} in operation '{name}'",
            ).with_context(operation=name)
        parameters[key] = _literal(name, key, value)

    if "format" in parameters:
        logger.warning(
            "registry.format_overridden",
            operation=name,
            configured=parameters["format"],
            forced="json",
        )
    return MappingProxyType(parameters)


def normalize_operation(name: Any, raw: Any) -> Operation:
    """Turn one raw operation entry into an ``Operation``."""
    if not isinstance(name, str) or not name:
        raise InvalidConfigError("operations", name, f"Invalid operation name {name!r}")

    if isinstance(raw, str):
        return Operation(name=name, path=normalize_path(name, raw))

    if not isinstance(raw, Mapping):
        raise InvalidConfigError(
            f"operations.{name}",
            raw,
            f"Operation '{name}' must be a path string or a mapping with "
            f"'path', 'parameters' and 'type', got {type(raw).__name__}",
        ).with_context(operation=name)

    for key in raw:
        if key not in OPERATION_KEYS:
            raise InvalidConfigError(
                f"operations.{name}.{key}",
                raw[key],
                f"Unknown key '{key}' in operation '{name}'",
            ).with_context(operation=name)

    if "path" not in raw:
        raise MissingConfigError(
            f"operations.{name}.path",
            f"Operation '{name}' has no path",
        ).with_context(operation=name)

    op_type = raw.get("type")
    if op_type is not None and not isinstance(op_type, str):
        raise InvalidConfigError(
            f"operations.{name}.type",
            op_type,
            f"Operation '{name}' type must be a string",
        ).with_context(operation=name)

    return Operation(
        name=name,
        path=normalize_path(name, raw["path"]),
        parameters=normalize_parameters(name, raw.get("parameters")),
        type=op_type,
    )


def normalize_credentials(raw_auth: Any) -> Credentials:
    if raw_auth is None:
        raise MissingConfigError("auth", "Invalid config. No auth (user and password) was specified.")
    if not isinstance(raw_auth, Mapping):
        raise InvalidConfigError("auth", "<redacted>", "auth must be a mapping with user and password")

    for key in raw_auth:
        if key not in AUTH_KEYS:
            raise InvalidConfigError(f"auth.{key}", "<redacted>", f"Unknown key '{key}' in auth")

    values = {}
    for key in AUTH_KEYS:
        value = raw_auth.get(key)
        if not isinstance(value, str) or not value:
            raise MissingConfigError(f"auth.{key}", f"Invalid config. auth.{key} is required.")
        values[key] = value
    return Credentials(**values)


def normalize(raw_operations: Any, raw_auth: Any) -> OperationRegistry:
    """Validate raw configuration into an immutable ``OperationRegistry``.

    Raises:
        MissingConfigError: No operations, or auth user/password missing.
        InvalidConfigError: Any malformed operation, path or parameter.
    """
    credentials = normalize_credentials(raw_auth)

    if not raw_operations:
        raise MissingConfigError("operations", "Invalid config. No operations were specified.")
    if not isinstance(raw_operations, Mapping):
        raise InvalidConfigError(
            "operations",
            raw_operations,
            "operations must be a mapping of name to path or operation",
        )

    operations = {
        name: normalize_operation(name, raw) for name, raw in raw_operations.items()
    }

    return OperationRegistry(
        operations=MappingProxyType(operations),
        credentials=credentials,
    )


__all__ = [
    "BASE_URL",
    "PATH_ROOTS",
    "Credentials",
    "Operation",
    "OperationRegistry",
    "normalize",
    "normalize_path",
    "normalize_parameters",
    "normalize_operation",
    "normalize_credentials",
]
