"""
Structured error types for uptrends-spine.

Every failure the poller can raise is a subclass of ``UptrendsSpineError``.
The hierarchy separates errors that must stop the process (configuration)
from errors that are only logged (record mapping). Request failures are
not exceptions at all: they become ``HttpFailure`` outcomes and tagged records.

Manifesto:
    - **Refuse to start:** Configuration errors are fatal at registration
    - **Failures are data:** Request failures become tagged records, not outages
    - **Rich context:** Errors carry operation, URL and key metadata
    - **Error chaining:** Underlying exceptions are kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                     UptrendsSpineError                           │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError          ValidationError        MappingError        │
        │  (CONFIG)             (VALIDATION)           (PARSE)             │
        │       │                     │                                    │
        │  MissingConfigError   UnknownTokenError                          │
        │  InvalidConfigError                                              │
        │  ScheduleError (ORCHESTRATION)                                   │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = InvalidConfigError("operations.probes.path", "widgets")
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.with_context(operation="probes").context.operation
    'probes'

Tags:
    exception, error-hierarchy, configuration, uptrends-spine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    PARSE = "PARSE"               # Body decoding, record construction
    VALIDATION = "VALIDATION"     # Bad values supplied at call time
    CONFIG = "CONFIG"             # Missing config, invalid settings
    ORCHESTRATION = "ORCHESTRATION"  # Scheduler errors
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Only non-None fields end up in ``to_dict()``; anything that has no
    dedicated field is kept in ``metadata``.

    Attributes:
        operation: Name of the configured operation
        key: Configuration key the error refers to
        url: URL that was being requested
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    key: str | None = None
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "key", "url"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class UptrendsSpineError(Exception):
    """
    Base exception for all uptrends-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    callers rarely need to pass them explicitly.

    Examples:
        >>> error = UptrendsSpineError("Something went wrong")
        >>> error.retryable
        False
        >>> error.to_dict()["error_type"]
        'UptrendsSpineError'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> UptrendsSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise InvalidConfigError("path", path).with_context(operation="probes")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(UptrendsSpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed before the poller starts.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")
        self.context.key = key


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")
        self.context.key = key


class ScheduleError(ConfigError):
    """Schedule mapping is missing, ambiguous or unparseable."""

    default_category = ErrorCategory.ORCHESTRATION


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(UptrendsSpineError):
    """Value supplied at call time is not acceptable."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class UnknownTokenError(ValidationError):
    """Date token is not one of the enumerated tokens."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Unknown date token: {token!r}")


class MappingError(UptrendsSpineError):
    """An HTTP outcome could not be turned into an output record."""

    default_category = ErrorCategory.PARSE


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "UptrendsSpineError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "ScheduleError",
    "ValidationError",
    "UnknownTokenError",
    "MappingError",
]
