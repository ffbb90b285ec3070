"""
Structured error types for playdeck.

Every failure that leaves the catalog or execution layers is a typed
``PlaydeckError`` carrying a category, a retry flag, structured context and
the chained underlying exception.  Callers (the CLI, an API, a poller) decide
how to surface an error from its type alone, without parsing messages.

Manifesto:
    - **Typed taxonomy:** Configuration, acquisition, parse, storage and
      execution failures are distinct classes
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Errors carry instance ids, commands and paths
    - **Error chaining:** The original exception is preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       PlaydeckError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  ConfigurationError   AcquisitionError     ParseError           │
        │  (CONFIG)             (SOURCE, reason)     (PARSE)              │
        │                                                                 │
        │  StorageError         ExecutionError                            │
        │  (STORAGE)            (EXECUTION)                               │
        │       │                                                         │
        │  InstanceNotFoundError                                          │
        │  InstanceReadError                                              │
        └─────────────────────────────────────────────────────────────────┘

        InvalidTransitionError(ValueError) guards the instance state machine.

Local recovery is limited to two cases, both inside the sync controller: a
pull that fails with ``AcquisitionFailure.MISSING_TARGET`` falls back to a
clone, and a manifest read right after an install is retried.  Everything
else propagates to the caller.

Usage:
    from playdeck.core.errors import AcquisitionError, AcquisitionFailure

    raise AcquisitionError(
        "git pull failed",
        reason=AcquisitionFailure.AUTH,
        exit_code=128,
        output=result.output,
    ).with_context(path=str(target))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"             # Missing source, image, namespace
    SOURCE = "SOURCE"             # git / ansible-galaxy failures
    PARSE = "PARSE"               # Catalog, manifest, JSON records
    STORAGE = "STORAGE"           # Instance records
    EXECUTION = "EXECUTION"       # Automation engine runs
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


class AcquisitionFailure(str, Enum):
    """Why a catalog acquisition command failed."""

    AUTH = "auth"                     # Credentials rejected
    NOT_FOUND = "not_found"           # Remote repository or package missing
    MISSING_TARGET = "missing_target"  # Local mirror directory absent
    GENERIC = "generic"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Typed fields cover what playdeck errors usually need; anything else goes
    into ``metadata``.  ``to_dict()`` only emits fields that are set, so the
    result can be passed straight to a structlog call.
    """

    instance_id: str | None = None
    demo_id: str | None = None
    path: str | None = None
    command: list[str] | None = None
    source: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["instance_id", "demo_id", "path", "command", "source"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class PlaydeckError(Exception):
    """
    Base exception for all playdeck errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.

    Examples:
        >>> error = PlaydeckError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(instance_id="web-ab12").context.instance_id
        'web-ab12'
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
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PlaydeckError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
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
# CONFIGURATION
# =============================================================================


class ConfigurationError(PlaydeckError):
    """
    Required configuration is missing or invalid.

    Raised for a missing catalog source, execution sandbox image, or
    namespace/collection name.  Never retried: the operator has to fix the
    configuration first.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# ACQUISITION
# =============================================================================


class AcquisitionError(PlaydeckError):
    """
    The catalog mirror could not be acquired or updated.

    ``reason`` distinguishes credential problems, missing remotes, a missing
    local mirror (which triggers the clone fallback) and everything else.
    """

    default_category = ErrorCategory.SOURCE
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        reason: AcquisitionFailure = AcquisitionFailure.GENERIC,
        exit_code: int | None = None,
        output: str = "",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reason = reason
        self.exit_code = exit_code
        self.output = output

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reason"] = self.reason.value
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        return result


# =============================================================================
# PARSING
# =============================================================================


class ParseError(PlaydeckError):
    """Catalog, manifest or record text could not be read or parsed."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


# =============================================================================
# STORAGE
# =============================================================================


class StorageError(PlaydeckError):
    """Instance records could not be written or removed."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class InstanceNotFoundError(StorageError):
    """No instance records exist for the requested id."""


class InstanceReadError(StorageError):
    """One of the instance's records is unreadable or malformed."""


# =============================================================================
# EXECUTION
# =============================================================================


class ExecutionError(PlaydeckError):
    """
    A run failed.

    Covers spawn failures, non-zero exits of the automation engine and
    failures to persist the final status.  The instance status is always
    ``failed`` when this is raised from the orchestrator.
    """

    default_category = ErrorCategory.EXECUTION
    default_retryable = False

    def __init__(self, message: str, *, exit_code: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code


class InvalidTransitionError(ValueError):
    """Raised when an illegal instance state transition is attempted."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid instance state transition: {current} → {target}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, PlaydeckError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, PlaydeckError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, ValueError):
        return ErrorCategory.PARSE
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "AcquisitionFailure",
    "ErrorContext",
    "PlaydeckError",
    "ConfigurationError",
    "AcquisitionError",
    "ParseError",
    "StorageError",
    "InstanceNotFoundError",
    "InstanceReadError",
    "ExecutionError",
    "InvalidTransitionError",
    "is_retryable",
    "categorize_error",
]
