"""Playdeck Core -- primitives shared by the catalog and execution layers.

Architecture::

    errors.py      Structured error hierarchy (PlaydeckError and subclasses)
    logging.py     structlog configuration, LogContext
    settings.py    PlaydeckSettings (PLAYDECK_* environment)
    protocols.py   HostCapabilities / ProcessHandle protocols, run_command
    host.py        LocalHost: pathlib + asyncio subprocesses
    retry.py       RetryPolicy / RetryContext with injectable sleep
"""

from playdeck.core.errors import (
    AcquisitionError,
    AcquisitionFailure,
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    InstanceNotFoundError,
    InstanceReadError,
    InvalidTransitionError,
    ParseError,
    PlaydeckError,
    StorageError,
)
from playdeck.core.host import LocalHost
from playdeck.core.logging import LogContext, configure_logging, get_logger
from playdeck.core.protocols import CommandResult, HostCapabilities, ProcessHandle, run_command
from playdeck.core.retry import RetryContext, RetryPolicy
from playdeck.core.settings import PlaydeckSettings, get_settings

__all__ = [
    "AcquisitionError",
    "AcquisitionFailure",
    "CommandResult",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorContext",
    "ExecutionError",
    "HostCapabilities",
    "InstanceNotFoundError",
    "InstanceReadError",
    "InvalidTransitionError",
    "LocalHost",
    "LogContext",
    "ParseError",
    "PlaydeckError",
    "PlaydeckSettings",
    "ProcessHandle",
    "RetryContext",
    "RetryPolicy",
    "StorageError",
    "configure_logging",
    "get_logger",
    "get_settings",
    "run_command",
]
