"""Instance domain models.

Defines the persisted records of a demo run:
- InstanceSpec: What to run, frozen at creation
- InstanceStatus: Where the run is, the only record updated afterwards
- Instance: Both records read together by id

Records serialize to camelCase JSON (``demoId``, ``startedAt`` ...) so the
files under ``instances/<id>/`` are readable by any front end polling them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from playdeck.catalog.models import DemoKind, Parameter
from playdeck.core.errors import InvalidTransitionError


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def utcnow_iso() -> str:
    """Current UTC time as ``2024-05-01T12:00:00.000Z``."""
    return utcnow().isoformat(timespec="milliseconds").replace("+00:00", "Z")


class InstanceState(str, Enum):
    """Lifecycle state of an instance.

    Valid transition graph::

        PENDING   → RUNNING
        RUNNING   → COMPLETED | FAILED
        COMPLETED → RUNNING (execute again)
        FAILED    → RUNNING (execute again)

    ``reapply`` moves any state back to PENDING; it is the only way out of
    RUNNING other than the run finishing.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (InstanceState.COMPLETED, InstanceState.FAILED)


VALID_TRANSITIONS: dict[InstanceState, frozenset[InstanceState]] = {
    InstanceState.PENDING: frozenset({InstanceState.RUNNING}),
    InstanceState.RUNNING: frozenset({InstanceState.COMPLETED, InstanceState.FAILED}),
    InstanceState.COMPLETED: frozenset({InstanceState.RUNNING}),
    InstanceState.FAILED: frozenset({InstanceState.RUNNING}),
}


def validate_transition(current: InstanceState, target: InstanceState) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_transition(InstanceState.RUNNING, InstanceState.COMPLETED)
        >>> validate_transition(InstanceState.COMPLETED, InstanceState.FAILED)
        InvalidTransitionError: Invalid instance state transition: completed → failed
    """
    if target not in VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class InstanceSpec(_Record):
    """What an instance runs. Immutable after creation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    demo_id: str
    demo_name: str
    demo_kind: DemoKind
    demo_path: str
    resolved_run_target: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    variable_definitions: list[Parameter] = Field(default_factory=list)
    created_at: str = Field(default_factory=utcnow_iso)


class InstanceStatus(_Record):
    """Where an instance is in its lifecycle."""

    state: InstanceState = InstanceState.PENDING
    message: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    error: str | None = None
    output: str | None = None
    summary: dict[str, Any] | None = None


class Instance(BaseModel):
    """Spec and status of one instance, always read together."""

    id: str
    spec: InstanceSpec
    status: InstanceStatus


__all__ = [
    "utcnow",
    "utcnow_iso",
    "InstanceState",
    "VALID_TRANSITIONS",
    "validate_transition",
    "InstanceSpec",
    "InstanceStatus",
    "Instance",
]
