"""Execution: instance records and the run orchestrator.

Modules:
    models        InstanceState machine, InstanceSpec, InstanceStatus, Instance
    store         InstanceStore (spec.json / status.json per instance)
    command       systemd-run + ansible-navigator command template
    orchestrator  ExecutionOrchestrator (execute, stream, reapply, watch)
"""

from playdeck.execution.command import build_run_command, build_variable_bundle
from playdeck.execution.models import (
    VALID_TRANSITIONS,
    Instance,
    InstanceSpec,
    InstanceState,
    InstanceStatus,
    validate_transition,
)
from playdeck.execution.orchestrator import ExecutionOrchestrator
from playdeck.execution.store import InstanceStore

__all__ = [
    "VALID_TRANSITIONS",
    "ExecutionOrchestrator",
    "Instance",
    "InstanceSpec",
    "InstanceState",
    "InstanceStatus",
    "InstanceStore",
    "build_run_command",
    "build_variable_bundle",
    "validate_transition",
]
