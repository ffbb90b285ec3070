"""Command template for a detached automation run.

Every run goes through the same fixed template::

    systemd-run --unit=playdeck-<id> --collect --wait --pipe --quiet --
        ansible-navigator run <entrypoint>
            --execution-environment-image <image>
            --mode stdout --pull-policy missing
            --extra-vars <json bundle>

systemd supervises the unit, so the automation engine is not a child of the
playdeck process.  ``--wait --pipe`` keeps the output attached while the
caller is still around.

Playbooks run directly.  Roles run through a small launcher playbook that
includes the role named by ``demo_run_target``.
"""

from __future__ import annotations

import json
from pathlib import PurePosixPath
from typing import Any

from playdeck.catalog.models import DemoKind
from playdeck.core.protocols import HostCapabilities
from playdeck.core.settings import PlaydeckSettings
from playdeck.execution.models import InstanceSpec

UNIT_PREFIX = "playdeck-"
LAUNCHER_NAME = "run_role.yml"

LAUNCHER_PLAYBOOK = """\
---
- name: Run playdeck role
  hosts: localhost
  connection: local
  gather_facts: false
  tasks:
    - name: Include requested role
      ansible.builtin.include_role:
        name: "{{ demo_run_target }}"
"""


def build_variable_bundle(spec: InstanceSpec, *, result_path: str) -> dict[str, Any]:
    """Extra vars handed to the automation engine.

    Parameter values are also exposed at top level so playbooks can use
    them as ordinary variables.  Reserved ``demo_*`` keys win over a
    parameter of the same name.
    """
    bundle: dict[str, Any] = dict(spec.parameters)
    bundle.update(
        {
            "demo_instance_id": spec.id,
            "demo_kind": spec.demo_kind.value,
            "demo_run_target": spec.resolved_run_target,
            "demo_parameters": dict(spec.parameters),
            "demo_parameter_definitions": [
                p.model_dump(mode="json", exclude_none=True) for p in spec.variable_definitions
            ],
            "demo_result_path": result_path,
        }
    )
    return bundle


def unit_name(instance_id: str) -> str:
    return f"{UNIT_PREFIX}{instance_id}"


def build_run_command(
    spec: InstanceSpec,
    *,
    image: str,
    entrypoint: str,
    result_path: str,
) -> list[str]:
    bundle = build_variable_bundle(spec, result_path=result_path)
    return [
        "systemd-run",
        f"--unit={unit_name(spec.id)}",
        "--collect",
        "--wait",
        "--pipe",
        "--quiet",
        "--",
        "ansible-navigator",
        "run",
        entrypoint,
        "--execution-environment-image",
        image,
        "--mode",
        "stdout",
        "--pull-policy",
        "missing",
        "--extra-vars",
        json.dumps(bundle, separators=(",", ":"), sort_keys=True),
    ]


def ensure_launcher(host: HostCapabilities, settings: PlaydeckSettings) -> str:
    """Write the role launcher playbook if it is missing or outdated."""
    path = str(PurePosixPath(str(settings.launchers_dir)) / LAUNCHER_NAME)
    try:
        current = host.read_file(path)
    except (OSError, UnicodeDecodeError):
        current = None
    if current != LAUNCHER_PLAYBOOK:
        host.write_file(path, LAUNCHER_PLAYBOOK)
    return path


def entrypoint_for(spec: InstanceSpec, host: HostCapabilities, settings: PlaydeckSettings) -> str:
    """Playbook path for *spec*: its own playbook or the role launcher."""
    if spec.demo_kind is DemoKind.ROLE:
        return ensure_launcher(host, settings)
    return spec.resolved_run_target


__all__ = [
    "LAUNCHER_PLAYBOOK",
    "build_run_command",
    "build_variable_bundle",
    "ensure_launcher",
    "entrypoint_for",
    "unit_name",
]
