"""
Tests for instance state transitions and record serialization.

Tests cover:
- Valid and invalid InstanceState transitions
- Terminal states
- camelCase JSON for spec.json / status.json
"""

import json

import pytest

from playdeck.catalog.models import DemoKind, Parameter
from playdeck.core.errors import InvalidTransitionError
from playdeck.execution.models import (
    VALID_TRANSITIONS,
    InstanceSpec,
    InstanceState,
    InstanceStatus,
    utcnow_iso,
    validate_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (InstanceState.PENDING, InstanceState.RUNNING),
            (InstanceState.RUNNING, InstanceState.COMPLETED),
            (InstanceState.RUNNING, InstanceState.FAILED),
            (InstanceState.COMPLETED, InstanceState.RUNNING),
            (InstanceState.FAILED, InstanceState.RUNNING),
        ],
    )
    def test_valid(self, current, target):
        validate_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (InstanceState.PENDING, InstanceState.COMPLETED),
            (InstanceState.PENDING, InstanceState.FAILED),
            (InstanceState.RUNNING, InstanceState.RUNNING),
            (InstanceState.RUNNING, InstanceState.PENDING),
            (InstanceState.COMPLETED, InstanceState.FAILED),
            (InstanceState.FAILED, InstanceState.COMPLETED),
        ],
    )
    def test_invalid(self, current, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(current, target)
        assert exc_info.value.current == current.value
        assert exc_info.value.target == target.value

    def test_every_state_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(InstanceState)

    def test_terminal_states(self):
        assert {s for s in InstanceState if s.is_terminal} == {
            InstanceState.COMPLETED,
            InstanceState.FAILED,
        }


class TestSerialization:
    def test_spec_camel_case(self):
        spec = InstanceSpec(
            id="web-ab12",
            demo_id="web",
            demo_name="Web",
            demo_kind=DemoKind.PLAYBOOK,
            demo_path="web.yml",
            resolved_run_target="/c/playbooks/web.yml",
            parameters={"port": 80},
            variable_definitions=[Parameter(name="port", default=8080)],
        )
        data = json.loads(spec.to_json())
        assert data["demoId"] == "web"
        assert data["demoKind"] == "playbook"
        assert data["resolvedRunTarget"] == "/c/playbooks/web.yml"
        assert data["variableDefinitions"][0]["default"] == 8080
        assert data["createdAt"].endswith("Z")
        assert InstanceSpec.model_validate_json(spec.to_json()) == spec

    def test_status_omits_unset_fields(self):
        status = InstanceStatus(state=InstanceState.PENDING, started_at="2024-01-01T00:00:00.000Z")
        assert json.loads(status.to_json()) == {
            "state": "pending",
            "startedAt": "2024-01-01T00:00:00.000Z",
        }

    def test_status_accepts_camel_case(self):
        status = InstanceStatus.model_validate(
            {"state": "failed", "completedAt": "x", "error": "exit code 2", "summary": {"hosts": 1}}
        )
        assert status.state is InstanceState.FAILED
        assert status.completed_at == "x"
        assert status.summary == {"hosts": 1}

    def test_utcnow_iso_format(self):
        stamp = utcnow_iso()
        assert stamp.endswith("Z")
        assert len(stamp) == len("2024-01-01T00:00:00.000Z")
