"""
Tests for InstanceStore.

Tests cover:
- create: id format, collision handling, spec snapshot, pending status
- get: not-found vs. read errors
- list: unreadable instances skipped
- update_status: partial merge, synthesized status, transitions
- delete
"""

import json
from itertools import chain, repeat

import pytest

from playdeck.catalog.models import Parameter, ParameterType
from playdeck.core.errors import (
    InstanceNotFoundError,
    InstanceReadError,
    InvalidTransitionError,
    StorageError,
)
from playdeck.execution.models import InstanceState
from playdeck.execution.store import InstanceStore, id_prefix, random_suffix

ROOT = "/data/instances"


@pytest.fixture
def store(host, settings):
    return InstanceStore(host, settings)


@pytest.fixture
def definition(make_definition):
    return make_definition(
        "web",
        name="Web server",
        parameters=[Parameter(name="port", type=ParameterType.NUMBER, default=8080)],
    )


class TestCreate:
    def test_writes_spec_then_status(self, host, store, definition, config):
        instance = store.create(definition, {"port": 80}, config)

        assert instance.id.startswith("web-")
        spec = json.loads(host.files[f"{ROOT}/{instance.id}/spec.json"])
        status = json.loads(host.files[f"{ROOT}/{instance.id}/status.json"])
        assert spec["id"] == instance.id
        assert spec["demoId"] == "web"
        assert spec["demoName"] == "Web server"
        assert spec["demoKind"] == "playbook"
        assert spec["demoPath"] == "web.yml"
        assert spec["resolvedRunTarget"] == (
            "/data/catalog/ansible_collections/acme/demos/playbooks/web.yml"
        )
        assert spec["parameters"] == {"port": 80}
        assert spec["variableDefinitions"][0]["name"] == "port"
        assert status["state"] == "pending"
        assert status["startedAt"]
        assert list(host.files)[-2:] == [
            f"{ROOT}/{instance.id}/spec.json",
            f"{ROOT}/{instance.id}/status.json",
        ]

    def test_role_target_is_qualified(self, store, make_definition, config):
        instance = store.create(make_definition("db", kind="role", path="db"), {}, config)
        assert instance.spec.resolved_run_target == "acme.demos.db"

    def test_parameter_snapshot_is_independent(self, store, definition, config):
        instance = store.create(definition, {}, config)
        definition.parameters[0].default = 1
        assert instance.spec.variable_definitions[0].default == 8080

    def test_collision_regenerates_suffix(self, host, settings, definition, config):
        suffixes = chain(["aaaa", "aaaa", "bbbb"], repeat("zzzz"))
        store = InstanceStore(host, settings, suffix_factory=lambda: next(suffixes))

        first = store.create(definition, {}, config)
        second = store.create(definition, {}, config)

        assert first.id == "web-aaaa"
        assert second.id == "web-bbbb"

    def test_collision_bounded(self, host, settings, definition, config):
        store = InstanceStore(host, settings, suffix_factory=lambda: "same")
        store.create(definition, {}, config)
        with pytest.raises(StorageError):
            store.create(definition, {}, config)

    def test_write_failure_is_storage_error(self, host, settings, definition, config):
        store = InstanceStore(host, settings, suffix_factory=lambda: "abcd")
        host.write_errors[f"{ROOT}/web-abcd/spec.json"] = PermissionError("read-only")
        with pytest.raises(StorageError) as exc_info:
            store.create(definition, {}, config)
        assert exc_info.value.context.instance_id == "web-abcd"

    def test_demo_id_with_spaces(self, host, settings, make_definition, config):
        store = InstanceStore(host, settings, suffix_factory=lambda: "ab12")
        definition = make_definition("web demo", path="web.yml")

        instance = store.create(definition, {}, config)

        assert instance.id == "web-demo-ab12"
        assert instance.spec.demo_id == "web demo"
        assert store.get(instance.id).spec.demo_id == "web demo"

    @pytest.mark.parametrize(
        ("demo_id", "prefix"),
        [
            ("web", "web"),
            ("web demo", "web-demo"),
            ("acme/web:v1", "acme-web-v1"),
            ("../../etc", "etc"),
            ("a..b", "a.b"),
            ("_hidden", "hidden"),
            ("///", "demo"),
        ],
    )
    def test_id_prefix(self, demo_id, prefix):
        assert id_prefix(demo_id) == prefix

    def test_random_suffix(self):
        suffix = random_suffix()
        assert len(suffix) == 4
        assert suffix.isalnum()
        assert suffix == suffix.lower()


class TestGet:
    def test_round_trip(self, store, definition, config):
        created = store.create(definition, {"port": 80}, config)
        loaded = store.get(created.id)
        assert loaded.spec == created.spec
        assert loaded.status == created.status

    def test_missing_instance(self, store):
        with pytest.raises(InstanceNotFoundError):
            store.get("nope-1234")

    def test_invalid_id(self, store):
        with pytest.raises(InstanceNotFoundError):
            store.get("../etc")

    def test_missing_status_is_read_error(self, host, store, definition, config):
        instance = store.create(definition, {}, config)
        del host.files[f"{ROOT}/{instance.id}/status.json"]
        with pytest.raises(InstanceReadError):
            store.get(instance.id)

    def test_malformed_spec_is_read_error(self, host, store, definition, config):
        instance = store.create(definition, {}, config)
        host.files[f"{ROOT}/{instance.id}/spec.json"] = "{not json"
        with pytest.raises(InstanceReadError):
            store.get(instance.id)


class TestList:
    def test_empty_when_no_directory(self, store):
        assert store.list() == []

    def test_skips_broken_and_hidden(self, host, store, definition, config):
        good = store.create(definition, {}, config)
        bad = store.create(definition, {}, config)
        host.files[f"{ROOT}/{bad.id}/status.json"] = "garbage"
        host.write_file(f"{ROOT}/.status.json.tmp", "")

        assert [i.id for i in store.list()] == [good.id]


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_partial_merge(self, store, definition, config):
        instance = store.create(definition, {}, config)
        await store.update_status(instance.id, output="partial", message="hi")
        status = await store.update_status(instance.id, output="more")

        assert status.state is InstanceState.PENDING
        assert status.output == "more"
        assert status.message == "hi"
        assert status.started_at == instance.status.started_at
        assert store.get(instance.id).status == status

    @pytest.mark.asyncio
    async def test_synthesizes_missing_status(self, host, store, definition, config):
        instance = store.create(definition, {}, config)
        del host.files[f"{ROOT}/{instance.id}/status.json"]

        status = await store.update_status(instance.id, message="recovered")

        assert status.state is InstanceState.PENDING
        assert status.message == "recovered"
        assert store.get(instance.id).status.message == "recovered"

    @pytest.mark.asyncio
    async def test_transition_validates(self, store, definition, config):
        instance = store.create(definition, {}, config)
        with pytest.raises(InvalidTransitionError):
            await store.transition(instance.id, InstanceState.COMPLETED)

        status = await store.transition(instance.id, InstanceState.RUNNING, output="")
        assert status.state is InstanceState.RUNNING

        with pytest.raises(InvalidTransitionError):
            await store.transition(instance.id, InstanceState.RUNNING)

    def test_lock_is_per_instance(self, store):
        assert store.lock("a") is store.lock("a")
        assert store.lock("a") is not store.lock("b")


class TestResultRecord:
    def test_missing(self, store, definition, config):
        instance = store.create(definition, {}, config)
        assert store.read_result(instance.id) is None

    def test_invalid_json_ignored(self, host, store, definition, config):
        instance = store.create(definition, {}, config)
        host.write_file(store.result_path(instance.id), "[1, 2")
        assert store.read_result(instance.id) is None

    def test_non_object_ignored(self, host, store, definition, config):
        instance = store.create(definition, {}, config)
        host.write_file(store.result_path(instance.id), "[1, 2]")
        assert store.read_result(instance.id) is None


class TestDelete:
    @pytest.mark.asyncio
    async def test_removes_directory(self, host, store, definition, config):
        instance = store.create(definition, {}, config)

        await store.delete(instance.id)

        assert ["rm", "-rf", f"{ROOT}/{instance.id}"] in host.commands
        assert not host.exists(f"{ROOT}/{instance.id}")
        with pytest.raises(InstanceNotFoundError):
            store.get(instance.id)

    @pytest.mark.asyncio
    async def test_failed_removal(self, host, store, definition, config):
        instance = store.create(definition, {}, config)
        host.on("rm", lambda argv: (1, "rm: cannot remove: Device or resource busy\n"))
        with pytest.raises(StorageError):
            await store.delete(instance.id)

    @pytest.mark.asyncio
    async def test_spawn_failure(self, host, store, definition, config):
        instance = store.create(definition, {}, config)
        host.fail_spawn("rm")
        with pytest.raises(StorageError):
            await store.delete(instance.id)
