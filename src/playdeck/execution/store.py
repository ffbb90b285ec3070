"""Instance store — paired spec/status records per run.

Layout under ``settings.instances_dir``::

    instances/
      <demo-id>-<4 chars>/
        spec.json      InstanceSpec, written once at creation
        status.json    InstanceStatus, read-modify-write on every change
        result.json    optional side channel written by the automation engine

Status updates are read-modify-write merges.  Within one process they are
serialized per instance id by an ``asyncio.Lock``; separate processes can
still race on the same record.
"""

from __future__ import annotations

import asyncio
import json
import re
import secrets
import string
from collections.abc import Callable, Mapping
from pathlib import PurePosixPath
from typing import Any

from pydantic import ValidationError

from playdeck.catalog.models import CatalogConfig, DemoDefinition
from playdeck.catalog.service import CatalogService
from playdeck.core.errors import (
    InstanceNotFoundError,
    InstanceReadError,
    StorageError,
)
from playdeck.core.logging import get_logger
from playdeck.core.protocols import HostCapabilities, run_command
from playdeck.core.settings import PlaydeckSettings, get_settings
from playdeck.execution.models import (
    Instance,
    InstanceSpec,
    InstanceState,
    InstanceStatus,
    utcnow_iso,
    validate_transition,
)

logger = get_logger(__name__)

SPEC_FILE = "spec.json"
STATUS_FILE = "status.json"
RESULT_FILE = "result.json"

ID_SUFFIX_LENGTH = 4
MAX_ID_ATTEMPTS = 16

_ID_ALPHABET = string.ascii_lowercase + string.digits
_VALID_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def random_suffix(length: int = ID_SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def id_prefix(demo_id: str) -> str:
    """Filesystem-safe instance id prefix for *demo_id*."""
    slug = _UNSAFE_ID_CHARS.sub("-", demo_id).strip("-._")
    slug = re.sub(r"\.{2,}", ".", slug)
    return slug or "demo"


class InstanceStore:
    """Creates, reads, updates and deletes instance records."""

    def __init__(
        self,
        host: HostCapabilities,
        settings: PlaydeckSettings | None = None,
        *,
        catalog: CatalogService | None = None,
        suffix_factory: Callable[[], str] = random_suffix,
    ) -> None:
        self._host = host
        self._settings = settings or get_settings()
        self._catalog = catalog or CatalogService(host, self._settings)
        self._suffix_factory = suffix_factory
        self._locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def root(self) -> PurePosixPath:
        return PurePosixPath(str(self._settings.instances_dir))

    def instance_dir(self, instance_id: str) -> PurePosixPath:
        if not _VALID_ID.match(instance_id) or ".." in instance_id:
            raise InstanceNotFoundError(f"Invalid instance id: {instance_id!r}").with_context(
                instance_id=instance_id
            )
        return self.root / instance_id

    def result_path(self, instance_id: str) -> str:
        return str(self.instance_dir(instance_id) / RESULT_FILE)

    def lock(self, instance_id: str) -> asyncio.Lock:
        """The lock guarding status read-modify-write for *instance_id*."""
        return self._locks.setdefault(instance_id, asyncio.Lock())

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        definition: DemoDefinition,
        form_values: Mapping[str, Any],
        config: CatalogConfig,
        *,
        collection_path: str | None = None,
    ) -> Instance:
        """Persist a new pending instance of *definition*.

        The spec snapshots the definition's parameter list as it is now, so
        later catalog syncs do not change what this instance runs.

        Raises:
            StorageError: If no free id was found or a record could not be written.
        """
        instance_id = self._new_id(definition.id)
        spec = InstanceSpec(
            id=instance_id,
            demo_id=definition.id,
            demo_name=definition.name,
            demo_kind=definition.kind,
            demo_path=definition.path,
            resolved_run_target=self._catalog.resolve_run_target(
                config, definition, collection_path=collection_path
            ),
            parameters=dict(form_values),
            variable_definitions=[p.model_copy(deep=True) for p in definition.parameters],
        )
        status = InstanceStatus(state=InstanceState.PENDING, started_at=utcnow_iso())

        directory = self.instance_dir(instance_id)
        self._write(directory / SPEC_FILE, spec.to_json(), instance_id)
        self._write(directory / STATUS_FILE, status.to_json(), instance_id)

        logger.info(
            "instance_created",
            instance_id=instance_id,
            demo_id=definition.id,
            run_target=spec.resolved_run_target,
        )
        return Instance(id=instance_id, spec=spec, status=status)

    def _new_id(self, demo_id: str) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = f"{id_prefix(demo_id)}-{self._suffix_factory()}"
            if not self._exists(candidate):
                return candidate
            logger.debug("instance_id_collision", instance_id=candidate)
        raise StorageError(
            f"Could not allocate a unique instance id for {demo_id}"
        ).with_context(demo_id=demo_id)

    def _exists(self, instance_id: str) -> bool:
        try:
            self._host.read_file(str(self.instance_dir(instance_id) / SPEC_FILE))
        except (OSError, UnicodeDecodeError):
            return False
        return True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, instance_id: str) -> Instance:
        """Read both records of an instance.

        Raises:
            InstanceNotFoundError: No spec exists for *instance_id*.
            InstanceReadError: Either record is unreadable or malformed.
        """
        directory = self.instance_dir(instance_id)
        spec_path = str(directory / SPEC_FILE)
        status_path = str(directory / STATUS_FILE)

        try:
            spec_text = self._host.read_file(spec_path)
        except FileNotFoundError as exc:
            raise InstanceNotFoundError(
                f"Instance not found: {instance_id}", cause=exc
            ).with_context(instance_id=instance_id) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise _read_error(instance_id, spec_path, exc) from exc

        try:
            status_text = self._host.read_file(status_path)
        except (OSError, UnicodeDecodeError) as exc:
            raise _read_error(instance_id, status_path, exc) from exc

        try:
            spec = InstanceSpec.model_validate_json(spec_text)
        except ValidationError as exc:
            raise _read_error(instance_id, spec_path, exc) from exc
        try:
            status = InstanceStatus.model_validate_json(status_text)
        except ValidationError as exc:
            raise _read_error(instance_id, status_path, exc) from exc

        return Instance(id=instance_id, spec=spec, status=status)

    def list(self) -> list[Instance]:
        """All readable instances; unreadable ones are skipped."""
        try:
            names = self._host.list_dir(str(self.root))
        except OSError:
            return []

        instances: list[Instance] = []
        for name in names:
            if name.startswith("."):
                continue
            try:
                instances.append(self.get(name))
            except StorageError as exc:
                logger.warning("instance_skipped", instance_id=name, error=exc.message)
        return instances

    def read_status(self, instance_id: str) -> InstanceStatus | None:
        """The persisted status, or None if it is missing or malformed."""
        path = str(self.instance_dir(instance_id) / STATUS_FILE)
        try:
            return InstanceStatus.model_validate_json(self._host.read_file(path))
        except (OSError, UnicodeDecodeError, ValidationError):
            return None

    def read_result(self, instance_id: str) -> dict[str, Any] | None:
        """The engine's side-channel record, if it wrote a usable one."""
        path = self.result_path(instance_id)
        try:
            text = self._host.read_file(path)
        except (OSError, UnicodeDecodeError):
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("result_record_invalid", instance_id=instance_id, error=str(exc))
            return None
        if not isinstance(data, dict):
            logger.warning("result_record_invalid", instance_id=instance_id, error="not an object")
            return None
        return data

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_status(self, instance_id: str, **changes: Any) -> InstanceStatus:
        """Merge *changes* onto the persisted status.

        Only the supplied fields change.  If no status is readable, one is
        synthesized from *changes* on top of a default ``pending`` status.
        """
        async with self.lock(instance_id):
            return self._merge(instance_id, changes)

    async def transition(
        self, instance_id: str, target: InstanceState, **changes: Any
    ) -> InstanceStatus:
        """Move to *target* if the state machine allows it, merging *changes*.

        Raises:
            InvalidTransitionError: *target* is not reachable from the current state.
        """
        async with self.lock(instance_id):
            current = self.read_status(instance_id) or InstanceStatus()
            validate_transition(current.state, target)
            return self._merge(instance_id, {**changes, "state": target}, current=current)

    def _merge(
        self,
        instance_id: str,
        changes: Mapping[str, Any],
        *,
        current: InstanceStatus | None = None,
    ) -> InstanceStatus:
        if current is None:
            current = self.read_status(instance_id)
        if current is None:
            logger.warning("instance_status_synthesized", instance_id=instance_id)
            current = InstanceStatus()
        merged = InstanceStatus.model_validate({**current.model_dump(), **changes})
        path = self.instance_dir(instance_id) / STATUS_FILE
        self._write(path, merged.to_json(), instance_id)
        return merged

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, instance_id: str) -> None:
        """Remove the instance directory with both records.

        Raises:
            StorageError: If removal could not be started or failed.
        """
        directory = str(self.instance_dir(instance_id))
        try:
            result = await run_command(self._host, ["rm", "-rf", directory])
        except OSError as exc:
            raise StorageError(
                f"Failed to delete instance {instance_id}: {exc}", cause=exc
            ).with_context(instance_id=instance_id, path=directory) from exc
        if not result.ok:
            raise StorageError(
                f"Failed to delete instance {instance_id}: {result.output.strip()}"
            ).with_context(instance_id=instance_id, path=directory, command=result.argv)
        self._locks.pop(instance_id, None)
        logger.info("instance_deleted", instance_id=instance_id)

    def _write(self, path: PurePosixPath, content: str, instance_id: str) -> None:
        try:
            self._host.write_file(str(path), content)
        except OSError as exc:
            raise StorageError(
                f"Failed to write {path.name} for {instance_id}: {exc}", cause=exc
            ).with_context(instance_id=instance_id, path=str(path)) from exc


def _read_error(instance_id: str, path: str, exc: Exception) -> InstanceReadError:
    error = InstanceReadError(f"Failed to read instance {instance_id}: {exc}", cause=exc)
    error.with_context(instance_id=instance_id, path=path)
    return error


__all__ = [
    "InstanceStore",
    "SPEC_FILE",
    "STATUS_FILE",
    "RESULT_FILE",
    "id_prefix",
    "random_suffix",
]
