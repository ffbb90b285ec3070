"""Catalog sync controller — keep a local mirror of the demo collection.

The catalog is an Ansible collection.  Depending on the operator's
:class:`~playdeck.catalog.models.CatalogConfig` it is found or acquired in
one of three ways:

Architecture:

    .. code-block:: text

        CatalogConfig
             │
             ├── use_local ──────────► search roots for <ns>/<name>/MANIFEST.json
             │                         (first root whose manifest matches wins)
             │
             └── remote (needs source + sandbox image)
                   │
                   ├── git URL ──────► git -C <mirror> pull --ff-only
                   │                     │ missing mirror?
                   │                     └─► mkdir -p parent, rm -rf stale dir,
                   │                         git clone <url> <mirror>
                   │
                   └── ns.name ──────► <engine> run <image> ansible-galaxy
                                         collection install (catalog dir mounted)
                                         │
                                         └─► namespace/name from MANIFEST.json
                                             (retried) → path structure
                                             → caller config (degraded)

Only two failures are recovered locally: a pull against a missing mirror
falls back to a clone, and a manifest read right after an install is
retried.  Everything else raises ``ConfigurationError`` or
``AcquisitionError``.

Sync calls are sequential and are not meant to run concurrently against the
same mirror.

Example:
    >>> controller = CatalogSyncController(LocalHost())
    >>> result = await controller.sync(config)
    >>> result.path
    '/var/lib/playdeck/catalog/ansible_collections/acme/demos'
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

import yaml

from playdeck.catalog.models import CatalogConfig
from playdeck.core.errors import (
    AcquisitionError,
    AcquisitionFailure,
    ConfigurationError,
    ParseError,
    StorageError,
)
from playdeck.core.logging import get_logger
from playdeck.core.protocols import CommandResult, HostCapabilities, run_command
from playdeck.core.retry import RetryContext, RetryPolicy, Sleep
from playdeck.core.settings import PlaydeckSettings, get_settings

logger = get_logger(__name__)

SUCCESS_MARKER = "was installed successfully"
MANIFEST_FILES = ("MANIFEST.json", "galaxy.yml", "galaxy.yaml")
SYNC_STATE_FILE = "sync.json"

_VCS_PREFIXES = ("http://", "https://", "ssh://", "git://", "file://", "git+")
_SCP_LIKE = re.compile(r"^[\w.-]+@[\w.-]+:")
_REGISTRY_ID = re.compile(r"^([A-Za-z0-9_]+)\.([A-Za-z0-9_]+)(?::\S+)?$")
_INSTALLED_LINE = re.compile(
    r"([A-Za-z0-9_]+)\.([A-Za-z0-9_]+):\S*\s+" + re.escape(SUCCESS_MARKER)
)

_MISSING_TARGET_SIGNALS = ("cannot change to", "no such file or directory", "not a git repository")
_AUTH_SIGNALS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "permission denied",
    "terminal prompts disabled",
    "unauthorized",
)
_NOT_FOUND_SIGNALS = ("repository not found", "does not exist", "not found", "failed to find")

# Git must fail instead of prompting for credentials.
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


class SyncMode(str, Enum):
    """How the mirror was obtained."""

    LOCAL = "local"
    VCS = "vcs"
    REGISTRY = "registry"


class SourceKind(str, Enum):
    VCS = "vcs"
    REGISTRY = "registry"


@dataclass
class SyncResult:
    """Where the catalog lives after a sync, and what it really is."""

    mode: SyncMode
    path: str
    namespace: str
    collection_name: str
    source: str | None = None
    degraded: bool = False

    def matches(self, config: CatalogConfig) -> bool:
        """Whether this result was produced for *config*'s catalog source."""
        if config.use_local:
            return self.mode is SyncMode.LOCAL and (self.namespace, self.collection_name) == (
                config.namespace,
                config.collection_name,
            )
        return self.mode is not SyncMode.LOCAL and self.source == config.source.strip()

    def to_json(self) -> str:
        return json.dumps(
            {
                "mode": self.mode.value,
                "path": self.path,
                "namespace": self.namespace,
                "collectionName": self.collection_name,
                "source": self.source,
                "degraded": self.degraded,
            },
            indent=2,
        )

    @classmethod
    def from_json(cls, text: str) -> SyncResult:
        """Raises ``ValueError``/``KeyError``/``TypeError`` on a malformed record."""
        data = json.loads(text)
        return cls(
            mode=SyncMode(data["mode"]),
            path=str(data["path"]),
            namespace=str(data["namespace"]),
            collection_name=str(data["collectionName"]),
            source=data.get("source"),
            degraded=bool(data.get("degraded", False)),
        )


def sync_state_path(settings: PlaydeckSettings) -> str:
    return str(PurePosixPath(str(settings.catalog_dir)) / SYNC_STATE_FILE)


def save_sync_result(
    host: HostCapabilities, settings: PlaydeckSettings, result: SyncResult
) -> None:
    """Record *result* so later commands read the catalog where it really is.

    Raises:
        StorageError: If the record could not be written.
    """
    path = sync_state_path(settings)
    try:
        host.write_file(path, result.to_json())
    except OSError as exc:
        raise StorageError(f"Failed to record catalog sync: {exc}", cause=exc).with_context(
            path=path
        ) from exc


def load_sync_result(host: HostCapabilities, settings: PlaydeckSettings) -> SyncResult | None:
    """The last recorded sync, or None if there is no usable record."""
    path = sync_state_path(settings)
    try:
        text = host.read_file(path)
    except (OSError, UnicodeDecodeError):
        return None
    try:
        return SyncResult.from_json(text)
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.warning("sync_record_invalid", path=path, error=str(exc))
        return None


def classify_source(source: str) -> SourceKind:
    """Tell a version-control URL from a ``namespace.name`` registry id.

    Raises:
        ConfigurationError: If the source is neither.
    """
    source = source.strip()
    if source.startswith(_VCS_PREFIXES) or _SCP_LIKE.match(source) or source.endswith(".git"):
        return SourceKind.VCS
    if _REGISTRY_ID.match(source):
        return SourceKind.REGISTRY
    raise ConfigurationError(
        f"Catalog source {source!r} is neither a repository URL nor a 'namespace.name' id"
    ).with_context(source=source)


def classify_failure(output: str, *, allow_missing_target: bool = True) -> AcquisitionFailure:
    """Map command output to an acquisition failure reason."""
    lowered = output.lower()
    if allow_missing_target and any(signal in lowered for signal in _MISSING_TARGET_SIGNALS):
        return AcquisitionFailure.MISSING_TARGET
    if any(signal in lowered for signal in _AUTH_SIGNALS):
        return AcquisitionFailure.AUTH
    if any(signal in lowered for signal in _NOT_FOUND_SIGNALS):
        return AcquisitionFailure.NOT_FOUND
    return AcquisitionFailure.GENERIC


def installed_identity(output: str, source: str) -> tuple[str, str]:
    """Pick the installed ``(namespace, name)`` out of ansible-galaxy output.

    Dependencies are reported on their own success lines, so the line for
    the requested collection is preferred; otherwise the first reported
    collection, then the source id itself.
    """
    requested = _REGISTRY_ID.match(source.strip())
    reported = [(m.group(1), m.group(2)) for m in _INSTALLED_LINE.finditer(output)]
    if requested is not None:
        wanted = f"{requested.group(1)}.{requested.group(2)}".lower()
        for namespace, name in reported:
            if f"{namespace}.{name}".lower() == wanted:
                return namespace, name
    if reported:
        return reported[0]
    if requested is not None:
        return requested.group(1), requested.group(2)
    return "", ""


def parse_manifest(text: str, filename: str) -> tuple[str, str]:
    """Return ``(namespace, name)`` declared by a manifest descriptor.

    ``MANIFEST.json`` nests them under ``collection_info``; ``galaxy.yml``
    declares them at the top level.

    Raises:
        ParseError: If the text is empty, malformed or lacks either field.
    """
    if not text.strip():
        raise ParseError(f"{filename} is empty")
    try:
        if filename.endswith(".json"):
            document = json.loads(text)
            info = document.get("collection_info", {}) if isinstance(document, dict) else {}
        else:
            info = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ParseError(f"{filename} is not parseable: {exc}", cause=exc) from exc

    if not isinstance(info, dict):
        raise ParseError(f"{filename} does not describe a collection")
    namespace, name = info.get("namespace"), info.get("name")
    if not namespace or not name:
        raise ParseError(f"{filename} does not declare namespace and name")
    return str(namespace), str(name)


def read_manifest(host: HostCapabilities, collection_dir: str) -> tuple[str, str]:
    """Read the first manifest descriptor present in *collection_dir*.

    Raises:
        ParseError: If no descriptor is readable and parseable.
    """
    last_error: ParseError | None = None
    for filename in MANIFEST_FILES:
        path = str(PurePosixPath(collection_dir) / filename)
        try:
            text = host.read_file(path)
        except (OSError, UnicodeDecodeError):
            continue
        try:
            return parse_manifest(text, filename)
        except ParseError as exc:
            last_error = exc
    if last_error is not None:
        raise last_error
    raise ParseError(f"No manifest found in {collection_dir}").with_context(path=collection_dir)


class CatalogSyncController:
    """Ensures a local, current mirror of the catalog collection."""

    def __init__(
        self,
        host: HostCapabilities,
        settings: PlaydeckSettings | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._host = host
        self._settings = settings or get_settings()
        self._sleep = sleep

    @property
    def manifest_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self._settings.manifest_retries + 1,
            delay=self._settings.manifest_retry_delay,
            retry_on=(ParseError,),
        )

    async def sync(self, config: CatalogConfig) -> SyncResult:
        """Find or acquire the catalog described by *config*.

        Raises:
            ConfigurationError: Required configuration is missing.
            AcquisitionError: The mirror could not be found, fetched or installed.
        """
        if config.use_local:
            result = self.find_local(config)
        else:
            result = await self._sync_remote(config)
        logger.info(
            "catalog_synced",
            mode=result.mode.value,
            path=result.path,
            namespace=result.namespace,
            collection=result.collection_name,
            degraded=result.degraded,
        )
        return result

    # ------------------------------------------------------------------
    # Local mode
    # ------------------------------------------------------------------

    def find_local(self, config: CatalogConfig) -> SyncResult:
        """Search the candidate roots for a matching installed collection."""
        namespace, name = _require_identity(config)
        searched: list[str] = []
        for root in self._settings.search_roots:
            candidate = str(PurePosixPath(str(root)) / namespace / name)
            searched.append(candidate)
            try:
                found = read_manifest(self._host, candidate)
            except ParseError:
                continue
            if found == (namespace, name):
                return SyncResult(SyncMode.LOCAL, candidate, namespace, name)
            logger.debug("local_manifest_mismatch", path=candidate, found=".".join(found))

        raise AcquisitionError(
            f"Collection {namespace}.{name} not found in any local collection root",
            reason=AcquisitionFailure.NOT_FOUND,
        ).with_context(searched=searched)

    # ------------------------------------------------------------------
    # Remote mode
    # ------------------------------------------------------------------

    async def _sync_remote(self, config: CatalogConfig) -> SyncResult:
        source = config.source.strip()
        if not source:
            raise ConfigurationError("A catalog source is required unless local mode is enabled")
        if not config.execution_sandbox_image:
            raise ConfigurationError("An execution sandbox image is required for remote catalogs")

        if classify_source(source) is SourceKind.VCS:
            return await self._sync_vcs(config, source)
        return await self._install(config, source)

    async def _sync_vcs(self, config: CatalogConfig, source: str) -> SyncResult:
        namespace, name = _require_identity(config)
        target = PurePosixPath(str(self._settings.collections_dir)) / namespace / name

        try:
            await self._pull(target)
        except AcquisitionError as exc:
            if exc.reason is not AcquisitionFailure.MISSING_TARGET:
                raise
            logger.info("catalog_mirror_missing", path=str(target))
            await self._clone(source, target)

        return SyncResult(SyncMode.VCS, str(target), namespace, name, source=source)

    async def _pull(self, target: PurePosixPath) -> None:
        result = await self._run(["git", "-C", str(target), "pull", "--ff-only"], env=_GIT_ENV)
        if not result.ok:
            raise AcquisitionError(
                f"Failed to pull catalog: {_last_line(result.output)}",
                reason=classify_failure(result.output),
                exit_code=result.exit_code,
                output=result.output,
            ).with_context(path=str(target), command=result.argv)

    async def _clone(self, source: str, target: PurePosixPath) -> None:
        await self._run_checked(["mkdir", "-p", str(target.parent)])
        if self._is_stale_directory(target):
            logger.info("catalog_mirror_stale_removed", path=str(target))
            await self._run_checked(["rm", "-rf", str(target)])

        result = await self._run(["git", "clone", source, str(target)], env=_GIT_ENV)
        if not result.ok:
            raise AcquisitionError(
                f"Failed to clone catalog: {_last_line(result.output)}",
                reason=classify_failure(result.output, allow_missing_target=False),
                exit_code=result.exit_code,
                output=result.output,
            ).with_context(path=str(target), source=source, command=result.argv)

    def _is_stale_directory(self, target: PurePosixPath) -> bool:
        try:
            entries = self._host.list_dir(str(target))
        except OSError:
            return False
        return ".git" not in entries

    async def _install(self, config: CatalogConfig, source: str) -> SyncResult:
        catalog_dir = str(self._settings.catalog_dir)
        await self._run_checked(["mkdir", "-p", catalog_dir])

        argv = [
            self._settings.container_engine,
            "run",
            "--rm",
            "-v",
            f"{catalog_dir}:/catalog:Z",
            config.execution_sandbox_image or "",
            "ansible-galaxy",
            "collection",
            "install",
            source,
            "-p",
            "/catalog",
            "--force",
        ]
        result = await self._run(argv)

        # Warnings can make ansible-galaxy exit non-zero after a good install.
        if SUCCESS_MARKER not in result.output and not result.ok:
            raise AcquisitionError(
                f"Failed to install catalog {source}: {_last_line(result.output)}",
                reason=classify_failure(result.output, allow_missing_target=False),
                exit_code=result.exit_code,
                output=result.output,
            ).with_context(source=source, command=result.argv)
        if not result.ok:
            logger.warning("catalog_install_nonzero_exit", source=source, exit_code=result.exit_code)

        candidate = installed_identity(result.output, source)
        namespace, name, degraded = await self._resolve_identity(candidate, config)
        path = str(PurePosixPath(str(self._settings.collections_dir)) / namespace / name)
        return SyncResult(SyncMode.REGISTRY, path, namespace, name, source=source, degraded=degraded)

    async def _resolve_identity(
        self, candidate: tuple[str, str], config: CatalogConfig
    ) -> tuple[str, str, bool]:
        """Derive the installed namespace/name, never trusting the caller first."""
        collections_dir = PurePosixPath(str(self._settings.collections_dir))
        collection_dir = str(collections_dir / candidate[0] / candidate[1])

        async def _read() -> tuple[str, str]:
            return read_manifest(self._host, collection_dir)

        def _on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.debug("manifest_read_retry", attempt=attempt, delay=delay, error=str(error))

        try:
            namespace, name = await RetryContext(
                self.manifest_policy, on_retry=_on_retry, sleep=self._sleep
            ).run_async(_read)
            return namespace, name, False
        except ParseError as exc:
            logger.warning("manifest_unreadable_after_install", path=collection_dir, error=str(exc))

        from_path = self._identity_from_path(candidate)
        if from_path is not None:
            logger.warning("catalog_identity_from_path", namespace=from_path[0], collection=from_path[1])
            return from_path[0], from_path[1], False

        if config.namespace and config.collection_name:
            fallback = (config.namespace, config.collection_name)
        else:
            fallback = candidate
        logger.warning(
            "catalog_identity_degraded",
            namespace=fallback[0],
            collection=fallback[1],
        )
        return fallback[0], fallback[1], True

    def _identity_from_path(self, candidate: tuple[str, str]) -> tuple[str, str] | None:
        """Find ``<ns>/<name>`` under the collections dir, ignoring case."""
        collections_dir = PurePosixPath(str(self._settings.collections_dir))
        namespace = _find_entry(self._host, str(collections_dir), candidate[0])
        if namespace is None:
            return None
        name = _find_entry(self._host, str(collections_dir / namespace), candidate[1])
        if name is None:
            return None
        return namespace, name

    # ------------------------------------------------------------------
    # Command helpers
    # ------------------------------------------------------------------

    async def _run(self, argv: Sequence[str], env: dict[str, str] | None = None) -> CommandResult:
        try:
            result = await run_command(self._host, argv, env=env)
        except OSError as exc:
            raise AcquisitionError(
                f"Failed to start {argv[0]}: {exc}", cause=exc
            ).with_context(command=list(argv)) from exc
        logger.debug("command_finished", argv=result.argv, exit_code=result.exit_code)
        return result

    async def _run_checked(self, argv: Sequence[str]) -> CommandResult:
        result = await self._run(argv)
        if not result.ok:
            raise AcquisitionError(
                f"Command failed: {' '.join(argv)}: {_last_line(result.output)}",
                exit_code=result.exit_code,
                output=result.output,
            ).with_context(command=result.argv)
        return result


def _require_identity(config: CatalogConfig) -> tuple[str, str]:
    if not config.namespace or not config.collection_name:
        raise ConfigurationError("Catalog namespace and collection name are required")
    return config.namespace, config.collection_name


def _find_entry(host: HostCapabilities, directory: str, wanted: str) -> str | None:
    if not wanted:
        return None
    try:
        entries = host.list_dir(directory)
    except OSError:
        return None
    for entry in entries:
        if entry.lower() == wanted.lower():
            return entry
    return None


def _last_line(output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else "no output"


__all__ = [
    "SUCCESS_MARKER",
    "SyncMode",
    "SourceKind",
    "SyncResult",
    "SYNC_STATE_FILE",
    "load_sync_result",
    "save_sync_result",
    "sync_state_path",
    "classify_source",
    "classify_failure",
    "installed_identity",
    "parse_manifest",
    "read_manifest",
    "CatalogSyncController",
]
