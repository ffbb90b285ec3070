"""Catalog service: read, parse and enrich the synced catalog.

Ties the leaf components together for callers that just want the list of
launchable demos::

    demos.yaml ──► parse_catalog ──► role defaults ──► merge_parameters
                                     (role kind only)

and resolves where a definition actually runs from:

    playbook  → <collection>/playbooks/<path>     (absolute paths kept)
    role      → <namespace>.<collection>.<path>   (FQCN paths kept)
"""

from __future__ import annotations

from pathlib import PurePosixPath

from playdeck.catalog.merge import enrich_definition
from playdeck.catalog.models import CatalogConfig, DemoDefinition, DemoKind
from playdeck.catalog.parser import parse_catalog
from playdeck.catalog.role_vars import read_role_variables
from playdeck.catalog.sync import SyncResult, load_sync_result
from playdeck.core.errors import ParseError
from playdeck.core.logging import get_logger
from playdeck.core.protocols import HostCapabilities
from playdeck.core.settings import PlaydeckSettings, get_settings

logger = get_logger(__name__)

_CATALOG_FALLBACKS = ("demos.yml",)


class CatalogService:
    """Loads demo definitions from the local catalog mirror.

    The last recorded sync (``catalog/sync.json``) decides where the mirror
    is and what its namespace/name are, as long as it was recorded for the
    configured source.  Otherwise the configured values are used.
    """

    def __init__(
        self,
        host: HostCapabilities,
        settings: PlaydeckSettings | None = None,
        *,
        synced: SyncResult | None = None,
    ) -> None:
        self._host = host
        self._settings = settings or get_settings()
        self._synced = synced
        self._sync_loaded = synced is not None

    def synced(self, config: CatalogConfig) -> SyncResult | None:
        """The recorded sync for *config*'s source, if there is one."""
        if not self._sync_loaded:
            self._synced = load_sync_result(self._host, self._settings)
            self._sync_loaded = True
        if self._synced is not None and self._synced.matches(config):
            return self._synced
        return None

    def identity(self, config: CatalogConfig) -> tuple[str, str]:
        """``(namespace, collection_name)`` of the synced catalog."""
        synced = self.synced(config)
        if synced is not None:
            return synced.namespace, synced.collection_name
        return config.namespace, config.collection_name

    def collection_path(self, config: CatalogConfig, base: str | None = None) -> str:
        """Directory of the synced collection (or *base* from a sync result)."""
        if base:
            return base
        synced = self.synced(config)
        if synced is not None:
            return synced.path
        namespace, name = self.identity(config)
        return str(PurePosixPath(str(self._settings.collections_dir)) / namespace / name)

    def load_definitions(
        self, config: CatalogConfig, *, collection_path: str | None = None
    ) -> list[DemoDefinition]:
        """Read the catalog and return merged definitions.

        Raises:
            ParseError: If the catalog file is unreadable or not parseable.
        """
        root = PurePosixPath(self.collection_path(config, collection_path))
        text = self._read_catalog(root)
        definitions = parse_catalog(text)

        enriched: list[DemoDefinition] = []
        for definition in definitions:
            if definition.kind is DemoKind.ROLE:
                role_dir = root / "roles" / _role_dir_name(definition.path)
                discovered = read_role_variables(self._host, str(role_dir))
                definition = enrich_definition(definition, discovered)
            enriched.append(definition)

        logger.info("catalog_loaded", path=str(root), definitions=len(enriched))
        return enriched

    def resolve_run_target(
        self,
        config: CatalogConfig,
        definition: DemoDefinition,
        *,
        collection_path: str | None = None,
    ) -> str:
        """Playbook file path or fully-qualified role name for *definition*."""
        if definition.kind is DemoKind.ROLE:
            if definition.path.count(".") >= 2:
                return definition.path
            namespace, name = self.identity(config)
            return f"{namespace}.{name}.{definition.path}"

        if definition.path.startswith("/"):
            return definition.path
        root = PurePosixPath(self.collection_path(config, collection_path))
        return str(root / "playbooks" / definition.path)

    def _read_catalog(self, root: PurePosixPath) -> str:
        names = (self._settings.catalog_filename, *_CATALOG_FALLBACKS)
        last_error: Exception | None = None
        for name in names:
            try:
                return self._host.read_file(str(root / name))
            except (OSError, UnicodeDecodeError) as exc:
                last_error = exc
        raise ParseError(
            f"Failed to read catalog in {root}: {last_error}", cause=last_error
        ).with_context(path=str(root))


def _role_dir_name(path: str) -> str:
    """Role directory for a role reference (``ns.coll.role`` → ``role``)."""
    return path.rsplit(".", 1)[-1] if path.count(".") >= 2 else path


__all__ = ["CatalogService"]
