"""Process-level settings for playdeck.

Manifesto:
    Where catalogs are mirrored, where instance records live, which
    container engine runs installs, and how long to wait for a freshly
    installed manifest are deployment decisions, not operator choices.
    They are read once from ``PLAYDECK_*`` environment variables (or a
    ``.env`` file), validated by pydantic, and cached.

    The operator-facing :class:`~playdeck.catalog.models.CatalogConfig`
    (catalog source, namespace, sandbox image) is separate and lives in
    ``config.json`` under the data directory.

Examples:
    >>> from playdeck.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.instances_dir
    PosixPath('/var/lib/playdeck/instances')

Tags:
    settings, configuration, pydantic, environment, playdeck
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlaydeckSettings(BaseSettings):
    """Deployment settings.

    Fields
    ──────
    data_dir                 : Root for the catalog mirror, instances and config
    container_engine         : Binary used to run installs in the sandbox image
    local_collection_roots   : Ordered roots searched in local mode (empty = built-in list)
    manifest_retries         : Extra manifest reads after an install (beyond the first)
    manifest_retry_delay     : Fixed delay between manifest reads (seconds)
    output_flush_interval    : How often partial run output is persisted (seconds)
    poll_interval            : Status polling interval for observers (seconds)
    catalog_filename         : Catalog file inside a collection
    log_level / json_logs    : Structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="PLAYDECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default=Path("/var/lib/playdeck"),
        description="Persistent state directory",
    )

    # ── Acquisition ──────────────────────────────────────────────
    container_engine: str = "podman"
    local_collection_roots: list[Path] = Field(default_factory=list)
    manifest_retries: int = Field(default=3, ge=0)
    manifest_retry_delay: float = Field(default=1.0, ge=0)
    catalog_filename: str = "demos.yaml"

    # ── Execution ────────────────────────────────────────────────
    output_flush_interval: float = Field(default=2.0, ge=0)
    poll_interval: float = Field(default=5.0, gt=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @property
    def catalog_dir(self) -> Path:
        return self.data_dir / "catalog"

    @property
    def collections_dir(self) -> Path:
        return self.catalog_dir / "ansible_collections"

    @property
    def search_roots(self) -> list[Path]:
        """Candidate collection roots for local mode, first match wins."""
        if self.local_collection_roots:
            return list(self.local_collection_roots)
        return [
            self.collections_dir,
            Path.home() / ".ansible" / "collections" / "ansible_collections",
            Path("/usr/share/ansible/collections/ansible_collections"),
        ]

    @property
    def instances_dir(self) -> Path:
        return self.data_dir / "instances"

    @property
    def launchers_dir(self) -> Path:
        return self.data_dir / "launchers"

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"


@lru_cache(maxsize=1)
def get_settings() -> PlaydeckSettings:
    """Load and cache the process settings."""
    return PlaydeckSettings()


__all__ = ["PlaydeckSettings", "get_settings"]
