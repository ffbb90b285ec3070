"""Read-only loading of the operator's catalog configuration.

``config.json`` is written by whatever front end the operator uses; playdeck
only reads it.  A missing or malformed file yields the defaults, and a
partial file is merged onto them.
"""

from __future__ import annotations

from pydantic import ValidationError

from playdeck.catalog.models import CatalogConfig
from playdeck.core.logging import get_logger
from playdeck.core.protocols import HostCapabilities, PathLike
from playdeck.core.settings import get_settings

logger = get_logger(__name__)


def load_catalog_config(host: HostCapabilities, path: PathLike | None = None) -> CatalogConfig:
    """Load ``config.json`` (defaults to ``<data_dir>/config.json``)."""
    config_path = str(path or get_settings().config_path)
    try:
        text = host.read_file(config_path)
    except (OSError, UnicodeDecodeError):
        logger.debug("catalog_config_missing", path=config_path)
        return CatalogConfig()

    try:
        return CatalogConfig.model_validate_json(text)
    except ValidationError as exc:
        logger.warning("catalog_config_invalid", path=config_path, error=str(exc))
        return CatalogConfig()


__all__ = ["load_catalog_config"]
