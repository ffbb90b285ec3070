"""Catalog: demo definitions, role variables, and the catalog mirror.

Modules:
    models       Parameter, DemoDefinition, DiscoveredVariable, CatalogConfig
    coercion     Scalar typing shared by the parser and role discovery
    parser       demos.yaml → DemoDefinition list
    role_vars    defaults/main.yml → DiscoveredVariable list
    merge        Explicit parameters + discovered variables
    sync         CatalogSyncController (local, git, ansible-galaxy)
    service      CatalogService (read + parse + enrich, run targets)
    config       load_catalog_config
"""

from playdeck.catalog.config import load_catalog_config
from playdeck.catalog.merge import enrich_definition, merge_parameters
from playdeck.catalog.models import (
    CatalogConfig,
    DemoDefinition,
    DemoKind,
    DiscoveredVariable,
    Parameter,
    ParameterType,
)
from playdeck.catalog.parser import parse_catalog
from playdeck.catalog.role_vars import discover_role_variables, read_role_variables
from playdeck.catalog.service import CatalogService
from playdeck.catalog.sync import CatalogSyncController, SyncMode, SyncResult

__all__ = [
    "CatalogConfig",
    "CatalogService",
    "CatalogSyncController",
    "DemoDefinition",
    "DemoKind",
    "DiscoveredVariable",
    "Parameter",
    "ParameterType",
    "SyncMode",
    "SyncResult",
    "discover_role_variables",
    "enrich_definition",
    "load_catalog_config",
    "merge_parameters",
    "parse_catalog",
    "read_role_variables",
]
