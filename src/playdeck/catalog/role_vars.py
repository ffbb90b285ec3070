"""Role variable discovery from ``defaults/main.yml``.

Role-kind demos usually declare only a few parameters explicitly; the rest
of their knobs live in the role's defaults file.  This module reads that
file line by line and reports every top-level variable with its default and
optional UI metadata::

    count: 3
    count_label: Number of nodes
    motd: |
      Welcome to
      the demo
    motd_description: Shown at login

yields ``count`` (default 3, label "Number of nodes") and ``motd``
(multi-line default, description "Shown at login").  ``*_label`` and
``*_description`` keys fold into a base key seen earlier in the file; with no
such base key they are ordinary variables.

Discovery never raises: an unreadable, empty or odd file simply yields fewer
variables.
"""

from __future__ import annotations

import re
import textwrap
from pathlib import PurePosixPath
from typing import Any

import yaml

from playdeck.catalog.coercion import coerce_scalar, coerce_value
from playdeck.catalog.models import DiscoveredVariable
from playdeck.core.logging import get_logger
from playdeck.core.protocols import HostCapabilities, PathLike

logger = get_logger(__name__)

LABEL_SUFFIX = "_label"
DESCRIPTION_SUFFIX = "_description"
DEFAULTS_FILES = ("defaults/main.yml", "defaults/main.yaml")

_KEY_LINE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*:(?:\s+(.*)|\s*)$")
_BLOCK_SCALAR = re.compile(r"^[|>][+-]?[0-9]?$")
_SKIPPED = frozenset({"---", "..."})


def discover_role_variables(text: str) -> list[DiscoveredVariable]:
    """Extract top-level variables from defaults-file text, in file order."""
    variables: dict[str, DiscoveredVariable] = {}
    lines = text.splitlines()
    index = 0
    while index < len(lines):
        line = lines[index]
        stripped = line.strip()
        index += 1
        if not stripped or stripped.startswith("#") or stripped in _SKIPPED:
            continue
        if _indent(line) > 0:
            continue

        match = _KEY_LINE.match(line.rstrip())
        if match is None:
            continue
        key = match.group(1)
        raw = _strip_comment(match.group(2) or "")

        if _BLOCK_SCALAR.match(raw):
            block, index = _collect_block(lines, index, allow_sequence=False)
            value: Any = _join_block(block)
        elif not raw:
            block, index = _collect_block(lines, index, allow_sequence=True)
            value = _load_nested(block) if block else None
        elif raw[0] in "[{":
            value = _load_nested([raw])
        else:
            value = coerce_scalar(raw)

        _record(variables, key, value)

    return list(variables.values())


def read_role_variables(host: HostCapabilities, role_dir: PathLike) -> list[DiscoveredVariable]:
    """Read and discover a role's defaults; any read failure yields ``[]``."""
    for relative in DEFAULTS_FILES:
        path = PurePosixPath(str(role_dir)) / relative
        try:
            text = host.read_file(str(path))
        except (OSError, UnicodeDecodeError):
            continue
        if not text.strip():
            return []
        return discover_role_variables(text)
    logger.debug("role_defaults_missing", role_dir=str(role_dir))
    return []


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _strip_comment(raw: str) -> str:
    """Drop a trailing ``# comment`` that is outside quotes."""
    quote: str | None = None
    for position, char in enumerate(raw):
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "#" and (position == 0 or raw[position - 1].isspace()):
            return raw[:position].rstrip()
    return raw.strip()


def _collect_block(lines: list[str], index: int, *, allow_sequence: bool) -> tuple[list[str], int]:
    """Collect continuation lines indented deeper than the key.

    Stops at the first non-blank line at column 0, leaving *index* on it so
    the caller processes that line normally.  With *allow_sequence*, column-0
    ``- item`` lines also continue the block.
    """
    block: list[str] = []
    while index < len(lines):
        line = lines[index]
        if line.strip() and _indent(line) == 0:
            if not (allow_sequence and line.startswith("- ")):
                break
        block.append(line)
        index += 1
    while block and not block[-1].strip():
        block.pop()
    return block, index


def _join_block(block: list[str]) -> str:
    return textwrap.dedent("\n".join(block))


def _load_nested(block: list[str]) -> Any:
    text = textwrap.dedent("\n".join(block))
    try:
        return coerce_value(yaml.load(text, Loader=yaml.BaseLoader))  # noqa: S506
    except yaml.YAMLError:
        return text


def _record(variables: dict[str, DiscoveredVariable], key: str, value: Any) -> None:
    for suffix, attribute in ((LABEL_SUFFIX, "label"), (DESCRIPTION_SUFFIX, "description")):
        if key.endswith(suffix):
            base = key[: -len(suffix)]
            if base in variables:
                setattr(variables[base], attribute, None if value is None else str(value))
                return

    existing = variables.get(key)
    if existing is not None:
        existing.default_value = value
    else:
        variables[key] = DiscoveredVariable(name=key, default_value=value)


__all__ = [
    "LABEL_SUFFIX",
    "DESCRIPTION_SUFFIX",
    "discover_role_variables",
    "read_role_variables",
]
