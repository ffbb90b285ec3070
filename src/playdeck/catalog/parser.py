"""Catalog parser: ``demos.yaml`` text → validated demo definitions.

The catalog is a YAML document holding a list of entries, either at the top
level or under a ``demos`` key::

    - id: web
      name: Web server
      type: playbook
      path: web.yml
      parameters:
        - name: port
          type: number
          default: 8080
        - name: flavor
          type: select
          options: [small, large]

Parsing happens in two passes.  The text is first loaded with PyYAML's
``BaseLoader`` so every scalar arrives as a string and inline/block lists
become the same Python list.  Each entry is then checked against the
pydantic models in :mod:`playdeck.catalog.models`, with defaults typed by
:func:`~playdeck.catalog.coercion.coerce_scalar`.

Malformed entries are dropped, not raised: an entry needs ``id``, ``name``,
a kind and a path to be kept.

If the document as a whole is not valid YAML, each top-level list item is
loaded on its own, so one bad entry costs only that entry.  A plain value
containing ``": "`` (``description: Deploys: nginx``) is retried as a quoted
string before the entry is given up.  Only text with no loadable entry at
all (or an unexpected root) raises :class:`~playdeck.core.errors.ParseError`.
"""

from __future__ import annotations

import re
from typing import Any

import yaml
from pydantic import ValidationError

from playdeck.catalog.coercion import as_text, coerce_scalar, coerce_value
from playdeck.catalog.models import DemoDefinition, DemoKind, Parameter, ParameterType
from playdeck.core.errors import ParseError
from playdeck.core.logging import get_logger

logger = get_logger(__name__)

# Keys that carry the entry's path; the latter two also imply the kind.
_PATH_KEYS = ("path", "playbook", "role")
_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})

_ITEM_START = re.compile(r"^(?P<indent>[ ]*)-(?:[ ]|$)")
_PLAIN_PAIR = re.compile(
    r"^(?P<lead>[ ]*(?:-[ ]+)?[A-Za-z_][\w-]*:[ ]+)(?P<value>[^\s'\"\[{|>&*!#%@`].*)$"
)


def parse_catalog(text: str) -> list[DemoDefinition]:
    """Parse catalog text into definitions, in document order.

    Raises:
        ParseError: If the text is not YAML or its root is neither a list
            nor a mapping with a ``demos`` list.
    """
    if not text.strip():
        return []

    try:
        document = yaml.load(text, Loader=yaml.BaseLoader)  # noqa: S506 - BaseLoader builds no objects
    except yaml.YAMLError as exc:
        document = _load_entries_separately(text, exc)

    definitions: list[DemoDefinition] = []
    seen: set[str] = set()
    for index, raw in enumerate(_entries(document)):
        definition = build_definition(raw)
        if definition is None:
            logger.debug("catalog_entry_dropped", index=index)
            continue
        if definition.id in seen:
            logger.warning("catalog_duplicate_id", demo_id=definition.id, index=index)
            continue
        seen.add(definition.id)
        definitions.append(definition)
    return definitions


def _entries(document: Any) -> list[Any]:
    if document is None:
        return []
    if isinstance(document, list):
        return document
    if isinstance(document, dict) and "demos" in document:
        demos = document["demos"]
        if demos is None or demos == "":
            return []
        if isinstance(demos, list):
            return demos
    raise ParseError("Catalog must be a list of demos or a mapping with a 'demos' list")


def _load_entries_separately(text: str, error: yaml.YAMLError) -> list[Any]:
    chunks = _split_items(text)
    loaded: list[Any] = []
    for chunk in chunks:
        entry = _load_item(chunk)
        if entry is None:
            logger.warning("catalog_entry_unparseable", first_line=chunk[0].strip())
            continue
        loaded.append(entry)

    if not loaded:
        raise ParseError(f"Catalog is not valid YAML: {error}", cause=error) from error
    logger.warning(
        "catalog_partially_parsed",
        entries=len(loaded),
        skipped=len(chunks) - len(loaded),
        error=str(error).splitlines()[0],
    )
    return loaded


def _split_items(text: str) -> list[list[str]]:
    """Cut the text into its outermost list items, dedented to column 0."""
    chunks: list[list[str]] = []
    indent: int | None = None
    for line in text.splitlines():
        match = _ITEM_START.match(line)
        if indent is None:
            if match:
                indent = len(match.group("indent"))
                chunks.append([line[indent:]])
            continue
        stripped = line.lstrip(" ")
        depth = len(line) - len(stripped)
        if stripped and not stripped.startswith("#") and depth < indent:
            break
        if match and depth == indent:
            chunks.append([line[indent:]])
        else:
            chunks[-1].append(line[indent:] if depth >= indent else stripped)
    return chunks


def _load_item(lines: list[str]) -> Any:
    for candidate in (lines, [_quote_plain_value(line) for line in lines]):
        try:
            document = yaml.load("\n".join(candidate), Loader=yaml.BaseLoader)  # noqa: S506
        except yaml.YAMLError:
            continue
        if isinstance(document, list) and len(document) == 1:
            return document[0]
        return None
    return None


def _quote_plain_value(line: str) -> str:
    match = _PLAIN_PAIR.match(line)
    if match is None:
        return line
    value = match.group("value").rstrip()
    if ": " not in value and not value.endswith(":"):
        return line
    return match.group("lead") + "'" + value.replace("'", "''") + "'"


def build_definition(raw: Any) -> DemoDefinition | None:
    """Build one definition from a loaded entry, or ``None`` if it is unusable."""
    if not isinstance(raw, dict):
        return None

    path = None
    path_key = None
    for key in _PATH_KEYS:
        path = as_text(raw.get(key))
        if path:
            path_key = key
            break

    kind = _kind(as_text(raw.get("type")), path_key)
    if kind is None:
        return None

    try:
        return DemoDefinition(
            id=as_text(raw.get("id")),
            name=as_text(raw.get("name")),
            description=as_text(raw.get("description")),
            kind=kind,
            path=path,
            parameters=_parameters(raw.get("parameters")),
        )
    except ValidationError:
        return None


def _kind(type_text: str | None, path_key: str | None) -> DemoKind | None:
    if type_text:
        try:
            return DemoKind(type_text.lower())
        except ValueError:
            return None
    if path_key == "playbook":
        return DemoKind.PLAYBOOK
    if path_key == "role":
        return DemoKind.ROLE
    return None


def _parameters(raw: Any) -> list[Parameter]:
    if not isinstance(raw, list):
        return []
    parameters: list[Parameter] = []
    names: set[str] = set()
    for item in raw:
        parameter = build_parameter(item)
        if parameter is None or parameter.name in names:
            continue
        names.add(parameter.name)
        parameters.append(parameter)
    return parameters


def build_parameter(raw: Any) -> Parameter | None:
    """Build one parameter from a loaded mapping, or ``None`` if it is unusable."""
    if not isinstance(raw, dict):
        return None

    name = as_text(raw.get("name"))
    try:
        param_type = ParameterType((as_text(raw.get("type")) or "text").lower())
    except ValueError:
        logger.debug("catalog_parameter_dropped", name=name, reason="unknown type")
        return None

    options = parse_options(raw.get("options")) if param_type is ParameterType.SELECT else None

    try:
        return Parameter(
            name=name,
            label=as_text(raw.get("label")),
            description=as_text(raw.get("description")),
            type=param_type,
            required=parse_flag(raw.get("required")),
            options=options,
            default=parse_default(raw.get("default")),
        )
    except ValidationError as exc:
        logger.debug("catalog_parameter_dropped", name=name, reason=str(exc))
        return None


def parse_options(raw: Any) -> list[str] | None:
    """Normalize an ``options`` value to an ordered list of strings.

    Inline (``[a, b]``) and block (``- a``) lists load identically; a bare
    comma-separated scalar is split the same way.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        items: list[Any] = raw.strip().strip("[]").split(",") if raw.strip() else []
    elif isinstance(raw, list):
        items = raw
    else:
        return None
    options = [as_text(item) for item in items]
    return [option for option in options if option is not None]


def parse_flag(raw: Any) -> bool:
    text = as_text(raw)
    return text is not None and text.lower() in _TRUE_WORDS


def parse_default(raw: Any) -> Any:
    if isinstance(raw, (list, dict)):
        return coerce_value(raw)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return coerce_scalar(raw)


__all__ = [
    "parse_catalog",
    "build_definition",
    "build_parameter",
    "parse_options",
    "parse_default",
]
