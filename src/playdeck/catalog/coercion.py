"""Scalar coercion shared by the catalog parser and role variable discovery.

Catalog text is loaded with every scalar as a string; typing happens here so
that equivalent literal encodings (``42``, ``"42"``, ``'42'``) always produce
the same value.

Rules, applied after surrounding quotes and whitespace are stripped:
    ``true`` / ``false``      → bool
    fully numeric literal     → int when integral, else float
    anything else             → the string itself
"""

from __future__ import annotations

import re
from typing import Any

_NUMERIC = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_INTEGER = re.compile(r"^[+-]?\d+$")


def strip_quotes(text: str) -> str:
    """Trim whitespace and one pair of matching surrounding quotes."""
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        text = text[1:-1]
    return text


def coerce_scalar(value: Any) -> Any:
    """Coerce a captured scalar to bool, number or string.

    >>> coerce_scalar("true"), coerce_scalar("42"), coerce_scalar("'abc'")
    (True, 42, 'abc')
    """
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    if not isinstance(value, str):
        return value

    text = strip_quotes(value)
    if text == "true":
        return True
    if text == "false":
        return False
    if _INTEGER.match(text):
        return int(text)
    if _NUMERIC.match(text):
        return float(text)
    return text


def coerce_value(value: Any) -> Any:
    """Apply :func:`coerce_scalar` through nested lists and mappings."""
    if isinstance(value, list):
        return [coerce_value(item) for item in value]
    if isinstance(value, dict):
        return {key: coerce_value(item) for key, item in value.items()}
    return coerce_scalar(value)


def as_text(value: Any) -> str | None:
    """Normalize a captured scalar to a stripped string (``None`` stays ``None``)."""
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return None
    text = strip_quotes(str(value))
    return text or None


__all__ = ["strip_quotes", "coerce_scalar", "coerce_value", "as_text"]
