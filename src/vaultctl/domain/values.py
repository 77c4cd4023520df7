"""Frontmatter value helpers — shapes, emptiness, coercion.

Frontmatter values form a closed variant: ``str | int | float | bool |
list | dict | None``.  Shape checks are exhaustive matches over that
variant so every audit rule agrees on what "a list" or "empty" means.
"""

from __future__ import annotations

import math
import re
from typing import Any, Literal

ValueShape = Literal["empty", "string", "number", "boolean", "array", "object"]
ExpectedShape = Literal["string", "number", "boolean", "array", "unknown"]

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_DECIMAL_PATTERN = re.compile(r"^[+-]?\d+\.\d+$")


# ---------------------------------------------------------------------------
# Emptiness
# ---------------------------------------------------------------------------


def is_effectively_empty(value: Any) -> bool:
    """True for None, blank strings, and empty lists or mappings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def is_empty_required_value(value: Any) -> bool:
    """True when a required field is present but carries nothing.

    An empty mapping is not considered empty here: it is a value of the
    wrong shape, which the shape checks report instead.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, list):
        return len(value) == 0
    return False


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------


def value_shape(value: Any) -> ValueShape:
    """Classify a frontmatter value into one of the closed variant shapes."""
    match value:
        case None:
            return "empty"
        case bool():
            return "boolean"
        case int() | float():
            return "number"
        case str():
            return "empty" if value.strip() == "" else "string"
        case list():
            return "empty" if not value else "array"
        case dict():
            return "empty" if not value else "object"
        case _:
            return "string"


def expected_shape(prompt: str | None) -> ExpectedShape:
    """Map a field's declared prompt to the value shape it must hold."""
    match prompt:
        case None:
            return "unknown"
        case "list":
            return "array"
        case "boolean":
            return "boolean"
        case "number":
            return "number"
        case _:
            return "string"


def is_shape_compatible(value: Any, prompt: str | None) -> bool:
    """An empty value is compatible with every declared shape."""
    actual = value_shape(value)
    expected = expected_shape(prompt)
    if actual == "empty" or expected == "unknown":
        return True
    return actual == expected


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def coerce_number_from_string(value: str) -> int | float | None:
    """Parse ``"42"`` or ``"-3.5"``; anything else returns None."""
    text = value.strip()
    if _INTEGER_PATTERN.match(text):
        return int(text)
    if _DECIMAL_PATTERN.match(text):
        number = float(text)
        return number if math.isfinite(number) else None
    return None


def coerce_boolean_from_string(value: str) -> bool | None:
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def values_equal(a: Any, b: Any) -> bool:
    """Deep equality that keeps ``1`` and ``True`` apart."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b, strict=True))
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(values_equal(a[k], b[k]) for k in a)
    return bool(a == b)


def is_discriminator_key(key: str) -> bool:
    """``type`` and ``<parent>-type`` keys select the document's type path."""
    return key == "type" or key.endswith("-type")
