"""Text edits — narrow, verifiable changes to a document's raw text.

Every fix is expressed as a :class:`TextEdit` built from a structural
parse: a character span, the text the span held when the edit was
planned, and its replacement.  :func:`apply_edit` refuses to splice when
the span no longer holds the expected text, so an edit planned against
a stale parse fails loudly instead of corrupting the document.

Values are rendered with a fresh round-trip ruamel.yaml instance so that
quoting follows YAML's rules (``'[[Note]]'``, ``'yes'``) rather than ad
hoc string building.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import StringIO
from typing import Any, Literal

from ruamel.yaml import YAML

from vaultctl.domain.dates import is_iso_date
from vaultctl.domain.structural import (
    BOM,
    DELIMITER,
    KeyOccurrence,
    StructuralFrontmatter,
    detect_eol,
)
from vaultctl.domain.values import is_effectively_empty, values_equal

DuplicateKeep = Literal["first", "last"]


class EditConflictError(Exception):
    """The text at an edit's span is not what the edit expected."""


@dataclass(frozen=True)
class TextEdit:
    """Replace ``raw[start:end]`` (which must equal *expected*)."""

    start: int
    end: int
    expected: str
    replacement: str
    description: str = ""


def apply_edit(raw: str, edit: TextEdit) -> str:
    """Splice *edit* into *raw*; everything outside the span is untouched."""
    if edit.start < 0 or edit.end > len(raw) or edit.start > edit.end:
        raise EditConflictError(f"Edit span {edit.start}:{edit.end} is out of range")
    if raw[edit.start : edit.end] != edit.expected:
        raise EditConflictError("Document changed since it was audited")
    return raw[: edit.start] + edit.replacement + raw[edit.end :]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _new_yaml() -> YAML:
    """Create a fresh round-trip YAML emitter.

    A new instance per call keeps a failed dump from leaving shared
    emitter state broken for the next edit.
    """
    y = YAML()
    y.default_flow_style = False
    y.width = 4096
    y.allow_unicode = True
    return y


def _dump(data: dict[str, Any]) -> str:
    buf = StringIO()
    _new_yaml().dump(data, buf)
    return buf.getvalue()


def render_scalar(value: Any) -> str:
    """YAML text for a scalar value as it would follow ``key: ``."""
    if value is None:
        return ""
    if isinstance(value, str) and is_iso_date(value):
        return value.strip()
    text = _dump({"k": value})
    return text[len("k:") :].strip()


def render_flow_list(values: list[Any]) -> str:
    return "[" + ", ".join(render_scalar(v) for v in values) + "]"


def render_pair(key: str, value: Any, eol: str = "\n") -> str:
    """``key: value`` line(s) ending in *eol*; lists use block style."""
    if isinstance(value, list) and value:
        lines = [f"{key}:"] + [f"  - {render_scalar(item)}" for item in value]
        return eol.join(lines) + eol
    if isinstance(value, list):
        return f"{key}: []{eol}"
    rendered = render_scalar(value)
    return (f"{key}: {rendered}" if rendered else f"{key}:") + eol


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _occurrence(structural: StructuralFrontmatter, key: str, index: int = -1) -> KeyOccurrence:
    found = structural.occurrences(key)
    if not found:
        raise EditConflictError(f"Field '{key}' not found")
    try:
        return found[index]
    except IndexError:
        raise EditConflictError(f"Field '{key}' has no occurrence {index}") from None


def _span(raw: str, start: int, end: int, replacement: str, description: str) -> TextEdit:
    return TextEdit(start, end, raw[start:end], replacement, description)


def _cut_ranges(raw: str, ranges: list[tuple[int, int]], description: str) -> TextEdit:
    """One edit covering *ranges*, with the text between them kept."""
    ordered = sorted(ranges)
    start, end = ordered[0][0], max(r[1] for r in ordered)
    kept: list[str] = []
    cursor = start
    for range_start, range_end in ordered:
        if range_start > cursor:
            kept.append(raw[cursor:range_start])
        cursor = max(cursor, range_end)
    kept.append(raw[cursor:end])
    return _span(raw, start, end, "".join(kept), description)


# ---------------------------------------------------------------------------
# Value edits
# ---------------------------------------------------------------------------


def replace_value(structural: StructuralFrontmatter, key: str, value: Any) -> TextEdit:
    """Replace the effective (last) value of *key*.

    A scalar keeps its line and only its value span changes.  A block
    list or mapping is re-rendered as a whole ``key:`` entry.
    """
    raw = structural.raw
    occ = _occurrence(structural, key)
    description = f"Set {key}"
    if occ.kind == "sequence" and occ.flow and isinstance(value, list):
        return _span(raw, occ.value_start, occ.value_end, render_flow_list(value), description)
    if occ.kind == "scalar" and not isinstance(value, (list, dict)):
        rendered = render_scalar(value)
        if occ.is_empty_node:
            return _span(raw, occ.colon, occ.colon, f" {rendered}" if rendered else "", description)
        return _span(raw, occ.value_start, occ.value_end, rendered, description)
    return _span(raw, occ.line_start, occ.line_end, render_pair(key, value, detect_eol(raw)), description)


def replace_list_item(structural: StructuralFrontmatter, key: str, index: int, value: Any) -> TextEdit:
    raw = structural.raw
    occ = _occurrence(structural, key)
    if index >= len(occ.items):
        raise EditConflictError(f"Field '{key}' has no item {index}")
    item = occ.items[index]
    return _span(raw, item.start, item.end, render_scalar(value), f"Set {key}[{index}]")


def remove_list_items(structural: StructuralFrontmatter, key: str, indexes: list[int]) -> TextEdit:
    """Drop items from a list value, block or flow style."""
    raw = structural.raw
    occ = _occurrence(structural, key)
    drop = set(indexes)
    if not drop or any(i >= len(occ.items) for i in drop):
        raise EditConflictError(f"Field '{key}' items changed since audit")
    description = f"Remove duplicate {key} items"
    if occ.flow:
        kept = [item.value for item in occ.items if item.index not in drop]
        return _span(raw, occ.value_start, occ.value_end, render_flow_list(kept), description)
    ranges = [(item.line_start, item.line_end) for item in occ.items if item.index in drop]
    return _cut_ranges(raw, ranges, description)


# ---------------------------------------------------------------------------
# Key edits
# ---------------------------------------------------------------------------


def insertion_offset(structural: StructuralFrontmatter, key: str, field_order: list[str]) -> int:
    """Where *key* belongs: after the nearest earlier declared key present,
    else before the nearest later one, else at the end of the block."""
    block = structural.primary
    if block is None:
        raise EditConflictError("Document has no frontmatter")
    order = list(field_order)
    if key in order:
        position = order.index(key)
        for earlier in reversed(order[:position]):
            occ = structural.last_occurrence(earlier)
            if occ is not None:
                return occ.line_end
        for later in order[position + 1 :]:
            found = structural.occurrences(later)
            if found:
                return found[0].line_start
    return block.yaml_end


def insert_key(
    structural: StructuralFrontmatter,
    key: str,
    value: Any,
    field_order: list[str] | None = None,
) -> TextEdit:
    """Add ``key: value`` in declared field order."""
    raw = structural.raw
    if structural.occurrences(key):
        raise EditConflictError(f"Field '{key}' already present")
    offset = insertion_offset(structural, key, field_order or [])
    eol = detect_eol(raw)
    prefix = eol if offset > 0 and raw[offset - 1] != "\n" else ""
    return _span(raw, offset, offset, prefix + render_pair(key, value, eol), f"Add {key}")


def rename_key(structural: StructuralFrontmatter, old: str, new: str) -> TextEdit:
    raw = structural.raw
    occ = _occurrence(structural, old)
    return _span(raw, occ.key_start, occ.key_end, new, f"Rename {old} to {new}")


def remove_key(structural: StructuralFrontmatter, key: str, index: int = -1) -> TextEdit:
    """Delete one ``key:`` entry, every line it spans included."""
    raw = structural.raw
    occ = _occurrence(structural, key, index)
    return _span(raw, occ.line_start, occ.line_end, "", f"Remove {key}")


def insert_discriminators(structural: StructuralFrontmatter, fields: dict[str, str]) -> TextEdit:
    """Write missing ``type`` / ``<parent>-type`` keys.

    A document without frontmatter gets a new block at the top, after
    any byte-order mark.  A block whose root is not a mapping cannot take
    new keys.
    """
    raw = structural.raw
    if not structural.is_mapping:
        raise EditConflictError("Frontmatter is not a mapping")
    eol = detect_eol(raw)
    missing = {k: v for k, v in fields.items() if not structural.occurrences(k)}
    if not missing:
        raise EditConflictError("Type keys already present")
    lines = "".join(render_pair(k, v, eol) for k, v in missing.items())
    description = "Add " + ", ".join(f"{k}: {v}" for k, v in missing.items())

    block = structural.primary
    if block is None:
        offset = 1 if raw.startswith(BOM) else 0
        return _span(raw, offset, offset, f"{DELIMITER}{eol}{lines}{DELIMITER}{eol}", description)

    offset = block.yaml_start
    for key in fields:
        occ = structural.last_occurrence(key)
        if occ is not None:
            offset = occ.line_end
    return _span(raw, offset, offset, lines, description)


def dedupe_key(structural: StructuralFrontmatter, key: str, keep: DuplicateKeep) -> TextEdit:
    """Delete every occurrence of *key* except the first or the last."""
    raw = structural.raw
    found = structural.occurrences(key)
    if len(found) < 2:
        raise EditConflictError(f"Field '{key}' is no longer duplicated")
    survivor = found[0] if keep == "first" else found[-1]
    ranges = [(o.line_start, o.line_end) for o in found if o is not survivor]
    return _cut_ranges(raw, ranges, f"Keep {keep} {key}")


def auto_duplicate_survivor(occurrences: list[KeyOccurrence]) -> int | None:
    """Index of the occurrence an unattended fix keeps, or None if values differ.

    All-empty duplicates keep the last.  Otherwise every non-empty value
    must agree, and the last non-empty occurrence survives.
    """
    filled = [i for i, o in enumerate(occurrences) if not is_effectively_empty(o.value)]
    if not filled:
        return len(occurrences) - 1
    first = occurrences[filled[0]].value
    if any(not values_equal(occurrences[i].value, first) for i in filled[1:]):
        return None
    return filled[-1]


def keep_occurrence(structural: StructuralFrontmatter, key: str, position: int) -> TextEdit:
    """Delete every occurrence of *key* except the one at *position*."""
    raw = structural.raw
    found = structural.occurrences(key)
    if len(found) < 2 or position >= len(found):
        raise EditConflictError(f"Field '{key}' is no longer duplicated")
    ranges = [(o.line_start, o.line_end) for i, o in enumerate(found) if i != position]
    return _cut_ranges(raw, ranges, f"Keep {key} occurrence {position + 1}")
