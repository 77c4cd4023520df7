"""Structural frontmatter parsing — located blocks, spans, best-effort values.

A document is scanned line by line for ``---`` delimiter lines.  Every
delimited block is recorded with character offsets into the exact input
text; the first block is the *primary* frontmatter.  Its YAML is composed
into a node tree with ruamel.yaml so that every key occurrence (including
duplicates a strict loader would reject) keeps its own location.

INVARIANT: offsets are valid slice boundaries into the original text.
Splicing a replacement between ``raw[:start]`` and ``raw[end:]`` changes
nothing outside the edited span.

Nothing here raises on bad YAML.  Syntax problems are recorded in
``yaml_errors`` and the mapping degrades to whatever could be extracted.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError
from ruamel.yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

BOM = "\ufeff"
DELIMITER = "---"

_DATE_PREFIX = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Line:
    """One line of text with its line ending kept separately."""

    text: str
    eol: str
    number: int  # 1-based
    start: int
    end: int  # includes the line ending


@dataclass(frozen=True)
class FrontmatterBlock:
    """Offsets of one ``---`` delimited block."""

    block_start: int  # start of the opening delimiter line
    yaml_start: int  # just after the opening delimiter line
    yaml_end: int  # start of the closing delimiter line
    block_end: int  # end of the closing delimiter line, line ending included


@dataclass(frozen=True)
class ItemSpan:
    """A sequence item inside a frontmatter value."""

    index: int
    value: Any
    start: int
    end: int
    line_start: int
    line_end: int


@dataclass(frozen=True)
class KeyOccurrence:
    """One ``key: value`` pair as written, with absolute offsets."""

    key: str
    value: Any
    key_start: int
    key_end: int
    colon: int  # offset just past the ``:``
    value_start: int
    value_end: int
    line_start: int
    line_end: int
    kind: str  # "scalar", "sequence" or "mapping"
    flow: bool = False
    items: tuple[ItemSpan, ...] = ()

    @property
    def is_empty_node(self) -> bool:
        return self.value_start == self.value_end


@dataclass(frozen=True)
class StructuralFrontmatter:
    """Parsed view of a document's frontmatter region(s)."""

    raw: str
    blocks: tuple[FrontmatterBlock, ...] = ()
    unterminated: bool = False
    frontmatter: dict[str, Any] = field(default_factory=dict)
    pairs: tuple[KeyOccurrence, ...] = ()
    yaml_errors: tuple[str, ...] = ()
    at_top: bool = True
    is_mapping: bool = True  # False when the primary block holds a scalar or list

    @property
    def primary(self) -> FrontmatterBlock | None:
        return self.blocks[0] if self.blocks else None

    @property
    def yaml(self) -> str | None:
        if self.primary is None:
            return None
        return self.raw[self.primary.yaml_start : self.primary.yaml_end]

    def occurrences(self, key: str) -> list[KeyOccurrence]:
        return [p for p in self.pairs if p.key == key]

    def last_occurrence(self, key: str) -> KeyOccurrence | None:
        found = self.occurrences(key)
        return found[-1] if found else None

    def duplicate_keys(self) -> dict[str, list[KeyOccurrence]]:
        """Keys written more than once, in first-seen order."""
        grouped: dict[str, list[KeyOccurrence]] = defaultdict(list)
        for pair in self.pairs:
            grouped[pair.key].append(pair)
        return {k: v for k, v in grouped.items() if len(v) > 1}


# ---------------------------------------------------------------------------
# Line scanning
# ---------------------------------------------------------------------------


def split_lines_preserve_eol(text: str) -> list[Line]:
    """Split *text* into lines, each remembering its ``\\n`` or ``\\r\\n``."""
    lines: list[Line] = []
    start = 0
    number = 1
    length = len(text)
    while start < length:
        newline = text.find("\n", start)
        if newline == -1:
            lines.append(Line(text[start:], "", number, start, length))
            break
        end = newline + 1
        body = text[start:newline]
        eol = "\n"
        if body.endswith("\r"):
            body, eol = body[:-1], "\r\n"
        lines.append(Line(body, eol, number, start, end))
        start = end
        number += 1
    return lines


def detect_eol(raw: str) -> str:
    """The document's line-ending convention, judged by its first newline."""
    newline = raw.find("\n")
    if newline > 0 and raw[newline - 1] == "\r":
        return "\r\n"
    return "\n"


def find_blocks(raw: str) -> tuple[list[FrontmatterBlock], bool]:
    """Pair up delimiter lines into blocks; report an unclosed trailing one."""
    blocks: list[FrontmatterBlock] = []
    opened: Line | None = None
    for line in split_lines_preserve_eol(raw):
        text = line.text.removeprefix(BOM) if line.number == 1 else line.text
        if text.strip() != DELIMITER:
            continue
        if opened is None:
            opened = line
            continue
        # A leading byte-order mark stays outside the block.
        bom = len(BOM) if opened.number == 1 and raw.startswith(BOM) else 0
        blocks.append(
            FrontmatterBlock(
                block_start=opened.start + bom,
                yaml_start=opened.end,
                yaml_end=line.start,
                block_end=line.end,
            )
        )
        opened = None
    return blocks, opened is not None


# ---------------------------------------------------------------------------
# Value normalization
# ---------------------------------------------------------------------------


def normalize_value(value: Any) -> Any:
    """Dates become ``YYYY-MM-DD`` (UTC); containers are walked."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        return [normalize_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): normalize_value(v) for k, v in value.items()}
    return value


def _timestamp_value(text: str) -> str:
    try:
        parsed = datetime.fromisoformat(text.strip().replace(" ", "T", 1))
    except ValueError:
        match = _DATE_PREFIX.match(text)
        if not match:
            return text
        year, month, day = match.groups()
        return f"{year}-{int(month):02d}-{int(day):02d}"
    return normalize_value(parsed)


def _scalar_value(node: ScalarNode) -> Any:
    text = node.value
    tag = node.tag
    if tag == "tag:yaml.org,2002:null":
        return None
    if tag == "tag:yaml.org,2002:bool":
        return text.lower() in ("true", "yes", "on")
    if tag == "tag:yaml.org,2002:int":
        cleaned = text.replace("_", "")
        try:
            return int(cleaned, 0)
        except ValueError:
            try:
                return int(cleaned)
            except ValueError:
                return text
    if tag == "tag:yaml.org,2002:float":
        lowered = text.lower().replace("_", "")
        if lowered in (".inf", "+.inf"):
            return float("inf")
        if lowered == "-.inf":
            return float("-inf")
        if lowered == ".nan":
            return float("nan")
        try:
            return float(lowered)
        except ValueError:
            return text
    if tag == "tag:yaml.org,2002:timestamp":
        return _timestamp_value(text)
    return text


def node_value(node: Node | None) -> Any:
    """Build a plain Python value from a composed node, last key winning."""
    if node is None:
        return None
    if isinstance(node, ScalarNode):
        return _scalar_value(node)
    if isinstance(node, SequenceNode):
        return [node_value(item) for item in node.value]
    if isinstance(node, MappingNode):
        result: dict[str, Any] = {}
        for key_node, value_node in node.value:
            key = node_value(key_node)
            result["" if key is None else str(key)] = node_value(value_node)
        return result
    return None


# ---------------------------------------------------------------------------
# Node walking
# ---------------------------------------------------------------------------


def _new_composer() -> YAML:
    """Create a fresh YAML composer.

    A new instance per call keeps concurrent audits from sharing the
    stateful reader/scanner pipeline.
    """
    y = YAML(typ="safe", pure=True)
    y.allow_duplicate_keys = True
    return y


def _line_start(text: str, offset: int) -> int:
    return text.rfind("\n", 0, offset) + 1


def _line_end(text: str, offset: int, limit: int) -> int:
    """End of the line holding *offset*, or *offset* itself at a line start."""
    if offset > 0 and text[offset - 1] == "\n":
        return offset
    newline = text.find("\n", offset, limit)
    return limit if newline == -1 else newline + 1


def _occurrence(
    raw: str,
    base: int,
    limit: int,
    key_node: Node,
    value_node: Node,
) -> KeyOccurrence:
    key_start = base + key_node.start_mark.index
    key_end = base + key_node.end_mark.index
    colon = raw.find(":", key_end, limit)
    colon = key_end if colon == -1 else colon + 1

    value = normalize_value(node_value(value_node))
    is_empty_scalar = isinstance(value_node, ScalarNode) and value is None and not value_node.value
    if is_empty_scalar:
        value_start = value_end = colon
    else:
        value_start = base + value_node.start_mark.index
        value_end = base + value_node.end_mark.index

    kind = "scalar"
    flow = False
    items: list[ItemSpan] = []
    if isinstance(value_node, SequenceNode):
        kind = "sequence"
        flow = bool(value_node.flow_style)
        for index, item in enumerate(value_node.value):
            start = base + item.start_mark.index
            end = base + item.end_mark.index
            items.append(
                ItemSpan(
                    index=index,
                    value=normalize_value(node_value(item)),
                    start=start,
                    end=end,
                    line_start=_line_start(raw, start),
                    line_end=_line_end(raw, end, limit),
                )
            )
    elif isinstance(value_node, MappingNode):
        kind = "mapping"

    return KeyOccurrence(
        key="" if key_node.value is None else str(key_node.value),
        value=value,
        key_start=key_start,
        key_end=key_end,
        colon=colon,
        value_start=value_start,
        value_end=value_end,
        line_start=_line_start(raw, key_start),
        line_end=_line_end(raw, max(value_end, colon), limit),
        kind=kind,
        flow=flow,
        items=tuple(items),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_structural(raw: str) -> StructuralFrontmatter:
    """Locate frontmatter blocks in *raw* and parse the primary one.

    Empty YAML is an empty mapping.  A scalar or list root leaves the
    mapping empty and clears ``is_mapping``; callers treat such a block
    as unusable frontmatter.  Syntax errors are recorded, never raised.
    """
    blocks, unterminated = find_blocks(raw)
    if not blocks:
        return StructuralFrontmatter(raw=raw, blocks=(), unterminated=unterminated)

    primary = blocks[0]
    prefix = raw[: primary.block_start]
    at_top = prefix.removeprefix(BOM).strip() == ""
    yaml_text = raw[primary.yaml_start : primary.yaml_end]

    errors: list[str] = []
    is_mapping = True
    root: Node | None = None
    try:
        root = _new_composer().compose(yaml_text)
    except YAMLError as exc:
        errors.append(str(exc))

    pairs: list[KeyOccurrence] = []
    frontmatter: dict[str, Any] = {}
    if isinstance(root, MappingNode):
        for key_node, value_node in root.value:
            pair = _occurrence(raw, primary.yaml_start, primary.yaml_end, key_node, value_node)
            if not pair.key:
                continue
            pairs.append(pair)
            frontmatter[pair.key] = pair.value
    elif root is not None:
        errors = []
        is_mapping = False

    return StructuralFrontmatter(
        raw=raw,
        blocks=tuple(blocks),
        unterminated=unterminated,
        frontmatter=frontmatter,
        pairs=tuple(pairs),
        yaml_errors=tuple(errors),
        at_top=at_top,
        is_mapping=is_mapping,
    )


def replace_primary_yaml(raw: str, block: FrontmatterBlock, new_yaml: str) -> str:
    """Swap the YAML content of *block*, keeping the file's line endings."""
    eol = detect_eol(raw)
    body = new_yaml.rstrip().replace("\r\n", "\n").replace("\n", eol) + eol
    return raw[: block.yaml_start] + body + raw[block.yaml_end :]


def move_primary_block_to_top(raw: str, block: FrontmatterBlock) -> str:
    """Relocate *block* to the start of the document, after any BOM."""
    block_text = raw[block.block_start : block.block_end]
    if block_text and not block_text.endswith("\n"):
        block_text += detect_eol(raw)
    remaining = raw[: block.block_start] + raw[block.block_end :]
    if remaining.startswith(BOM):
        return BOM + block_text + remaining[1:]
    return block_text + remaining
