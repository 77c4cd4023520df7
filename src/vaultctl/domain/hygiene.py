"""Raw-text hygiene checks on the frontmatter region.

These work on lines, not on the parsed mapping, because trailing
whitespace is invisible once YAML has been loaded.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from vaultctl.domain.structural import StructuralFrontmatter, split_lines_preserve_eol
from vaultctl.domain.values import is_discriminator_key

_KEY_VALUE = re.compile(r"^([ \t]*)([A-Za-z0-9_-]+)\s*:\s*(.*)$")
_BLOCK_SCALAR_HEADER = re.compile(r"^[>|](?:[1-9])?(?:[+-])?\s*(#.*)?$")
_TRAILING = re.compile(r"[ \t]+$")


@dataclass(frozen=True)
class TrailingWhitespace:
    """A frontmatter line whose value ends in spaces or tabs."""

    field: str
    value: str
    line_number: int


def find_trailing_whitespace(structural: StructuralFrontmatter) -> list[TrailingWhitespace]:
    """Scan the primary block for ``key: value   `` lines.

    Discriminator keys, empty values, comment-only values, and the body
    of block scalars (``|`` / ``>``) are skipped.
    """
    block = structural.primary
    if block is None:
        return []

    found: list[TrailingWhitespace] = []
    block_indent: int | None = None
    for line in split_lines_preserve_eol(structural.raw):
        if line.start < block.yaml_start or line.start >= block.yaml_end:
            continue
        match = _KEY_VALUE.match(line.text)
        if block_indent is not None:
            if match is None or len(match.group(1)) > block_indent:
                continue
            block_indent = None
        if match is None:
            continue
        indent, key, rest = match.groups()
        if _BLOCK_SCALAR_HEADER.match(rest.strip()):
            block_indent = len(indent)
            continue
        if is_discriminator_key(key) or not rest.strip() or rest.lstrip().startswith("#"):
            continue
        if _TRAILING.search(rest):
            found.append(
                TrailingWhitespace(field=key, value=rest.rstrip(), line_number=line.number)
            )
    return found


def strip_trailing_whitespace(raw: str, line_number: int) -> str | None:
    """Remove trailing blanks from one line; None when there were none."""
    for line in split_lines_preserve_eol(raw):
        if line.number != line_number:
            continue
        stripped = _TRAILING.sub("", line.text)
        if stripped == line.text:
            return None
        return raw[: line.start] + stripped + line.eol + raw[line.end :]
    raise IndexError(f"Line {line_number} is out of range")
