"""Link syntax — wikilinks and markdown links in frontmatter values.

Pure functions, no infrastructure dependencies.  Consumed by the relation
rules of the audit engine and by the ``format-violation`` and
``malformed-wikilink`` fixers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal

LinkFormat = Literal["wikilink", "markdown"]

_WIKILINK = re.compile(r"^\[\[.+\]\]$")
_QUOTED_WIKILINK = re.compile(r'^"\[\[.+\]\]"$')
_MARKDOWN_LINK = re.compile(r"^\[.+\]\(.+\.md\)$")
_WIKILINK_TARGET = re.compile(r"^\[\[([^\]|#]+)")
_MARKDOWN_TARGET = re.compile(r"^\[.+\]\((.+)\.md\)$")


@dataclass(frozen=True)
class LinkRepair:
    """A near-miss wikilink and its corrected form."""

    original: str
    fixed: str


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


# ---------------------------------------------------------------------------
# Recognition
# ---------------------------------------------------------------------------


def is_wikilink(value: str) -> bool:
    return bool(_WIKILINK.match(value))


def is_quoted_wikilink(value: str) -> bool:
    return bool(_QUOTED_WIKILINK.match(value))


def is_markdown_link(value: str) -> bool:
    return bool(_MARKDOWN_LINK.match(_strip_quotes(value)))


def matches_link_format(value: str, link_format: LinkFormat) -> bool:
    if link_format == "markdown":
        return is_markdown_link(value)
    return is_wikilink(_strip_quotes(value))


# ---------------------------------------------------------------------------
# Target extraction
# ---------------------------------------------------------------------------


def extract_wikilink_target(value: str) -> str | None:
    """``[[Note|alias]]`` and ``[[Note#heading]]`` both target ``Note``."""
    match = _WIKILINK_TARGET.match(_strip_quotes(value))
    return match.group(1).strip() if match else None


def extract_markdown_link_target(value: str) -> str | None:
    match = _MARKDOWN_TARGET.match(_strip_quotes(value))
    return match.group(1).strip() if match else None


def extract_link_target(value: str) -> str:
    """Return the note name a relation value points at.

    Plain text values (no link syntax) are their own target.
    """
    target = extract_wikilink_target(value)
    if target is not None:
        return target
    target = extract_markdown_link_target(value)
    if target is not None:
        return target
    return _strip_quotes(value).strip()


def extract_link_targets(value: Any) -> list[str]:
    """Targets of a scalar or list relation value, blanks dropped."""
    items = value if isinstance(value, list) else [value]
    targets: list[str] = []
    for item in items:
        if isinstance(item, str) and item.strip():
            targets.append(extract_link_target(item))
    return targets


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def to_wikilink(value: str) -> str:
    if is_wikilink(_strip_quotes(value)):
        return _strip_quotes(value)
    return f"[[{extract_link_target(value)}]]"


def to_markdown_link(value: str) -> str:
    if is_markdown_link(value):
        return _strip_quotes(value)
    target = extract_link_target(value)
    name = target.rsplit("/", 1)[-1]
    return f"[{name}]({target}.md)"


def to_link_format(value: str, link_format: LinkFormat) -> str:
    if link_format == "markdown":
        return to_markdown_link(value)
    return to_wikilink(value)


def repair_near_wikilink(value: str) -> LinkRepair | None:
    """Detect ``[[Note]`` and ``[Note]]`` and propose the closed form."""
    text = value.strip()
    if is_wikilink(text):
        return None
    if text.startswith("[[") and text.endswith("]") and not text.endswith("]]"):
        inner = text[2:-1]
        if inner and "[" not in inner and "]" not in inner:
            return LinkRepair(original=value, fixed=f"[[{inner}]]")
    if text.endswith("]]") and text.startswith("[") and not text.startswith("[["):
        inner = text[1:-2]
        if inner and "[" not in inner and "]" not in inner:
            return LinkRepair(original=value, fixed=f"[[{inner}]]")
    return None
