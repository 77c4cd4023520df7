"""Fuzzy matching — edit distance and typo suggestions.

Levenshtein distance backs every suggestion the audit engine makes:
unknown field names, select options, type names, and similarly named
notes for stale references.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from vaultctl.domain.values import is_discriminator_key, is_shape_compatible

_SEPARATORS = re.compile(r"[\s\-_]+")

MAX_FIELD_SUGGESTIONS = 3
MAX_SIMILAR_FILES = 5
ABBREVIATION_RATIO = 0.4


def levenshtein(a: str, b: str) -> int:
    """Classic two-row dynamic-programming edit distance."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def transposition_distance(a: str, b: str) -> int:
    """Edit distance that counts an adjacent swap (``statsu``) as one edit.

    This is the optimal-string-alignment variant of Damerau-Levenshtein,
    used for field-name typos where swapped letters are the common slip.
    """
    rows = [[0] * (len(b) + 1) for _ in range(len(a) + 1)]
    for i in range(len(a) + 1):
        rows[i][0] = i
    for j in range(len(b) + 1):
        rows[0][j] = j
    for i in range(1, len(a) + 1):
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            rows[i][j] = min(rows[i - 1][j] + 1, rows[i][j - 1] + 1, rows[i - 1][j - 1] + cost)
            if i > 1 and j > 1 and a[i - 1] == b[j - 2] and a[i - 2] == b[j - 1]:
                rows[i][j] = min(rows[i][j], rows[i - 2][j - 2] + 1)
    return rows[-1][-1]


def normalize_field_name(name: str) -> str:
    """Lower-case and drop whitespace, hyphen, and underscore separators."""
    return "".join(part for part in _SEPARATORS.split(name.lower()) if part)


def max_distance_for(a: str, b: str) -> int:
    return max(1, math.floor(0.2 * min(len(a), len(b))))


def _is_prefix_variant(a: str, b: str) -> bool:
    """Singular/plural (``tag`` vs ``tags``) or abbreviation (``desc``)."""
    if a == b + "s" or b == a + "s":
        return True
    shorter, longer = sorted((a, b), key=len)
    # an abbreviation keeps well under half the word; ``note`` is not ``notebook``
    return (
        len(shorter) >= 4
        and len(shorter) <= ABBREVIATION_RATIO * len(longer)
        and longer.startswith(shorter)
    )


# ---------------------------------------------------------------------------
# Unknown-field suggestions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSuggestion:
    """A candidate schema field for an unknown frontmatter key."""

    name: str
    distance: int
    priority: int  # 0 exact normalized, 1 singular/plural or prefix, 2 other
    type_mismatch: bool


def similar_fields(
    key: str,
    value: Any,
    candidates: dict[str, str | None],
) -> list[FieldSuggestion]:
    """Rank schema fields that *key* is plausibly a typo of.

    Args:
        key: The unknown frontmatter key.
        value: Its value, used to flag shape mismatches.
        candidates: Field name to declared prompt for the resolved type.
    """
    normalized_key = normalize_field_name(key)
    if not normalized_key:
        return []
    found: list[FieldSuggestion] = []
    for name, prompt in candidates.items():
        if is_discriminator_key(name):
            continue
        normalized = normalize_field_name(name)
        if not normalized:
            continue
        distance = transposition_distance(normalized_key, normalized)
        if distance == 0:
            priority = 0
        elif _is_prefix_variant(normalized_key, normalized):
            priority = 1
        elif distance <= max_distance_for(normalized_key, normalized):
            priority = 2
        else:
            continue
        found.append(
            FieldSuggestion(
                name=name,
                distance=distance,
                priority=priority,
                type_mismatch=not is_shape_compatible(value, prompt),
            )
        )
    found.sort(key=lambda s: (s.priority, s.type_mismatch, s.distance, s.name))
    return found[:MAX_FIELD_SUGGESTIONS]


def migration_target(
    suggestions: list[FieldSuggestion],
    frontmatter: dict[str, Any],
    is_empty: Callable[[Any], bool],
) -> str | None:
    """Pick the single field an unknown key can be silently moved into.

    Exactly one normalized-exact match (or, failing that, exactly one
    singular/plural or abbreviation match) qualifies, and only when the target is empty
    and the value's shape fits.  Any ambiguity returns None.
    """
    for priority in (0, 1):
        matches = [s for s in suggestions if s.priority == priority]
        if not matches:
            continue
        if len(matches) != 1:
            return None
        target = matches[0]
        if target.type_mismatch or not is_empty(frontmatter.get(target.name)):
            return None
        return target.name
    return None


# ---------------------------------------------------------------------------
# Names and option values
# ---------------------------------------------------------------------------


def suggest_name(value: str, options: list[str]) -> str | None:
    """Suggest a field or type name: case-insensitive match, then close typo."""
    lowered = value.lower()
    for option in options:
        if option.lower() == lowered:
            return option
    best: str | None = None
    best_distance = math.inf
    for option in options:
        limit = min(2, math.ceil(0.4 * len(option)))
        distance = levenshtein(lowered, option.lower())
        if distance <= limit and distance < best_distance:
            best, best_distance = option, distance
    return best


def suggest_option(value: str, options: list[str]) -> str | None:
    """Suggest a select/enum value for an invalid *value*."""
    lowered = value.strip().lower()
    if not lowered:
        return None
    for option in options:
        if option.lower() == lowered:
            return option
    for option in options:
        if option.lower().startswith(lowered):
            return option
    for option in options:
        candidate = option.lower()
        if lowered in candidate or candidate in lowered:
            return option
    best: str | None = None
    best_distance = math.inf
    for option in options:
        limit = math.ceil(0.4 * max(len(option), len(lowered)))
        distance = levenshtein(lowered, option.lower())
        if distance <= limit and distance < best_distance:
            best, best_distance = option, distance
    return best


# ---------------------------------------------------------------------------
# Similar notes
# ---------------------------------------------------------------------------


def _words(text: str) -> list[str]:
    return [w for w in _SEPARATORS.split(text.lower()) if len(w) >= 2]


def similar_files(target: str, names: list[str], limit: int = MAX_SIMILAR_FILES) -> list[str]:
    """Score note names against a stale link target, best first."""
    query = target.lower()
    query_words = _words(target)
    scored: list[tuple[int, str]] = []
    for name in names:
        base = name.rsplit("/", 1)[-1]
        candidate = base.lower()
        if candidate == query:
            continue
        score = 0
        if len(query) >= 4 and len(candidate) >= 4:
            if candidate.startswith(query) or query.startswith(candidate):
                score += 50
            elif query in candidate or candidate in query:
                score += 30
        for word in _words(base):
            for qword in query_words:
                if word == qword or (
                    len(word) >= 4 and len(qword) >= 4 and (word in qword or qword in word)
                ):
                    score += 10
                    break
        if len(query) < 20 and len(candidate) < 20:
            allowed = max_distance_for(query, candidate)
            distance = levenshtein(query, candidate)
            if distance <= allowed:
                score += (allowed + 1 - distance) * 15
        if score >= 10:
            scored.append((score, name))
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [name for _, name in scored[:limit]]


def is_high_confidence_match(target: str, candidate: str) -> bool:
    """Close enough to rewrite a stale link without asking."""
    a = target.lower()
    b = candidate.rsplit("/", 1)[-1].lower()
    if a == b:
        return True
    if (a.startswith(b) or b.startswith(a)) and abs(len(a) - len(b)) <= 2:
        return True
    return levenshtein(a, b) <= 2
