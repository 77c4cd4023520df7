"""Date canonicalization — suggest ``YYYY-MM-DD`` for near-ISO values.

Only unambiguous year-first forms get a suggestion.  Day-first and
month-first forms such as ``03/05/2024`` are locale dependent and are
never guessed at.
"""

from __future__ import annotations

import re

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_WITH_TIME = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T]")
_YEAR_FIRST = re.compile(r"^(\d{4})[./-](\d{1,2})[./-](\d{1,2})$")


def is_iso_date(value: str) -> bool:
    return bool(ISO_DATE_PATTERN.match(value.strip()))


def suggest_iso_date(value: str) -> str | None:
    """Return the canonical ``YYYY-MM-DD`` form of *value*, or None.

    - ``2024-03-05`` is returned unchanged.
    - ``2024-03-05T10:00`` and ``2024-03-05 10:00`` drop the time part.
    - ``2024/3/5``, ``2024.3.5`` and ``2024-3-5`` are zero-padded.
    """
    text = value.strip()
    if not text:
        return None
    if ISO_DATE_PATTERN.match(text):
        return text

    match = _ISO_WITH_TIME.match(text)
    if match:
        return match.group(1)

    match = _YEAR_FIRST.match(text)
    if match:
        year, month, day = match.group(1), int(match.group(2)), int(match.group(3))
        if 1 <= month <= 12 and 1 <= day <= 31:
            return f"{year}-{month:02d}-{day:02d}"
    return None
