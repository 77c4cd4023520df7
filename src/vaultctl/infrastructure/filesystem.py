"""Filesystem operations for vault documents.

INVARIANT: Text round-trips exactly.  Documents are decoded as UTF-8
with ``newline=""`` so CRLF line endings and a leading byte-order mark
survive a read/write cycle untouched, and every offset computed by the
structural parser indexes the text as stored.

Pure parsing lives in :mod:`vaultctl.domain.structural` (dependency
direction: infrastructure -> domain).  This module handles actual file
I/O, discovery, and atomic replacement.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

# Directories never walked when discovering documents.
_SKIP_DIRS = frozenset({".vaultctl", ".obsidian", ".git", ".trash", "node_modules"})


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def read_document(path: Path) -> str:
    """Read a markdown document exactly as stored."""
    with open(path, encoding="utf-8", newline="") as fh:
        return fh.read()


def atomic_write_text(path: Path, content: str) -> None:
    """Replace *path* with *content* without exposing a partial file.

    The text goes to a temporary sibling first (same directory, so the
    rename never crosses filesystems) and is then renamed over the
    original.  On failure the temporary file is removed and the
    original is left as it was.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        if path.exists():
            os.chmod(tmp_name, path.stat().st_mode & 0o7777)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def relative_posix(vault_root: Path, path: Path) -> str:
    """Vault-relative path with forward slashes."""
    return path.relative_to(vault_root).as_posix()


def find_documents(
    vault_root: Path,
    *,
    ignored_directories: Iterable[str] = (),
) -> list[Path]:
    """Discover every ``.md`` document under *vault_root*, sorted.

    Hidden directories, :data:`_SKIP_DIRS`, and *ignored_directories*
    (vault-relative, matched as path prefixes) are skipped.
    """
    ignored = [d.strip("/") for d in ignored_directories if d.strip("/")]
    results: list[Path] = []
    for path in vault_root.rglob("*.md"):
        if not path.is_file():
            continue
        rel = path.relative_to(vault_root)
        dirs = rel.parts[:-1]
        if any(part in _SKIP_DIRS or part.startswith(".") for part in dirs):
            continue
        rel_dir = "/".join(dirs)
        if any(rel_dir == d or rel_dir.startswith(d + "/") for d in ignored):
            continue
        results.append(path)
    return sorted(results)
