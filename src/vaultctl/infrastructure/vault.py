"""Vault — the document tree plus its schema, shared by every service.

The Vault is the single dependency injected into every service.  It owns
the vault root, the lazily loaded schema, document discovery, and the
write path.  Writes go through :meth:`Vault.write_document`, which holds
a per-document lock so one document is never rewritten by two fixers at
once, while different documents may be written concurrently.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

from vaultctl.domain.schema import SchemaError, VaultSchema, load_schema
from vaultctl.infrastructure.filesystem import (
    atomic_write_text,
    find_documents,
    read_document,
    relative_posix,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from vaultctl.config.settings import VaultSettings

logger = logging.getLogger(__name__)

SCHEMA_CANDIDATES = (".vaultctl/schema.yaml", ".vaultctl/schema.yml", ".vaultctl/schema.json")


class Vault:
    """Repository encapsulating schema and filesystem access.

    Constructed once at CLI startup from :class:`VaultSettings` and
    reached through ``AppContext.vault``.  Services receive the Vault via
    their :class:`BaseService` constructor.
    """

    def __init__(self, settings: VaultSettings, *, schema: VaultSchema | None = None) -> None:
        self._settings = settings
        self._schema = schema
        self._schema_lock = threading.Lock()
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        """The vault root directory."""
        return self._settings.vault_root

    @property
    def settings(self) -> VaultSettings:
        """The resolved settings for this vault."""
        return self._settings

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def schema_path(self) -> Path:
        """Configured schema file, else the first existing default."""
        configured = self._settings.vault.schema_path
        if configured is not None:
            return configured if configured.is_absolute() else self.root / configured
        for candidate in SCHEMA_CANDIDATES:
            path = self.root / candidate
            if path.is_file():
                return path
        return self.root / SCHEMA_CANDIDATES[0]

    @property
    def schema(self) -> VaultSchema:
        """The vault schema, loaded on first access.

        Raises:
            SchemaError: if the schema file is missing or invalid.
        """
        with self._schema_lock:
            if self._schema is None:
                path = self.schema_path()
                if not path.is_file():
                    raise SchemaError(f"No schema found at {path}")
                logger.debug("Loading schema from %s", path)
                self._schema = load_schema(path)
            return self._schema

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def find_documents(self) -> list[Path]:
        """Discover documents, honoring configured ignored directories."""
        ignored = list(self._settings.audit.ignored_directories)
        if self._schema is not None:
            ignored.extend(self._schema.audit.ignored_directories)
        return find_documents(self.root, ignored_directories=ignored)

    def relative(self, path: Path) -> str:
        return relative_posix(self.root, path)

    def read_document(self, path: Path) -> str:
        return read_document(path)

    def _lock_for(self, path: Path) -> threading.Lock:
        key = path.resolve()
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def locked(self, path: Path) -> Iterator[None]:
        """Hold the per-document lock for a read-modify-write cycle.

        Usage::

            with vault.locked(path):
                raw = vault.read_document(path)
                vault.write_document(path, fixed(raw))
        """
        with self._lock_for(path):
            yield

    def write_document(self, path: Path, content: str) -> None:
        """Atomically replace a document.  Call within :meth:`locked`."""
        atomic_write_text(path, content)
        logger.debug("Wrote %s", path)
