"""BaseService — abstract foundation for all vaultctl services.

Every service receives a :class:`Vault` at construction time.  The Vault
provides the schema, document discovery, and locked atomic writes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from vaultctl.domain.schema import SchemaError
from vaultctl.services.result import ServiceResult
from vaultctl.services.rules import DocumentRecord, FileReport, make_record

if TYPE_CHECKING:
    from pathlib import Path

    from vaultctl.domain.schema import VaultSchema
    from vaultctl.infrastructure.vault import Vault

logger = logging.getLogger(__name__)


class BaseService:
    """Abstract base for all service-layer classes.

    Subclasses implement one family of operations (audit, fix, query,
    schema) using the vault for all data access.

    Usage::

        class AuditService(BaseService):
            def audit(self, ...) -> ServiceResult:
                schema = self._load_schema("audit")
                if isinstance(schema, ServiceResult):
                    return schema
                ...
    """

    def __init__(self, vault: Vault) -> None:
        self._vault = vault

    def _load_schema(self, op: str) -> VaultSchema | ServiceResult:
        """The vault schema, or a ``SCHEMA_INVALID`` failure for *op*."""
        try:
            return self._vault.schema
        except SchemaError as exc:
            return ServiceResult.failure(
                op, "SCHEMA_INVALID", str(exc), schema_path=str(self._vault.schema_path())
            )

    def _read_records(self, schema: VaultSchema) -> tuple[list[DocumentRecord], list[FileReport]]:
        """Read and parse every document; unreadable ones become failures."""
        paths = self._vault.find_documents()
        workers = self._vault.settings.audit.workers

        def load(doc: Path) -> DocumentRecord | FileReport:
            rel = self._vault.relative(doc)
            try:
                raw = self._vault.read_document(doc)
                stat = doc.stat()
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Could not read %s: %s", rel, exc)
                return FileReport(path=rel, failure=str(exc))
            return make_record(schema, rel, doc, raw, size=stat.st_size, mtime=stat.st_mtime)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            loaded = list(pool.map(load, paths))
        records = [r for r in loaded if isinstance(r, DocumentRecord)]
        failures = [r for r in loaded if isinstance(r, FileReport)]
        return records, failures
