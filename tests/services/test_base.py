"""Tests for BaseService and service inheritance."""

from pathlib import Path

import pytest

from tests.conftest import write_doc
from vaultctl.config.settings import VaultSettings
from vaultctl.domain.schema import VaultSchema
from vaultctl.infrastructure.vault import Vault
from vaultctl.services.audit import AuditService
from vaultctl.services.base import BaseService
from vaultctl.services.fix import FixService
from vaultctl.services.query import QueryService
from vaultctl.services.result import ServiceResult
from vaultctl.services.schema import SchemaService


class TestBaseService:
    def test_vault_stored(self, tmp_path: Path) -> None:
        settings = VaultSettings.from_cli(vault_root=tmp_path)
        vault = Vault(settings)
        service = BaseService(vault)
        assert service._vault is vault

    def test_subclass_pattern(self, tmp_path: Path) -> None:
        """Verify the intended subclass usage pattern works."""

        class MyService(BaseService):
            def do_thing(self) -> str:
                return f"vault at {self._vault.root}"

        settings = VaultSettings.from_cli(vault_root=tmp_path)
        vault = Vault(settings)
        svc = MyService(vault)
        assert str(tmp_path) in svc.do_thing()

    def test_load_schema(self, vault: Vault) -> None:
        assert isinstance(BaseService(vault)._load_schema("audit"), VaultSchema)

    def test_load_schema_failure(self, vault: Vault) -> None:
        vault.schema_path().write_text("types:\n  task:\n    extends: ghost\n", encoding="utf-8")
        result = BaseService(vault)._load_schema("audit")
        assert isinstance(result, ServiceResult)
        assert result.op == "audit"
        assert result.error is not None
        assert result.error.code == "SCHEMA_INVALID"
        assert result.error.detail["schema_path"].endswith("schema.yaml")

    def test_read_records(self, vault: Vault, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", "---\ntype: bug\n---\n")
        write_doc(vault_root, "notes/b.md", "no frontmatter\n")
        (vault_root / "tasks" / "c.md").write_bytes(b"\xff")
        records, failures = BaseService(vault)._read_records(vault.schema)
        assert [(r.rel_path, r.type_path) for r in records] == [("notes/b.md", None), ("tasks/a.md", "bug")]
        assert [f.path for f in failures] == ["tasks/c.md"]
        assert records[1].size == len("---\ntype: bug\n---\n")


# ---------------------------------------------------------------------------
# Service inheritance — all services extend BaseService
# ---------------------------------------------------------------------------

ALL_SERVICES = [
    AuditService,
    FixService,
    QueryService,
    SchemaService,
]


class TestServiceInheritance:
    @pytest.mark.parametrize("service_cls", ALL_SERVICES, ids=lambda c: c.__name__)
    def test_inherits_base_service(self, service_cls: type) -> None:
        assert issubclass(service_cls, BaseService)

    @pytest.mark.parametrize("service_cls", ALL_SERVICES, ids=lambda c: c.__name__)
    def test_vault_injection(self, service_cls: type, vault: Vault) -> None:
        """Each service accepts a Vault and stores it as _vault."""
        svc = service_cls(vault)
        assert svc._vault is vault
