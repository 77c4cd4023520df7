"""Tests for QueryService — filtered document listing."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.conftest import write_doc, write_project
from vaultctl.infrastructure.vault import Vault
from vaultctl.services.query import QueryService


@pytest.fixture
def populated(vault_root: Path) -> Path:
    write_doc(vault_root, "tasks/a.md", "---\ntype: task\nstatus: done\npriority: high\n---\n")
    write_doc(vault_root, "tasks/b.md", "---\ntype: bug\nstatus: raw\ncreation-date: 2024-01-01\n---\n")
    write_doc(vault_root, "tasks/c.md", "---\ntype: task\nstatus: raw\n---\nMentions Apollo.\n")
    write_project(vault_root, "Apollo")
    write_doc(vault_root, "inbox/loose.md", "No frontmatter\n")
    return vault_root


class TestListDocuments:
    def test_all_documents(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents()
        assert result.ok
        assert result.op == "list"
        names = [item["name"] for item in result.data["items"]]
        assert names == ["loose", "Apollo", "a", "b", "c"]
        assert result.data["count"] == 5

    def test_by_type_includes_descendants(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(type_path="task")
        items = result.data["items"]
        assert [(i["name"], i["type"]) for i in items] == [("a", "task"), ("b", "bug"), ("c", "task")]

    def test_where(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(type_path="task", where=["status == 'raw'"])
        assert [i["name"] for i in result.data["items"]] == ["b", "c"]

    def test_where_expressions_are_anded(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(where=["status == 'raw'", "type == 'task'"])
        assert [i["name"] for i in result.data["items"]] == ["c"]

    def test_hyphenated_key(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(where=["isDefined(creation-date)"])
        assert [i["name"] for i in result.data["items"]] == ["b"]

    def test_file_body(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(where=["contains(file.body, 'Apollo')"])
        assert [i["name"] for i in result.data["items"]] == ["c"]

    def test_file_folder(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(where=["inFolder('inbox')"])
        assert [i["path"] for i in result.data["items"]] == ["inbox/loose.md"]

    def test_paths_and_fields(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(
            type_path="task", where=["priority == 'high'"], fields=["status", "due"], paths=True
        )
        (item,) = result.data["items"]
        assert item["name"] == "tasks/a.md"
        assert item["fields"] == {"status": "done", "due": None}

    def test_no_matches(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(where=["status == 'done' && status == 'raw'"])
        assert result.ok
        assert result.data == {"items": [], "count": 0}


class TestListErrors:
    def test_unknown_type(self, vault: Vault) -> None:
        result = QueryService(vault).list_documents(type_path="ghost")
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "UNKNOWN_TYPE"

    def test_syntax_error(self, vault: Vault) -> None:
        result = QueryService(vault).list_documents(where=["status =="])
        assert result.error is not None
        assert result.error.code == "INVALID_WHERE"
        assert result.error.detail == {"expression": "status =="}

    def test_invalid_option_for_type(self, vault: Vault) -> None:
        result = QueryService(vault).list_documents(type_path="task", where=["priority == 'urgent'"])
        assert result.error is not None
        assert result.error.code == "INVALID_WHERE"
        assert result.error.detail == {"errors": ["Invalid value 'urgent' for field 'priority'"]}

    def test_runtime_error_becomes_warning(self, vault: Vault, populated: Path) -> None:
        result = QueryService(vault).list_documents(type_path="project", where=["1 / 0 == 1"])
        assert result.ok
        assert result.data["count"] == 0
        assert result.warnings == ["projects/Apollo.md: Division by zero"]

    def test_missing_schema(self, vault: Vault) -> None:
        vault.schema_path().unlink()
        result = QueryService(vault).list_documents()
        assert result.error is not None
        assert result.error.code == "SCHEMA_INVALID"
