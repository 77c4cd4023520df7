"""Tests for the audit CLI command."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from tests.conftest import read_doc, write_doc
from vaultctl.cli import cli
from vaultctl.commands._context import AppContext

TYPO_DOC = "---\ntype: task\nstaus: x\n---\n"


@pytest.mark.usefixtures("_isolated_vault")
class TestAuditCommand:
    def test_clean_vault(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["audit"])
        assert result.exit_code == 0
        assert "No issues found." in result.output

    def test_reports_issues(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["audit"])
        assert result.exit_code == 0
        assert "tasks/a.md" in result.output
        assert "missing-required" in result.output
        assert "unknown-field" in result.output
        assert "1 errors, 1 warnings" in result.output

    def test_json_output(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["--json", "audit"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["ok"] is True
        assert data["op"] == "audit"
        (report,) = data["data"]["files"]
        assert report["path"] == "tasks/a.md"
        codes = sorted(i["code"] for i in report["issues"])
        assert codes == ["missing-required", "unknown-field"]
        assert data["data"]["summary"]["healthy"] is False

    def test_quiet_lists_paths(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/b.md", TYPO_DOC)
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["-q", "audit"])
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ["tasks/a.md", "tasks/b.md"]

    def test_verbose_shows_telemetry(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["-v", "audit"])
        assert result.exit_code == 0
        assert "AuditService.audit" in result.stdout
        assert "ms" in result.stdout


@pytest.mark.usefixtures("_isolated_vault")
class TestAuditTargets:
    def _setup(self, root: Path) -> None:
        write_doc(root, "tasks/a.md", TYPO_DOC)
        write_doc(root, "projects/p.md", "---\ntype: project\n---\n")

    def _paths(self, runner: CliRunner, args: list[str]) -> list[str]:
        result = runner.invoke(cli, ["--json", "audit", *args])
        assert result.exit_code == 0, result.output
        return [f["path"] for f in json.loads(result.stdout)["data"]["files"]]

    def test_type_target(self, cli_runner: CliRunner, vault_root: Path) -> None:
        self._setup(vault_root)
        assert self._paths(cli_runner, ["project"]) == ["projects/p.md"]

    def test_directory_target(self, cli_runner: CliRunner, vault_root: Path) -> None:
        self._setup(vault_root)
        assert self._paths(cli_runner, ["tasks"]) == ["tasks/a.md"]

    def test_file_target(self, cli_runner: CliRunner, vault_root: Path) -> None:
        self._setup(vault_root)
        assert self._paths(cli_runner, ["tasks/a.md"]) == ["tasks/a.md"]

    def test_glob_target(self, cli_runner: CliRunner, vault_root: Path) -> None:
        self._setup(vault_root)
        assert self._paths(cli_runner, ["projects/*"]) == ["projects/p.md"]

    def test_type_option(self, cli_runner: CliRunner, vault_root: Path) -> None:
        self._setup(vault_root)
        assert self._paths(cli_runner, ["--type", "task"]) == ["tasks/a.md"]

    def test_where_option(self, cli_runner: CliRunner, vault_root: Path) -> None:
        self._setup(vault_root)
        assert self._paths(cli_runner, ["--where", "type == 'project'"]) == ["projects/p.md"]

    def test_only_and_ignore(self, cli_runner: CliRunner, vault_root: Path) -> None:
        self._setup(vault_root)
        result = cli_runner.invoke(cli, ["--json", "audit", "--ignore", "missing-required"])
        files = json.loads(result.stdout)["data"]["files"]
        assert [[i["code"] for i in f["issues"]] for f in files] == [["unknown-field"]]

    def test_unknown_type(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "audit", "--type", "ghost"])
        assert result.exit_code == 1
        assert result.stdout == ""
        payload = json.loads(result.stderr)
        assert payload["error"]["code"] == "UNKNOWN_TYPE"

    def test_unknown_issue_code(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "audit", "--only", "bogus"])
        assert result.exit_code == 1
        assert json.loads(result.stderr)["error"]["code"] == "UNKNOWN_ISSUE_CODE"


@pytest.mark.usefixtures("_isolated_vault")
class TestAuditStrict:
    def test_strict_fails_with_report(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["--json", "audit", "--strict"])
        assert result.exit_code == 1
        payload = json.loads(result.stderr)
        assert payload["ok"] is False
        assert payload["error"]["code"] == "AUDIT_FAILED"
        assert payload["data"]["files"][0]["path"] == "tasks/a.md"

    def test_allow_field(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", "---\ntype: task\nstatus: raw\nrating: 5\n---\n")
        result = cli_runner.invoke(cli, ["--json", "audit", "--strict", "--allow-field", "rating"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"]["files"] == []

    def test_missing_schema(self, cli_runner: CliRunner, vault_root: Path) -> None:
        (vault_root / ".vaultctl" / "schema.yaml").unlink()
        result = cli_runner.invoke(cli, ["audit"])
        assert result.exit_code == 1
        assert "ERROR" in result.stderr
        assert "No schema found" in result.stderr


@pytest.mark.usefixtures("_isolated_vault")
class TestAuditFix:
    def test_fix_runs_auto_without_a_terminal(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["--json", "audit", "--fix"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["op"] == "fix"
        assert data["data"]["files_changed"] == ["tasks/a.md"]
        assert read_doc(vault_root, "tasks/a.md") == "---\ntype: task\nstaus: x\nstatus: raw\n---\n"

    def test_dry_run_writes_nothing(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["audit", "--fix", "--dry-run"])
        assert result.exit_code == 0
        assert "dry run" in result.output
        assert read_doc(vault_root, "tasks/a.md") == TYPO_DOC

    def test_dry_run_implies_fix(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["--json", "audit", "--dry-run"])
        assert json.loads(result.stdout)["data"]["summary"]["dry_run"] is True

    def test_fix_respects_target(self, cli_runner: CliRunner, vault_root: Path) -> None:
        write_doc(vault_root, "tasks/a.md", TYPO_DOC)
        write_doc(vault_root, "tasks/b.md", TYPO_DOC)
        result = cli_runner.invoke(cli, ["--json", "audit", "tasks/b.md", "--fix", "--auto"])
        assert json.loads(result.stdout)["data"]["files_changed"] == ["tasks/b.md"]
        assert read_doc(vault_root, "tasks/a.md") == TYPO_DOC

    def test_interactive_choice(
        self, cli_runner: CliRunner, vault_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(AppContext, "interactive", property(lambda self: True))
        write_doc(vault_root, "tasks/a.md", "---\ntype: task\nstatus: raw\npriority: hgh\n---\n")
        result = cli_runner.invoke(cli, ["audit", "--fix"], input="\n")
        assert result.exit_code == 0, result.output
        assert "invalid-option" in result.stderr
        assert read_doc(vault_root, "tasks/a.md") == "---\ntype: task\nstatus: raw\npriority: high\n---\n"

    def test_interactive_skip(
        self, cli_runner: CliRunner, vault_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(AppContext, "interactive", property(lambda self: True))
        text = "---\ntype: task\nstatus: raw\npriority: hgh\n---\n"
        write_doc(vault_root, "tasks/a.md", text)
        result = cli_runner.invoke(cli, ["audit", "--fix"], input="skip\n")
        assert result.exit_code == 0, result.output
        assert read_doc(vault_root, "tasks/a.md") == text

    def test_interactive_confirm(
        self, cli_runner: CliRunner, vault_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(AppContext, "interactive", property(lambda self: True))
        write_doc(vault_root, "tasks/a.md", "---\ntype: task\n---\n")
        result = cli_runner.invoke(cli, ["audit", "--fix"], input="n\n")
        assert result.exit_code == 0, result.output
        assert "Apply fix?" in result.stderr
        assert read_doc(vault_root, "tasks/a.md") == "---\ntype: task\n---\n"
