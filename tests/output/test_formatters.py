"""Tests for format_result: one audit, fix, or list result in each output mode."""

from __future__ import annotations

import json
from pathlib import Path

from vaultctl.config.settings import VaultSettings
from vaultctl.output.formatters import OutputSettings, format_result
from vaultctl.services.result import ServiceResult

AUDIT = ServiceResult(
    ok=True,
    op="audit",
    data={
        "files": [
            {
                "path": "tasks/Write report.md",
                "issues": [
                    {
                        "code": "missing-required",
                        "severity": "error",
                        "message": "Missing required field 'status'",
                        "auto_fixable": True,
                        "meta": {"field": "status", "default": "open"},
                    }
                ],
            },
            {
                "path": "projects/Apollo.md",
                "issues": [
                    {
                        "code": "unknown-field",
                        "severity": "warning",
                        "message": "Unknown field 'desc'",
                        "suggestion": "Did you mean 'description'?",
                    }
                ],
            },
        ],
        "failures": [],
        "summary": {"files_checked": 3, "total_errors": 1, "total_warnings": 1, "healthy": False},
    },
)

FIX = ServiceResult(
    ok=True,
    op="fix",
    data={
        "outcomes": [
            {"path": "tasks/Write report.md", "code": "missing-required", "status": "fixed", "message": "Set status"},
            {"path": "projects/Apollo.md", "code": "unknown-field", "status": "skipped", "message": "Needs review"},
        ],
        "files_changed": ["tasks/Write report.md"],
        "summary": {"fixed": 1, "skipped": 1, "failed": 0, "remaining": 1, "dry_run": False},
    },
)

TELEMETRY = {
    "name": "audit",
    "duration_ms": 12.5,
    "annotations": {},
    "children": [
        {
            "name": "check",
            "duration_ms": 4.0,
            "annotations": {},
            "children": [{"name": "required", "duration_ms": 0.3, "annotations": {"runs": 3}, "children": []}],
        }
    ],
}


class TestOutputSettings:
    def test_built_from_root_flags(self, tmp_path: Path) -> None:
        settings = VaultSettings.from_cli(vault_root=tmp_path, quiet=True, log_json=True)
        assert OutputSettings.from_settings(settings) == OutputSettings(quiet=True)


class TestJson:
    def test_audit_report_round_trips(self) -> None:
        data = json.loads(format_result(AUDIT, settings=OutputSettings(json_output=True)))
        assert data["op"] == "audit"
        assert [f["path"] for f in data["data"]["files"]] == ["tasks/Write report.md", "projects/Apollo.md"]
        assert data["data"]["summary"]["healthy"] is False
        assert data["error"] is None

    def test_strict_failure_keeps_report(self) -> None:
        result = ServiceResult.failure("audit", "AUDIT_FAILED", "1 error found", data=AUDIT.data)
        data = json.loads(format_result(result, settings=OutputSettings(json_output=True, quiet=True)))
        assert data["ok"] is False
        assert data["error"]["code"] == "AUDIT_FAILED"
        assert len(data["data"]["files"]) == 2


class TestQuiet:
    def test_audit_lists_paths_with_issues(self) -> None:
        output = format_result(AUDIT, settings=OutputSettings(quiet=True))
        assert output.splitlines() == ["tasks/Write report.md", "projects/Apollo.md"]

    def test_fix_lists_changed_files(self) -> None:
        assert format_result(FIX, settings=OutputSettings(quiet=True)) == "tasks/Write report.md"

    def test_list_prints_note_names(self) -> None:
        result = ServiceResult(
            ok=True,
            op="list",
            data={"items": [{"name": "Write report", "path": "tasks/Write report.md"}], "count": 1},
        )
        assert format_result(result, settings=OutputSettings(quiet=True)) == "Write report"

    def test_clean_vault(self) -> None:
        result = ServiceResult(ok=True, op="audit", data={"files": [], "summary": {"files_checked": 3}})
        assert format_result(result, settings=OutputSettings(quiet=True)) == "OK: audit"

    def test_failure(self) -> None:
        result = ServiceResult.failure("list", "UNKNOWN_TYPE", "Unknown type 'taks'", type_path="taks")
        assert format_result(result, settings=OutputSettings(quiet=True)) == "ERROR: list — Unknown type 'taks'"


class TestRich:
    def test_audit_groups_issues_by_document(self) -> None:
        output = format_result(AUDIT)
        assert output.index("tasks/Write report.md") < output.index("missing-required")
        assert "(fixable)" in output
        assert "Did you mean 'description'?" in output
        assert "1 errors, 1 warnings" in output
        assert "default" not in output

    def test_verbose_audit_shows_issue_meta_and_timings(self) -> None:
        output = format_result(AUDIT.with_meta(telemetry=TELEMETRY), settings=OutputSettings(verbose=True))
        assert "default: open" in output
        assert "required  (runs=3)" in output
        assert "check" in output

    def test_fix_hides_skipped_unless_verbose(self) -> None:
        assert "Needs review" not in format_result(FIX)
        assert "Needs review" in format_result(FIX, settings=OutputSettings(verbose=True))

    def test_failure_detail_only_when_verbose(self) -> None:
        result = ServiceResult.failure("schema_resolve", "UNKNOWN_TYPE", "Unknown type 'taks'", type_path="taks")
        assert "type_path" not in format_result(result)
        assert "type_path: taks" in format_result(result, settings=OutputSettings(verbose=True))
