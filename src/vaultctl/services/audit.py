"""AuditService — schema conformance checks across the vault.

Two phases.  The first reads every document once and builds a
:class:`~vaultctl.services.rules.VaultIndex` (link targets, parent
graph, ownership, dynamic sources).  The second runs the per-document
rules from :mod:`vaultctl.services.rules` on a thread pool; the index is
read-only by then, so documents are checked independently.
"""

from __future__ import annotations

import fnmatch
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from vaultctl.domain.expression import ExpressionError, matches_expression, parse_expression
from vaultctl.domain.schema import descendants, try_resolve
from vaultctl.domain.where import (
    collect_frontmatter_keys,
    combine_where,
    format_where_validation_errors,
    normalize_where_expressions,
    validate_where_expressions,
)
from vaultctl.services.base import BaseService
from vaultctl.services.result import ServiceResult
from vaultctl.services.rules import (
    ISSUE_CODES,
    AuditIssue,
    AuditOptions,
    DocumentRecord,
    FileReport,
    VaultIndex,
    audit_document,
    build_index,
)
from vaultctl.services.telemetry import StageTally, annotate, trace_span, trace_stages, traced

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vaultctl.domain.schema import VaultSchema

logger = logging.getLogger(__name__)

_GLOB_CHARS = frozenset("*?[")


@dataclass
class AuditRun:
    """Everything one audit pass produced, reused by the fix engine."""

    schema: VaultSchema
    index: VaultIndex
    options: AuditOptions
    selected: list[DocumentRecord]
    reports: list[FileReport]
    failures: list[FileReport] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        total_errors = sum(r.errors for r in self.reports)
        total_warnings = sum(r.warnings for r in self.reports)
        return {
            "files_checked": len(self.selected),
            "files_with_errors": sum(1 for r in self.reports if r.errors),
            "files_with_warnings": sum(1 for r in self.reports if r.warnings),
            "total_errors": total_errors,
            "total_warnings": total_warnings,
            "failures": len(self.failures),
            "healthy": total_errors == 0 and not self.failures,
        }


class AuditService(BaseService):
    """Reports schema violations without modifying anything."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @traced
    def audit(
        self,
        *,
        type_path: str | None = None,
        path: str | None = None,
        where: Sequence[str] = (),
        only: Sequence[str] = (),
        ignore: Sequence[str] = (),
        strict: bool | None = None,
        allow_fields: Sequence[str] = (),
    ) -> ServiceResult:
        """Audit the vault, or the subset selected by the filters.

        Args:
            type_path: Restrict to documents of this type or its descendants.
            path: A document, a directory, or a glob, relative to the vault.
            where: Expressions a document must all satisfy.
            only: Report only these issue codes.
            ignore: Never report these issue codes.
            strict: Unknown fields are errors and any error fails the run.
            allow_fields: Extra keys never reported as unknown.
        """
        run = self.collect(
            op="audit",
            type_path=type_path,
            path=path,
            where=where,
            only=only,
            ignore=ignore,
            strict=strict,
            allow_fields=allow_fields,
        )
        if isinstance(run, ServiceResult):
            return run

        summary = run.summary()
        data = {
            "files": [r.model_dump() for r in run.reports if r.issues],
            "failures": [{"path": r.path, "message": r.failure} for r in run.failures],
            "summary": summary,
        }
        if run.options.strict and summary["total_errors"]:
            return ServiceResult.failure(
                "audit",
                "AUDIT_FAILED",
                f"{summary['total_errors']} errors found (strict mode)",
                data=data,
                warnings=run.warnings,
                summary=summary,
            )
        return ServiceResult(ok=True, op="audit", data=data, warnings=run.warnings)

    def collect(
        self,
        *,
        op: str,
        type_path: str | None = None,
        path: str | None = None,
        where: Sequence[str] = (),
        only: Sequence[str] = (),
        ignore: Sequence[str] = (),
        strict: bool | None = None,
        allow_fields: Sequence[str] = (),
    ) -> AuditRun | ServiceResult:
        """Run both audit phases; a failed result when the inputs are invalid."""
        schema = self._load_schema(op)
        if isinstance(schema, ServiceResult):
            return schema

        failure = validate_filters(op, schema, type_path, where, only, ignore)
        if failure is not None:
            return failure

        settings = self._vault.settings
        options = AuditOptions(
            strict=settings.audit.strict if strict is None else strict,
            allowed_fields=frozenset([*settings.audit.allowed_fields, *allow_fields]),
        )

        with trace_span("scan"):
            records, failures = self._read_records(schema)
            annotate("documents", len(records))
        with trace_span("index"):
            index = build_index(schema, records)

        with trace_span("select"):
            selected = self._select(schema, records, type_path=type_path, path=path, where=where)
            annotate("selected", len(selected))

        with trace_stages("check") as tally:
            reports = self._check(schema, index, selected, options, only=only, ignore=ignore, tally=tally)

        warnings = [*index.warnings, *(f"Could not read {f.path}: {f.failure}" for f in failures)]
        logger.debug("Audited %d of %d documents", len(selected), len(records))
        return AuditRun(
            schema=schema,
            index=index,
            options=options,
            selected=selected,
            reports=reports,
            failures=failures,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _select(
        self,
        schema: VaultSchema,
        records: list[DocumentRecord],
        *,
        type_path: str | None,
        path: str | None,
        where: Sequence[str],
    ) -> list[DocumentRecord]:
        selected = records
        if type_path is not None:
            wanted = {type_path, *descendants(schema, type_path)}
            selected = [r for r in selected if r.type_path in wanted]
        if path is not None:
            pattern = self._relative_pattern(path)
            selected = [r for r in selected if _path_matches(r.rel_path, pattern)]
        if where:
            keys = collect_frontmatter_keys(r.frontmatter for r in records)
            expression = combine_where(normalize_where_expressions(where, keys))
            if expression is not None:
                selected = [r for r in selected if _where_matches(expression, r)]
        return selected

    def _relative_pattern(self, path: str) -> str:
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                return self._vault.relative(candidate)
            except ValueError:
                return candidate.as_posix()
        return candidate.as_posix().removeprefix("./")

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _check(
        self,
        schema: VaultSchema,
        index: VaultIndex,
        records: list[DocumentRecord],
        options: AuditOptions,
        *,
        only: Sequence[str],
        ignore: Sequence[str],
        tally: StageTally | None = None,
    ) -> list[FileReport]:
        workers = self._vault.settings.audit.workers

        def check(record: DocumentRecord) -> FileReport:
            issues = filter_issues(audit_document(schema, index, record, options, tally), only, ignore)
            return FileReport(path=record.rel_path, issues=issues)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            reports = list(pool.map(check, records))
        return sorted(reports, key=lambda r: r.path)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def validate_filters(
    op: str,
    schema: VaultSchema,
    type_path: str | None,
    where: Sequence[str],
    only: Sequence[str] = (),
    ignore: Sequence[str] = (),
) -> ServiceResult | None:
    """A failed result for a bad type path, issue code or ``--where``."""
    if type_path is not None and try_resolve(schema, type_path) is None:
        return ServiceResult.failure(op, "UNKNOWN_TYPE", f"Unknown type: {type_path}")

    unknown_codes = sorted((set(only) | set(ignore)) - set(ISSUE_CODES))
    if unknown_codes:
        return ServiceResult.failure(
            op,
            "UNKNOWN_ISSUE_CODE",
            f"Unknown issue code: {', '.join(unknown_codes)}",
            valid_codes=list(ISSUE_CODES),
        )

    for expression in where:
        try:
            parse_expression(expression)
        except ExpressionError as exc:
            return ServiceResult.failure(op, "INVALID_WHERE", str(exc), expression=expression)
    if type_path is not None and where:
        errors = validate_where_expressions(list(where), schema, type_path)
        if errors:
            return ServiceResult.failure(
                op,
                "INVALID_WHERE",
                format_where_validation_errors(errors),
                errors=[e.message for e in errors],
            )
    return None


def filter_issues(issues: list[AuditIssue], only: Sequence[str], ignore: Sequence[str]) -> list[AuditIssue]:
    """Apply ``--only`` / ``--ignore`` code filters."""
    if only:
        issues = [i for i in issues if i.code in only]
    if ignore:
        issues = [i for i in issues if i.code not in ignore]
    return issues


def _path_matches(rel_path: str, pattern: str) -> bool:
    if any(ch in _GLOB_CHARS for ch in pattern):
        return fnmatch.fnmatchcase(rel_path, pattern)
    pattern = pattern.rstrip("/")
    if not pattern or pattern == ".":
        return True
    return rel_path in (pattern, f"{pattern}.md") or rel_path.startswith(pattern + "/")


def _where_matches(expression: str, record: DocumentRecord) -> bool:
    try:
        return matches_expression(expression, record.eval_context())
    except ExpressionError as exc:
        logger.debug("where filter failed on %s: %s", record.rel_path, exc)
        return False
