"""FixService — applies audit fixes as narrow text edits.

Each fix touches only the span of the value, key, or line it repairs.
After every edit the document is re-parsed and re-checked, and the next
fix is planned against the fresh parse, so earlier edits never leave
stale offsets behind.  A fix whose issue disappeared in the meantime is
skipped; one whose span no longer matches is recorded as failed.

Modes:
- ``dry-run``: plan every fix in memory, write nothing.
- ``auto``: apply every auto-fixable issue.
- ``interactive``: ask a ``decide`` callback about each fixable issue,
  plus the issues that need a human choice (duplicate keys with
  conflicting values, unknown options, ambiguous links).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel

from vaultctl.domain.edits import (
    EditConflictError,
    TextEdit,
    apply_edit,
    auto_duplicate_survivor,
    dedupe_key,
    insert_discriminators,
    insert_key,
    keep_occurrence,
    remove_key,
    remove_list_items,
    rename_key,
    replace_list_item,
    replace_value,
)
from vaultctl.domain.expression import ExpressionError, evaluate_template_default
from vaultctl.domain.hygiene import strip_trailing_whitespace
from vaultctl.domain.schema import discriminator_fields, try_resolve, type_names
from vaultctl.domain.structural import move_primary_block_to_top
from vaultctl.domain.values import is_effectively_empty
from vaultctl.services.audit import AuditService
from vaultctl.services.base import BaseService
from vaultctl.services.result import ServiceResult
from vaultctl.services.rules import (
    AuditIssue,
    AuditOptions,
    DocumentRecord,
    FileReport,
    VaultIndex,
    audit_document,
    make_record,
)
from vaultctl.services.telemetry import StageTally, annotate, measure, trace_stages, traced

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vaultctl.domain.schema import VaultSchema

logger = logging.getLogger(__name__)

FixMode = Literal["dry-run", "auto", "interactive"]
FixStatus = Literal["fixed", "skipped", "failed"]

# Lower groups run first: line-local, then values, then keys, then
# duplicate keys, then relocating the whole block.
_FIX_GROUP: dict[str, int] = {
    "trailing-whitespace": 0,
    "malformed-wikilink": 1,
    "wrong-scalar-type": 1,
    "invalid-boolean-coercion": 1,
    "invalid-date-format": 1,
    "unknown-enum-casing": 1,
    "invalid-option": 1,
    "invalid-type": 1,
    "format-violation": 1,
    "stale-reference": 1,
    "ambiguous-link-target": 1,
    "duplicate-list-values": 1,
    "frontmatter-key-casing": 2,
    "singular-plural-mismatch": 2,
    "unknown-field": 2,
    "orphan-file": 2,
    "missing-required": 2,
    "duplicate-frontmatter-keys": 3,
    "frontmatter-not-at-top": 4,
}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class FixOutcome(BaseModel):
    """What happened to one issue."""

    model_config = {"frozen": True}

    path: str
    code: str
    field: str | None = None
    status: FixStatus
    message: str


class FixSummary(BaseModel):
    model_config = {"frozen": True}

    fixed: int = 0
    skipped: int = 0
    failed: int = 0
    remaining: int = 0
    dry_run: bool = False


@dataclass(frozen=True)
class FixPrompt:
    """A question for the interactive ``decide`` callback.

    ``choices`` is empty when the fix has a single outcome and only needs
    confirmation; the callback then returns any non-None value to apply.
    """

    path: str
    issue: AuditIssue
    choices: tuple[str, ...] = ()
    default: str | None = None


Decide = Callable[[FixPrompt], str | None]


class _Skip(Exception):
    """A planned fix that should be recorded as skipped, with a reason."""


# ---------------------------------------------------------------------------
# FixService
# ---------------------------------------------------------------------------


class FixService(BaseService):
    """Repairs audit issues in place."""

    @traced
    def fix(
        self,
        *,
        mode: FixMode = "auto",
        decide: Decide | None = None,
        type_path: str | None = None,
        path: str | None = None,
        where: Sequence[str] = (),
        only: Sequence[str] = (),
        ignore: Sequence[str] = (),
        allow_fields: Sequence[str] = (),
    ) -> ServiceResult:
        """Audit the selected documents, then fix what *mode* allows."""
        if mode == "interactive" and decide is None:
            mode = "auto"

        run = AuditService(self._vault).collect(
            op="fix",
            type_path=type_path,
            path=path,
            where=where,
            only=only,
            ignore=ignore,
            allow_fields=allow_fields,
        )
        if isinstance(run, ServiceResult):
            return run

        records = {r.rel_path: r for r in run.selected}
        pending = [r for r in run.reports if any(self._wants(i, mode) for i in r.issues)]
        annotate("documents", len(pending))

        workers = 1 if mode == "interactive" else self._vault.settings.fix.workers
        with trace_stages("apply") as tally:
            fixer = _DocumentFixer(
                service=self,
                schema=run.schema,
                index=run.index,
                options=run.options,
                mode=mode,
                decide=decide,
                tally=tally,
            )
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(lambda rep: fixer.run(records[rep.path], rep), pending))

        outcomes = [o for doc_outcomes, _ in results for o in doc_outcomes]
        changed = sorted(p for _, p in results if p is not None)
        total = sum(len(r.issues) for r in run.reports)
        fixed = sum(1 for o in outcomes if o.status == "fixed")
        summary = FixSummary(
            fixed=fixed,
            skipped=sum(1 for o in outcomes if o.status == "skipped"),
            failed=sum(1 for o in outcomes if o.status == "failed"),
            remaining=total - fixed,
            dry_run=mode == "dry-run",
        )
        logger.debug("Fix run: %d fixed, %d failed", summary.fixed, summary.failed)
        return ServiceResult(
            ok=True,
            op="fix",
            data={
                "outcomes": [o.model_dump() for o in outcomes],
                "files_changed": changed,
                "summary": summary.model_dump(),
            },
            warnings=run.warnings,
        )

    def _wants(self, issue: AuditIssue, mode: FixMode) -> bool:
        if issue.code not in _FIX_GROUP or issue.meta.get("parse_error"):
            return False
        if issue.auto_fixable:
            return True
        if issue.code == "duplicate-frontmatter-keys" and mode != "interactive":
            return self._vault.settings.fix.duplicate_key_strategy != "auto"
        return mode == "interactive" and issue.code in _INTERACTIVE_ONLY

    def _write(self, record: DocumentRecord, content: str) -> None:
        self._vault.write_document(record.path, content)


_INTERACTIVE_ONLY = frozenset(
    {
        "duplicate-frontmatter-keys",
        "orphan-file",
        "invalid-type",
        "invalid-option",
        "stale-reference",
        "ambiguous-link-target",
        "unknown-field",
    }
)


# ---------------------------------------------------------------------------
# Per-document engine
# ---------------------------------------------------------------------------


def _issue_key(issue: AuditIssue) -> tuple[Any, ...]:
    return (issue.code, issue.field, issue.meta.get("list_index"))


@dataclass
class _DocumentFixer:
    service: FixService
    schema: VaultSchema
    index: VaultIndex
    options: AuditOptions
    mode: FixMode
    decide: Decide | None
    tally: StageTally | None = None

    def run(self, record: DocumentRecord, report: FileReport) -> tuple[list[FixOutcome], str | None]:
        """Fix one document under its lock; returns outcomes and the path if written."""
        vault = self.service._vault
        with vault.locked(record.path):
            try:
                raw = vault.read_document(record.path)
            except (OSError, UnicodeDecodeError) as exc:
                return [self._outcome(record, i, "failed", f"Could not read: {exc}") for i in report.issues], None

            original = raw
            outcomes: list[FixOutcome] = []
            planned = sorted(
                (i for i in report.issues if self.service._wants(i, self.mode)),
                key=lambda i: _FIX_GROUP[i.code],
            )
            for audited in planned:
                with measure(self.tally, audited.code) as counts:
                    raw, outcome = self._fix_one(record, raw, audited)
                    counts[outcome.status] = 1
                outcomes.append(outcome)

            if raw == original or self.mode == "dry-run":
                return outcomes, record.rel_path if raw != original else None
            try:
                self.service._write(record, raw)
            except OSError as exc:
                logger.warning("Could not write %s: %s", record.rel_path, exc)
                return [
                    o.model_copy(update={"status": "failed", "message": f"Write failed: {exc}"})
                    if o.status == "fixed"
                    else o
                    for o in outcomes
                ], None
            return outcomes, record.rel_path

    def _fix_one(self, record: DocumentRecord, raw: str, audited: AuditIssue) -> tuple[str, FixOutcome]:
        current = make_record(self.schema, record.rel_path, record.path, raw)
        issue = next(
            (i for i in audit_document(self.schema, self.index, current, self.options) if _issue_key(i) == _issue_key(audited)),
            None,
        )
        if issue is None:
            return raw, self._outcome(record, audited, "skipped", "Already resolved")
        try:
            choice = self._ask(record, issue)
            updated = self._plan(current, issue, choice)
        except _Skip as exc:
            return raw, self._outcome(record, issue, "skipped", str(exc))
        except (EditConflictError, IndexError, ExpressionError) as exc:
            logger.debug("Fix failed for %s (%s): %s", record.rel_path, issue.code, exc)
            return raw, self._outcome(record, issue, "failed", str(exc))
        if updated == raw:
            return raw, self._outcome(record, issue, "skipped", "Nothing to change")
        return updated, self._outcome(record, issue, "fixed", issue.message)

    @staticmethod
    def _outcome(record: DocumentRecord, issue: AuditIssue, status: FixStatus, message: str) -> FixOutcome:
        return FixOutcome(path=record.rel_path, code=issue.code, field=issue.field, status=status, message=message)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def _choices(self, issue: AuditIssue) -> tuple[tuple[str, ...], str | None]:
        code = issue.code
        meta = issue.meta
        if code == "duplicate-frontmatter-keys":
            return ("first", "last"), "last"
        if code == "orphan-file":
            return tuple(type_names(self.schema)), meta.get("inferred_type")
        if code in ("invalid-type", "invalid-option") and isinstance(issue.expected, list):
            return tuple(str(o) for o in issue.expected), _quoted(issue.suggestion)
        if code == "stale-reference":
            fixed = meta.get("fixed_value")
            return tuple(meta.get("similar_files", [])), fixed[2:-2] if fixed else None
        if code == "ambiguous-link-target":
            return tuple(c.removesuffix(".md") for c in meta.get("candidates", [])), None
        if code == "unknown-field" and "migration_target" not in meta:
            return tuple(meta.get("similar_fields", [])), None
        return (), None

    def _ask(self, record: DocumentRecord, issue: AuditIssue) -> str | None:
        """The user's choice in interactive mode; None means the default action."""
        if self.mode != "interactive" or self.decide is None:
            return None
        choices, default = self._choices(issue)
        if not issue.auto_fixable and not choices:
            raise _Skip("No choices available")
        answer = self.decide(FixPrompt(path=record.rel_path, issue=issue, choices=choices, default=default))
        if answer is None:
            raise _Skip("Declined")
        if choices and answer not in choices:
            raise _Skip(f"Unknown choice: {answer}")
        return answer if choices else None

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _plan(self, record: DocumentRecord, issue: AuditIssue, choice: str | None) -> str:
        """New document text with *issue* repaired."""
        structural = record.structural
        raw = structural.raw
        code = issue.code
        meta = issue.meta
        key = issue.field

        if code == "trailing-whitespace":
            stripped = strip_trailing_whitespace(raw, meta["line_number"])
            return raw if stripped is None else stripped

        if code == "frontmatter-not-at-top":
            if structural.primary is None or not structural.is_mapping:
                raise EditConflictError("Frontmatter block is gone")
            return move_primary_block_to_top(raw, structural.primary)

        if code == "duplicate-frontmatter-keys":
            return self._dedupe(record, meta["duplicate_key"], choice)

        if code == "orphan-file":
            type_path = choice or meta.get("inferred_type")
            if not type_path:
                raise _Skip("No type could be inferred")
            return apply_edit(raw, insert_discriminators(structural, discriminator_fields(type_path)))

        if code == "missing-required":
            assert key is not None
            value = evaluate_template_default(issue.expected)
            if structural.occurrences(key):
                return apply_edit(raw, replace_value(structural, key, value))
            resolved = try_resolve(self.schema, record.type_path or "")
            order = list(resolved.field_order) if resolved else []
            return apply_edit(raw, insert_key(structural, key, value, order))

        if code in ("frontmatter-key-casing", "singular-plural-mismatch"):
            assert key is not None
            return self._rename(record, key, meta["canonical_key"])

        if code == "unknown-field":
            assert key is not None
            target = choice or meta.get("migration_target")
            if not target:
                raise _Skip("No migration target")
            return self._rename(record, key, target)

        if code == "duplicate-list-values":
            assert key is not None
            return apply_edit(raw, remove_list_items(structural, key, meta["duplicate_indexes"]))

        assert key is not None
        value = self._replacement(issue, choice)
        return apply_edit(raw, self._value_edit(record, key, meta.get("list_index"), value))

    @staticmethod
    def _replacement(issue: AuditIssue, choice: str | None) -> Any:
        code = issue.code
        meta = issue.meta
        if code == "stale-reference":
            return f"[[{choice}]]" if choice else meta.get("fixed_value")
        if code == "ambiguous-link-target":
            if not choice:
                raise _Skip("Ambiguous link needs a choice")
            return f"[[{choice}]]"
        if code in ("invalid-option", "invalid-type"):
            if not choice:
                raise _Skip("Needs a choice")
            return choice
        if code == "unknown-enum-casing":
            return meta["canonical_value"]
        if "fixed_value" not in meta:
            raise _Skip("No replacement value")
        return meta["fixed_value"]

    @staticmethod
    def _value_edit(record: DocumentRecord, key: str, list_index: int | None, value: Any) -> TextEdit:
        if list_index is not None:
            return replace_list_item(record.structural, key, list_index, value)
        return replace_value(record.structural, key, value)

    def _dedupe(self, record: DocumentRecord, key: str, choice: str | None) -> str:
        structural = record.structural
        if choice in ("first", "last"):
            return apply_edit(structural.raw, dedupe_key(structural, key, choice))  # type: ignore[arg-type]
        strategy = self.service._vault.settings.fix.duplicate_key_strategy
        if strategy != "auto":
            return apply_edit(structural.raw, dedupe_key(structural, key, strategy))
        survivor = auto_duplicate_survivor(structural.occurrences(key))
        if survivor is None:
            raise _Skip("Duplicate values differ")
        return apply_edit(structural.raw, keep_occurrence(structural, key, survivor))

    def _rename(self, record: DocumentRecord, old: str, new: str) -> str:
        """Rename *old* to *new*, dropping an empty *new* first."""
        structural = record.structural
        raw = structural.raw
        if structural.occurrences(new):
            if not all(is_effectively_empty(o.value) for o in structural.occurrences(new)):
                raise _Skip(f"'{new}' already has a value")
            for _ in structural.occurrences(new):
                structural = make_record(self.schema, record.rel_path, record.path, raw).structural
                raw = apply_edit(raw, remove_key(structural, new, 0))
            structural = make_record(self.schema, record.rel_path, record.path, raw).structural
        return apply_edit(raw, rename_key(structural, old, new))


def _quoted(suggestion: str | None) -> str | None:
    """``'x'`` out of a ``Did you mean 'x'?`` suggestion."""
    if suggestion and suggestion.count("'") >= 2:
        return suggestion.split("'")[1]
    return None
