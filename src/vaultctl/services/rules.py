"""Audit rules — per-document checks against the resolved schema.

Checks are pure functions of one document's structural parse plus a
read-only :class:`VaultIndex` built before any check runs.  Nothing here
touches the filesystem, so documents can be checked concurrently and the
fix engine can re-check a document from its edited text alone.

Check order within a document is fixed, which keeps repeated audits of
an unchanged document byte-for-byte identical.
"""

from __future__ import annotations

import posixpath
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from vaultctl.domain.dates import is_iso_date, suggest_iso_date
from vaultctl.domain.edits import auto_duplicate_survivor
from vaultctl.domain.expression import EvalContext, ExpressionError, FileInfo
from vaultctl.domain.fuzzy import (
    is_high_confidence_match,
    migration_target,
    similar_fields,
    similar_files,
    suggest_name,
    suggest_option,
)
from vaultctl.domain.hygiene import find_trailing_whitespace
from vaultctl.domain.links import (
    extract_link_target,
    extract_markdown_link_target,
    extract_wikilink_target,
    matches_link_format,
    repair_near_wikilink,
    to_link_format,
)
from vaultctl.domain.schema import (
    NATIVE_FIELDS,
    FieldDef,
    ResolvedType,
    VaultSchema,
    descendants,
    field_options,
    infer_type_for_document,
    owned_fields,
    resolve,
    resolve_type_from_frontmatter,
)
from vaultctl.domain.structural import StructuralFrontmatter, parse_structural
from vaultctl.domain.values import (
    coerce_boolean_from_string,
    coerce_number_from_string,
    is_discriminator_key,
    is_effectively_empty,
    is_empty_required_value,
    value_shape,
)
from vaultctl.domain.where import resolve_dynamic_source
from vaultctl.services.telemetry import StageTally, measure

Severity = Literal["error", "warning"]

SEVERITY_ERROR: Severity = "error"
SEVERITY_WARNING: Severity = "warning"

ISSUE_CODES = (
    "frontmatter-not-at-top",
    "duplicate-frontmatter-keys",
    "malformed-wikilink",
    "trailing-whitespace",
    "orphan-file",
    "invalid-type",
    "wrong-directory",
    "missing-required",
    "wrong-scalar-type",
    "type-mismatch",
    "invalid-date-format",
    "invalid-option",
    "format-violation",
    "invalid-list-element",
    "unknown-field",
    "stale-reference",
    "self-reference",
    "ambiguous-link-target",
    "invalid-source-type",
    "owned-note-referenced",
    "owned-wrong-location",
    "parent-cycle",
    "invalid-boolean-coercion",
    "unknown-enum-casing",
    "duplicate-list-values",
    "frontmatter-key-casing",
    "singular-plural-mismatch",
)


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class AuditIssue(BaseModel):
    """One detected problem in one document.

    ``meta`` carries code-specific data (``line_number``, ``list_index``,
    ``cycle_path``, ``canonical_key``, ``similar_files`` ...) that the
    fix engine and renderers read.
    """

    model_config = {"frozen": True}

    severity: Severity
    code: str
    message: str
    field: str | None = None
    value: Any = None
    expected: Any = None
    suggestion: str | None = None
    auto_fixable: bool = False
    meta: dict[str, Any] = Field(default_factory=dict)


class FileReport(BaseModel):
    """Issues for one document, or the I/O failure that prevented a check."""

    model_config = {"frozen": True}

    path: str
    issues: list[AuditIssue] = Field(default_factory=list)
    failure: str | None = None

    @property
    def errors(self) -> int:
        return sum(1 for i in self.issues if i.severity == SEVERITY_ERROR)

    @property
    def warnings(self) -> int:
        return sum(1 for i in self.issues if i.severity == SEVERITY_WARNING)


def _issue(severity: Severity, code: str, message: str, **kwargs: Any) -> AuditIssue:
    return AuditIssue(severity=severity, code=code, message=message, **kwargs)


# ---------------------------------------------------------------------------
# Documents and the vault index
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentRecord:
    """One parsed document, as seen by every check."""

    rel_path: str
    path: Path
    structural: StructuralFrontmatter
    type_path: str | None
    size: int | None = None
    mtime: float | None = None

    @property
    def name(self) -> str:
        return posixpath.splitext(posixpath.basename(self.rel_path))[0]

    @property
    def key(self) -> str:
        """Vault-relative path without the ``.md`` extension."""
        return self.rel_path.removesuffix(".md")

    @property
    def folder(self) -> str:
        return posixpath.dirname(self.rel_path)

    @property
    def frontmatter(self) -> dict[str, Any]:
        return self.structural.frontmatter

    def body(self) -> str:
        block = self.structural.primary
        if block is None or not self.structural.is_mapping:
            return self.structural.raw
        return self.structural.raw[block.block_end :]

    def eval_context(self) -> EvalContext:
        mtime = datetime.fromtimestamp(self.mtime, UTC) if self.mtime is not None else None
        info = FileInfo(
            name=self.name,
            path=self.rel_path,
            folder=self.folder,
            ext=".md",
            size=self.size,
            mtime=mtime,
        )
        return EvalContext(frontmatter=self.frontmatter, file=info, body_loader=self.body)


def make_record(
    schema: VaultSchema,
    rel_path: str,
    path: Path,
    raw: str,
    *,
    size: int | None = None,
    mtime: float | None = None,
) -> DocumentRecord:
    """Parse *raw* and resolve its declared type path."""
    structural = parse_structural(raw)
    resolution = resolve_type_from_frontmatter(schema, structural.frontmatter)
    return DocumentRecord(
        rel_path=rel_path,
        path=path,
        structural=structural,
        type_path=resolution.type_path,
        size=size,
        mtime=mtime,
    )


@dataclass
class VaultIndex:
    """Everything a check may need to know about other documents.

    Built once, before any per-document check runs, and never mutated
    afterwards.
    """

    documents: dict[str, DocumentRecord] = field(default_factory=dict)
    targets: dict[str, list[str]] = field(default_factory=dict)
    parents: dict[str, str] = field(default_factory=dict)
    owners: dict[str, str] = field(default_factory=dict)
    owner_fields: dict[str, str] = field(default_factory=dict)
    dynamic_members: dict[str, frozenset[str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def candidates(self, target: str) -> list[str]:
        """Documents a link target resolves to (by name or by path)."""
        cleaned = target.strip().removesuffix(".md")
        return list(self.targets.get(cleaned, []))

    def type_of(self, rel_path: str) -> str | None:
        record = self.documents.get(rel_path)
        return record.type_path if record else None

    def link_names(self) -> list[str]:
        return sorted({record.name for record in self.documents.values()})


def build_index(schema: VaultSchema, records: list[DocumentRecord]) -> VaultIndex:
    """Phase one: names, parent graph, ownership, and dynamic sources."""
    index = VaultIndex()
    for record in records:
        index.documents[record.rel_path] = record
        index.targets.setdefault(record.name, []).append(record.rel_path)
        if record.key != record.name:
            index.targets.setdefault(record.key, []).append(record.rel_path)

    for record in records:
        if record.type_path is None:
            continue
        resolved = resolve(schema, record.type_path)
        if resolved.recursive:
            parent = record.frontmatter.get("parent")
            if isinstance(parent, str) and parent.strip():
                index.parents[record.name] = extract_link_target(parent)
        for field_name in owned_fields(schema, record.type_path):
            for target in _link_targets(record.frontmatter.get(field_name)):
                for owned in index.candidates(target):
                    if owned != record.rel_path:
                        index.owners[owned] = record.rel_path
                        index.owner_fields[owned] = field_name

    contexts = [(r.rel_path, r.eval_context()) for r in records]
    for name, source in schema.dynamic_sources.items():
        try:
            index.dynamic_members[name] = frozenset(resolve_dynamic_source(source, contexts))
        except ExpressionError as exc:
            index.warnings.append(f"Dynamic source '{name}' skipped: {exc}")
    return index


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditOptions:
    strict: bool = False
    allowed_fields: frozenset[str] = frozenset()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _link_targets(value: Any) -> list[str]:
    """Targets written with link syntax in a scalar or list value."""
    items = value if isinstance(value, list) else [value]
    targets: list[str] = []
    for item in items:
        if not isinstance(item, str):
            continue
        target = extract_wikilink_target(item) or extract_markdown_link_target(item)
        if target:
            targets.append(target)
    return targets


def _first_line(message: str) -> str:
    return message.strip().splitlines()[0] if message.strip() else message


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------


def check_structure(structural: StructuralFrontmatter) -> list[AuditIssue]:
    issues: list[AuditIssue] = []

    if structural.primary is not None and structural.is_mapping and not structural.at_top:
        fixable = len(structural.blocks) == 1 and not structural.unterminated and not structural.yaml_errors
        issues.append(
            _issue(
                SEVERITY_ERROR,
                "frontmatter-not-at-top",
                "Frontmatter is not at the top of the file"
                + ("" if fixable else " (ambiguous; not auto-fixable)"),
                auto_fixable=fixable,
            )
        )

    for key, occurrences in structural.duplicate_keys().items():
        issues.append(
            _issue(
                SEVERITY_ERROR,
                "duplicate-frontmatter-keys",
                f"Duplicate frontmatter key: {key}",
                field=key,
                auto_fixable=auto_duplicate_survivor(occurrences) is not None,
                meta={"duplicate_key": key, "duplicate_count": len(occurrences)},
            )
        )

    for key, value in structural.frontmatter.items():
        if isinstance(value, str):
            repair = repair_near_wikilink(value)
            if repair is not None:
                issues.append(
                    _issue(
                        SEVERITY_ERROR,
                        "malformed-wikilink",
                        f"Malformed wikilink in frontmatter: {key}",
                        field=key,
                        value=value,
                        suggestion=repair.fixed,
                        auto_fixable=True,
                        meta={"fixed_value": repair.fixed},
                    )
                )
        elif isinstance(value, list):
            for index, item in enumerate(value):
                if not isinstance(item, str):
                    continue
                repair = repair_near_wikilink(item)
                if repair is None:
                    continue
                issues.append(
                    _issue(
                        SEVERITY_ERROR,
                        "malformed-wikilink",
                        f"Malformed wikilink in frontmatter list: {key}[{index}]",
                        field=key,
                        value=item,
                        suggestion=repair.fixed,
                        auto_fixable=True,
                        meta={"fixed_value": repair.fixed, "list_index": index},
                    )
                )

    for found in find_trailing_whitespace(structural):
        issues.append(
            _issue(
                SEVERITY_WARNING,
                "trailing-whitespace",
                f"Trailing whitespace in '{found.field}'",
                field=found.field,
                value=found.value,
                auto_fixable=True,
                meta={"line_number": found.line_number},
            )
        )
    return issues


# ---------------------------------------------------------------------------
# Type checks
# ---------------------------------------------------------------------------


def check_type(
    schema: VaultSchema, record: DocumentRecord
) -> tuple[list[AuditIssue], ResolvedType | None]:
    """Resolve the document's type, or explain why type checks stop here."""
    frontmatter = record.frontmatter
    declared = frontmatter.get("type")
    if is_effectively_empty(declared):
        inferred = infer_type_for_document(schema, record.rel_path)
        meta = {"inferred_type": inferred} if inferred else {}
        issue = _issue(
            SEVERITY_ERROR,
            "orphan-file",
            "No 'type' field. Type-dependent checks skipped.",
            auto_fixable=inferred is not None,
            suggestion=f"Inferred type: {inferred}" if inferred else None,
            meta=meta,
        )
        return [issue], None

    resolution = resolve_type_from_frontmatter(schema, frontmatter)
    if resolution.type_path is None:
        value = resolution.invalid_value if resolution.invalid_value is not None else declared
        key = resolution.invalid_key or "type"
        label = "type" if key == "type" else f"{key} value"
        suggestion = suggest_name(str(value), list(resolution.options))
        issue = _issue(
            SEVERITY_ERROR,
            "invalid-type",
            f"Invalid {label}: '{value}'. Type-dependent checks skipped.",
            field=key,
            value=value,
            expected=list(resolution.options),
            suggestion=f"Did you mean '{suggestion}'?" if suggestion else None,
        )
        return [issue], None

    resolved = resolve(schema, resolution.type_path)
    issues: list[AuditIssue] = []
    expected_dir = resolved.output_dir
    if expected_dir:
        actual_dir = record.folder
        if actual_dir != expected_dir and not actual_dir.startswith(expected_dir + "/"):
            issues.append(
                _issue(
                    SEVERITY_ERROR,
                    "wrong-directory",
                    f"Wrong directory: type is '{resolved.type_path}', expected in {expected_dir}",
                    expected=expected_dir,
                    meta={"expected_directory": expected_dir, "current_directory": actual_dir},
                )
            )
    return issues, resolved


# ---------------------------------------------------------------------------
# Field checks
# ---------------------------------------------------------------------------


def check_required(resolved: ResolvedType, frontmatter: dict[str, Any]) -> list[AuditIssue]:
    issues: list[AuditIssue] = []
    present_lower = {k.lower() for k in frontmatter}
    for name in resolved.required_fields:
        if not is_empty_required_value(frontmatter.get(name)):
            continue
        if name not in frontmatter and name.lower() in present_lower:
            continue  # reported as frontmatter-key-casing instead
        field = resolved.fields[name]
        fill = field.default if field.default is not None else field.value
        issues.append(
            _issue(
                SEVERITY_ERROR,
                "missing-required",
                f"Missing required field: {name}",
                field=name,
                expected=fill,
                auto_fixable=fill is not None,
            )
        )
    return issues


def _check_scalar_shape(name: str, field: FieldDef, value: Any) -> list[AuditIssue]:
    prompt = field.prompt
    if value is None:
        return []
    if prompt == "number":
        if isinstance(value, str):
            coerced = coerce_number_from_string(value)
            message = (
                f"String value for {name} should be a number"
                if coerced is not None
                else f"Invalid number for {name}: '{value}'"
            )
            return [
                _issue(
                    SEVERITY_ERROR,
                    "wrong-scalar-type",
                    message,
                    field=name,
                    value=value,
                    expected="number",
                    auto_fixable=coerced is not None,
                    meta={"fixed_value": coerced} if coerced is not None else {},
                )
            ]
        if value_shape(value) not in ("number", "empty"):
            return [_type_mismatch(name, value, "number")]
        return []
    if prompt == "boolean":
        if isinstance(value, str):
            coerced = coerce_boolean_from_string(value)
            if coerced is not None:
                return [
                    _issue(
                        SEVERITY_WARNING,
                        "invalid-boolean-coercion",
                        f"String '{value}' should be boolean in '{name}'",
                        field=name,
                        value=value,
                        expected=f"{str(coerced).lower()} (boolean)",
                        auto_fixable=True,
                        meta={"fixed_value": coerced},
                    )
                ]
            return [
                _issue(
                    SEVERITY_ERROR,
                    "wrong-scalar-type",
                    f"Invalid boolean for {name}: '{value}'",
                    field=name,
                    value=value,
                    expected="boolean",
                )
            ]
        if value_shape(value) not in ("boolean", "empty"):
            return [_type_mismatch(name, value, "boolean")]
        return []
    if prompt in ("list", "relation") or field.multiple:
        return []
    if value_shape(value) in ("array", "object"):
        return [_type_mismatch(name, value, "string")]
    return []


def _type_mismatch(name: str, value: Any, expected: str) -> AuditIssue:
    return _issue(
        SEVERITY_ERROR,
        "type-mismatch",
        f"Wrong type for {name}: expected {expected}, got {value_shape(value)}",
        field=name,
        value=value,
        expected=expected,
    )


def _check_date(name: str, value: Any) -> list[AuditIssue]:
    if not isinstance(value, str) or not value.strip() or is_iso_date(value):
        return []
    suggestion = suggest_iso_date(value)
    return [
        _issue(
            SEVERITY_ERROR,
            "invalid-date-format",
            f"Invalid date for {name}: expected YYYY-MM-DD, got '{value}'",
            field=name,
            value=value,
            expected="YYYY-MM-DD",
            suggestion=f"Suggested: {suggestion}" if suggestion else None,
            auto_fixable=suggestion is not None,
            meta={"fixed_value": suggestion} if suggestion else {},
        )
    ]


def _check_options(name: str, value: Any, options: list[str]) -> list[AuditIssue]:
    issues: list[AuditIssue] = []
    items = value if isinstance(value, list) else [value]
    for index, item in enumerate(items):
        if is_effectively_empty(item):
            continue
        text = str(item).lower() if isinstance(item, bool) else str(item)
        if text in options:
            continue
        meta: dict[str, Any] = {"list_index": index} if isinstance(value, list) else {}
        casing = next((o for o in options if o.lower() == text.lower()), None)
        if casing is not None:
            issues.append(
                _issue(
                    SEVERITY_WARNING,
                    "unknown-enum-casing",
                    f"Wrong case for '{name}': '{text}' should be '{casing}'",
                    field=name,
                    value=text,
                    expected=casing,
                    auto_fixable=True,
                    meta={**meta, "canonical_value": casing},
                )
            )
            continue
        suggestion = suggest_option(text, options)
        issues.append(
            _issue(
                SEVERITY_ERROR,
                "invalid-option",
                f"Invalid {name} value: '{text}'",
                field=name,
                value=item,
                expected=list(options),
                suggestion=f"Did you mean '{suggestion}'?" if suggestion else None,
                meta=meta,
            )
        )
    return issues


def _check_list(name: str, field: FieldDef, value: Any) -> list[AuditIssue]:
    if field.prompt != "list" and not field.multiple:
        return []
    if value is None:
        return []
    if not isinstance(value, list):
        return [
            _issue(
                SEVERITY_WARNING,
                "invalid-list-element",
                f"Invalid list value for '{name}' (expected array)",
                field=name,
                value=value,
            )
        ]
    return [
        _issue(
            SEVERITY_WARNING,
            "invalid-list-element",
            f"Invalid list element in '{name}' at index {index}",
            field=name,
            value=item,
            meta={"list_index": index},
        )
        for index, item in enumerate(value)
        if not isinstance(item, str) and field.prompt != "relation"
    ]


def check_fields(
    schema: VaultSchema, resolved: ResolvedType, frontmatter: dict[str, Any]
) -> list[AuditIssue]:
    issues: list[AuditIssue] = []
    for name, value in frontmatter.items():
        field = resolved.fields.get(name)
        if field is None:
            continue
        issues.extend(_check_scalar_shape(name, field, value))
        if field.prompt == "date":
            issues.extend(_check_date(name, value))
        options = field_options(schema, field)
        if options:
            issues.extend(_check_options(name, value, options))
        issues.extend(_check_list(name, field, value))
    return issues


# ---------------------------------------------------------------------------
# Unknown fields and key hygiene
# ---------------------------------------------------------------------------


def _key_variant(key: str, fields: dict[str, FieldDef]) -> tuple[str, str] | None:
    """``(code, canonical key)`` when *key* is a casing or number variant."""
    lowered = {name.lower(): name for name in fields}
    canonical = lowered.get(key.lower())
    if canonical is not None and canonical != key:
        return "frontmatter-key-casing", canonical
    if key + "s" in fields:
        return "singular-plural-mismatch", key + "s"
    if key.endswith("s") and len(key) > 1 and key[:-1] in fields:
        return "singular-plural-mismatch", key[:-1]
    return None


def check_keys(
    schema: VaultSchema,
    resolved: ResolvedType,
    frontmatter: dict[str, Any],
    options: AuditOptions,
) -> list[AuditIssue]:
    issues: list[AuditIssue] = []
    allowed = set(NATIVE_FIELDS) | set(options.allowed_fields) | set(schema.audit.allowed_extra_fields)
    prompts = {name: field.prompt for name, field in resolved.fields.items()}

    for key, value in frontmatter.items():
        if key in resolved.fields or is_discriminator_key(key):
            continue

        variant = _key_variant(key, resolved.fields)
        if variant is not None:
            code, canonical = variant
            existing = frontmatter.get(canonical)
            conflict = canonical in frontmatter and not is_effectively_empty(existing) and not is_effectively_empty(value)
            message = f"Key '{key}' should be '{canonical}'"
            issues.append(
                _issue(
                    SEVERITY_WARNING,
                    code,
                    message + (" (both exist, needs merge)" if conflict else ""),
                    field=key,
                    value=value,
                    expected=canonical,
                    auto_fixable=not conflict,
                    meta={"canonical_key": canonical, "has_conflict": conflict},
                )
            )
            continue

        if key in allowed:
            continue

        suggestions = similar_fields(key, value, prompts)
        target = migration_target(suggestions, frontmatter, is_effectively_empty)
        suggestion = None
        if suggestions:
            suggestion = f"Did you mean '{suggestions[0].name}'?"
        meta: dict[str, Any] = {"similar_fields": [s.name for s in suggestions]}
        if target is not None:
            meta["migration_target"] = target
            suggestion = f"Move value to '{target}'"
        issues.append(
            _issue(
                SEVERITY_ERROR if options.strict else SEVERITY_WARNING,
                "unknown-field",
                f"Unknown field: {key}",
                field=key,
                value=value,
                suggestion=suggestion,
                auto_fixable=target is not None,
                meta=meta,
            )
        )
    return issues


def check_list_duplicates(frontmatter: dict[str, Any]) -> list[AuditIssue]:
    issues: list[AuditIssue] = []
    for key, value in frontmatter.items():
        if not isinstance(value, list) or is_discriminator_key(key):
            continue
        seen: set[str] = set()
        duplicates: list[str] = []
        indexes: list[int] = []
        for index, item in enumerate(value):
            token = str(item).lower()
            if token in seen:
                duplicates.append(str(item))
                indexes.append(index)
            else:
                seen.add(token)
        if duplicates:
            issues.append(
                _issue(
                    SEVERITY_WARNING,
                    "duplicate-list-values",
                    f"Duplicate values in '{key}': {', '.join(duplicates)}",
                    field=key,
                    value=value,
                    auto_fixable=True,
                    meta={"duplicate_indexes": indexes},
                )
            )
    return issues


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------


def _valid_source_types(schema: VaultSchema, sources: list[str]) -> set[str]:
    valid: set[str] = set()
    for source in sources:
        if source in schema.types or "/" in source:
            valid.add(source)
            valid.update(descendants(schema, source))
    return valid


def _check_relation_value(
    schema: VaultSchema,
    index: VaultIndex,
    record: DocumentRecord,
    name: str,
    field: FieldDef,
    item: str,
    list_index: int | None,
) -> list[AuditIssue]:
    meta: dict[str, Any] = {"list_index": list_index} if list_index is not None else {}
    sources = field.sources
    dynamic = [s for s in sources if s in schema.dynamic_sources]
    type_sources = [s for s in sources if s not in schema.dynamic_sources and s != "any"]

    target = extract_wikilink_target(item) or extract_markdown_link_target(item)
    if target is None and not dynamic:
        return []
    target = target or extract_link_target(item)

    candidates = index.candidates(target)
    if not candidates:
        if not (extract_wikilink_target(item) or extract_markdown_link_target(item)):
            return _check_dynamic_membership(index, name, item, target, dynamic, meta)
        similar = similar_files(target, index.link_names())
        confident = [s for s in similar if is_high_confidence_match(target, s)]
        fix = f"[[{confident[0]}]]" if len(confident) == 1 else None
        return [
            _issue(
                SEVERITY_WARNING,
                "stale-reference",
                f"Stale reference: {name} '[[{target}]]' not found",
                field=name,
                value=item,
                suggestion=f"Did you mean '[[{similar[0]}]]'?" if similar else None,
                auto_fixable=fix is not None,
                meta={**meta, "target": target, "similar_files": similar, **({"fixed_value": fix} if fix else {})},
            )
        ]

    valid_types = _valid_source_types(schema, type_sources)
    filtered = candidates
    if valid_types:
        filtered = [c for c in candidates if index.type_of(c) in valid_types] or candidates

    if len(filtered) == 1 and filtered[0] == record.rel_path:
        return [
            _issue(
                SEVERITY_ERROR,
                "self-reference",
                f"Self-reference detected: {name} points to itself",
                field=name,
                value=item,
                meta=meta,
            )
        ]
    if len(filtered) > 1:
        return [
            _issue(
                SEVERITY_WARNING,
                "ambiguous-link-target",
                f"Ambiguous link target for {name}: '{target}' matches multiple files",
                field=name,
                value=item,
                meta={**meta, "candidates": filtered},
            )
        ]

    issues: list[AuditIssue] = []
    resolved_path = filtered[0]
    actual = index.type_of(resolved_path)
    if valid_types and actual is not None and actual not in valid_types:
        shown = " or ".join(type_sources)
        hint = suggest_option(actual, sorted(valid_types))
        issues.append(
            _issue(
                SEVERITY_ERROR,
                "invalid-source-type",
                f"Type mismatch: '{name}' expects {shown}, but '{target}' is {actual}",
                field=name,
                value=item,
                expected=sorted(valid_types),
                suggestion=f"Did you mean to link to a {hint}?" if hint else None,
                meta={**meta, "expected_type": type_sources[0], "actual_type": actual},
            )
        )
    issues.extend(_check_dynamic_membership(index, name, item, target, dynamic, meta))

    owner = index.owners.get(resolved_path)
    if owner is not None and owner != record.rel_path and not field.owned:
        issues.append(
            _issue(
                SEVERITY_ERROR,
                "owned-note-referenced",
                f"Cannot reference owned note '{target}' - it is owned by '{owner}'",
                field=name,
                value=item,
                meta={**meta, "owner_path": owner, "owned_note_path": resolved_path},
            )
        )
    return issues


def _check_dynamic_membership(
    index: VaultIndex,
    name: str,
    item: str,
    target: str,
    dynamic: list[str],
    meta: dict[str, Any],
) -> list[AuditIssue]:
    known = [index.dynamic_members[d] for d in dynamic if d in index.dynamic_members]
    if not known or any(target in members for members in known):
        return []
    allowed = sorted(set().union(*known))
    suggestion = suggest_option(target, allowed)
    return [
        _issue(
            SEVERITY_ERROR,
            "invalid-option",
            f"Invalid {name} value: '{target}' is not in source {', '.join(dynamic)}",
            field=name,
            value=item,
            expected=allowed,
            suggestion=f"Did you mean '{suggestion}'?" if suggestion else None,
            meta=meta,
        )
    ]


def check_relations(
    schema: VaultSchema,
    index: VaultIndex,
    record: DocumentRecord,
    resolved: ResolvedType,
    link_format: str,
) -> list[AuditIssue]:
    issues: list[AuditIssue] = []
    frontmatter = record.frontmatter
    for name, field in resolved.fields.items():
        if field.prompt != "relation":
            continue
        value = frontmatter.get(name)
        if is_effectively_empty(value):
            continue
        found: list[AuditIssue] = []
        if isinstance(value, list):
            for list_index, item in enumerate(value):
                if isinstance(item, str) and item.strip():
                    found.extend(_check_relation_value(schema, index, record, name, field, item, list_index))
        elif isinstance(value, str):
            found.extend(_check_relation_value(schema, index, record, name, field, value, None))
        issues.extend(found)

        integrity = any(i.code in ("self-reference", "ambiguous-link-target") for i in found)
        expected_format = field.format or link_format
        if integrity or not isinstance(value, str) or expected_format == "plain":
            continue
        if repair_near_wikilink(value) is not None or matches_link_format(value, expected_format):  # type: ignore[arg-type]
            continue
        fixed = to_link_format(value, expected_format)  # type: ignore[arg-type]
        label = "a wikilink" if expected_format == "wikilink" else "a markdown link"
        issues.append(
            _issue(
                SEVERITY_WARNING,
                "format-violation",
                f"Format violation: '{name}' should be {label}",
                field=name,
                value=value,
                expected=expected_format,
                suggestion=fixed,
                auto_fixable=True,
                meta={"fixed_value": fixed, "expected_format": expected_format},
            )
        )
    return issues


def check_ownership(index: VaultIndex, record: DocumentRecord) -> list[AuditIssue]:
    """An owned note lives in ``<owner folder>/<owning field>``.

    Report-only: moving files is left to the user.
    """
    owner = index.owners.get(record.rel_path)
    if owner is None:
        return []
    expected_dir = posixpath.join(posixpath.dirname(owner), index.owner_fields[record.rel_path])
    if record.folder == expected_dir:
        return []
    return [
        _issue(
            SEVERITY_ERROR,
            "owned-wrong-location",
            f"Owned note in wrong location: expected in {expected_dir}",
            expected=expected_dir,
            meta={
                "expected_directory": expected_dir,
                "current_directory": record.folder,
                "owner_path": owner,
                "owned_note_path": record.rel_path,
            },
        )
    ]


def check_parent_cycle(index: VaultIndex, record: DocumentRecord) -> list[AuditIssue]:
    path = [record.name]
    visited = {record.name}
    current = index.parents.get(record.name)
    while current:
        if current in visited:
            if current != record.name:
                return []  # the loop exists but this document only feeds into it
            cycle = [*path, current]
            return [
                _issue(
                    SEVERITY_ERROR,
                    "parent-cycle",
                    f"Parent cycle detected: {' → '.join(cycle)}",
                    field="parent",
                    meta={"cycle_path": cycle},
                )
            ]
        visited.add(current)
        path.append(current)
        current = index.parents.get(current)
    return []


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _run_check(
    tally: StageTally | None, stage: str, check: Callable[..., list[AuditIssue]], *args: Any
) -> list[AuditIssue]:
    with measure(tally, stage) as counts:
        found = check(*args)
        counts["issues"] = len(found)
    return found


def audit_document(
    schema: VaultSchema,
    index: VaultIndex,
    record: DocumentRecord,
    options: AuditOptions,
    tally: StageTally | None = None,
) -> list[AuditIssue]:
    """All issues for one document, in a stable order.

    With a *tally*, each check's time and issue count is recorded under
    the check's name.
    """
    structural = record.structural
    if structural.yaml is not None and (structural.yaml_errors or not structural.is_mapping):
        detail = f": {_first_line(structural.yaml_errors[0])}" if structural.yaml_errors else ""
        return [
            _issue(
                SEVERITY_ERROR,
                "orphan-file",
                f"Failed to parse frontmatter{detail}",
                meta={"parse_error": True},
            )
        ]

    issues = _run_check(tally, "structure", check_structure, structural)
    with measure(tally, "type") as counts:
        type_issues, resolved = check_type(schema, record)
        if record.rel_path in index.owners:
            type_issues = [i for i in type_issues if i.code != "wrong-directory"]
            type_issues.extend(check_ownership(index, record))
        counts["issues"] = len(type_issues)
    issues.extend(type_issues)
    if resolved is None:
        return issues

    frontmatter = record.frontmatter
    issues.extend(_run_check(tally, "required", check_required, resolved, frontmatter))
    issues.extend(_run_check(tally, "fields", check_fields, schema, resolved, frontmatter))
    issues.extend(_run_check(tally, "keys", check_keys, schema, resolved, frontmatter, options))
    issues.extend(
        _run_check(tally, "relations", check_relations, schema, index, record, resolved, schema.config.link_format)
    )
    if resolved.recursive:
        issues.extend(_run_check(tally, "hierarchy", check_parent_cycle, index, record))
    issues.extend(_run_check(tally, "list-duplicates", check_list_duplicates, frontmatter))
    return issues
