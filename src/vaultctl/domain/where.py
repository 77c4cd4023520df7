"""Where filters — hyphenated-key normalization and schema validation.

Frontmatter keys such as ``creation-date`` would tokenize as a
subtraction.  Before parsing, known hyphenated keys are rewritten into
``__frontmatter['creation-date']``.  The rewrite is narrow on purpose:
unknown identifiers, text inside quotes, and names after ``.`` or ``[``
are left alone.

Validation walks the parsed filter without evaluating it and checks the
field/value comparisons it contains against a resolved type.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from vaultctl.domain.expression import (
    EvalContext,
    ExpressionError,
    extract_comparisons,
    invalid_durations,
    matches_expression,
    parse_expression,
)
from vaultctl.domain.fuzzy import suggest_name, suggest_option
from vaultctl.domain.schema import (
    NATIVE_FIELDS,
    DynamicSource,
    VaultSchema,
    discriminator_fields,
    field_options,
    resolve,
)

MAX_OPTIONS_SHOWN = 5


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _is_word_char(ch: str) -> bool:
    return bool(ch) and (ch.isalnum() or ch in "_-")


def normalize_where(expression: str, known_keys: Iterable[str]) -> str:
    """Rewrite bare hyphenated keys into keyed lookups.

    >>> normalize_where("creation-date == '2026-01-28'", ["creation-date"])
    "__frontmatter['creation-date'] == '2026-01-28'"
    """
    keys = sorted({k for k in known_keys if "-" in k}, key=len, reverse=True)
    if not keys:
        return expression

    out: list[str] = []
    i = 0
    length = len(expression)
    while i < length:
        ch = expression[i]
        if ch in "'\"":
            end = i + 1
            while end < length and expression[end] != ch:
                end += 2 if expression[end] == "\\" else 1
            end = min(end + 1, length)
            out.append(expression[i:end])
            i = end
            continue

        previous = expression[i - 1] if i > 0 else ""
        if not _is_word_char(previous) and previous not in (".", "["):
            for key in keys:
                if not expression.startswith(key, i):
                    continue
                after = expression[i + len(key)] if i + len(key) < length else ""
                if after and _is_word_char(after):
                    continue
                out.append(f"__frontmatter['{key}']")
                i += len(key)
                break
            else:
                out.append(ch)
                i += 1
            continue

        out.append(ch)
        i += 1
    return "".join(out)


def normalize_where_expressions(expressions: Iterable[str], known_keys: Iterable[str]) -> list[str]:
    keys = list(known_keys)
    return [normalize_where(e, keys) for e in expressions]


def collect_frontmatter_keys(documents: Iterable[dict[str, Any]]) -> set[str]:
    """Every key used across a set of frontmatter mappings."""
    keys: set[str] = set()
    for frontmatter in documents:
        keys.update(frontmatter)
    return keys


def combine_where(expressions: Iterable[str]) -> str | None:
    """AND a list of filters together; None when there are none."""
    parts = [e.strip() for e in expressions if e and e.strip()]
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return " && ".join(f"({p})" for p in parts)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WhereValidationError:
    """A filter comparison that can never match documents of a type."""

    expression: str
    field: str
    value: str | None
    message: str
    valid_options: tuple[str, ...] = ()
    suggestion: str | None = None


def validate_where_expressions(
    expressions: Iterable[str],
    schema: VaultSchema,
    type_path: str,
) -> list[WhereValidationError]:
    """Check field names, option values and duration literals in *expressions*.

    Filters that fail to parse are skipped; evaluating them reports the
    syntax error with better context.
    """
    resolved = resolve(schema, type_path)
    known = list(resolved.fields)
    known += [k for k in (*discriminator_fields(type_path), *NATIVE_FIELDS) if k not in known]
    errors: list[WhereValidationError] = []

    for expression in expressions:
        try:
            ast = parse_expression(normalize_where(expression, known))
        except ExpressionError:
            continue
        for text in invalid_durations(ast):
            errors.append(
                WhereValidationError(
                    expression=expression,
                    field="",
                    value=text,
                    message=f"Invalid duration '{text}' (units: min, h, d, w, mon, y)",
                )
            )
        for comparison in extract_comparisons(ast):
            if comparison.value is None:
                continue
            name = comparison.field
            if name not in known:
                suggestion = suggest_name(name, known)
                errors.append(
                    WhereValidationError(
                        expression=expression,
                        field=name,
                        value=comparison.value,
                        message=f"Unknown field '{name}' for type '{type_path}'",
                        suggestion=suggestion,
                    )
                )
                continue
            field = resolved.fields.get(name)
            options = field_options(schema, field) if field is not None else None
            if not options or comparison.value in options:
                continue
            errors.append(
                WhereValidationError(
                    expression=expression,
                    field=name,
                    value=comparison.value,
                    message=f"Invalid value '{comparison.value}' for field '{name}'",
                    valid_options=tuple(options),
                    suggestion=suggest_option(comparison.value, options),
                )
            )
    return errors


def _options_line(options: tuple[str, ...]) -> str:
    if len(options) <= MAX_OPTIONS_SHOWN:
        return ", ".join(options)
    shown = ", ".join(options[:MAX_OPTIONS_SHOWN])
    return f"{shown}, ... ({len(options)} total)"


def format_where_validation_errors(errors: list[WhereValidationError]) -> str:
    """Human-readable text for one or more validation errors."""
    if not errors:
        return ""
    if len(errors) == 1:
        error = errors[0]
        lines = [f"Error: {error.message}."]
        if error.valid_options:
            lines.append(f"  Valid options: {_options_line(error.valid_options)}")
        if error.suggestion:
            lines.append(f"  Did you mean '{error.suggestion}'?")
        return "\n".join(lines)

    lines = ["Expression validation errors:"]
    for error in errors:
        line = f"  - {error.message}"
        if error.suggestion:
            line += f" (did you mean '{error.suggestion}'?)"
        lines.append(line)
        if error.valid_options:
            lines.append(f"    Valid options: {_options_line(error.valid_options)}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Dynamic sources
# ---------------------------------------------------------------------------


def resolve_dynamic_source(
    source: DynamicSource,
    documents: Iterable[tuple[str, EvalContext]],
) -> list[str]:
    """Note names a dynamic source admits, in input order.

    Args:
        source: The schema's source definition.
        documents: ``(relative path, context)`` pairs for the vault.

    Raises:
        ExpressionError: if the source's ``where`` filter does not parse.
    """
    directory = source.dir.strip("/")
    where = source.where
    if where is not None:
        parse_expression(where)
    names: list[str] = []
    for rel_path, ctx in documents:
        folder = rel_path.rsplit("/", 1)[0] if "/" in rel_path else ""
        if folder != directory and not folder.startswith(directory + "/"):
            continue
        if not source.matches(ctx.frontmatter):
            continue
        if where is not None:
            keys = collect_frontmatter_keys([ctx.frontmatter])
            if not matches_expression(normalize_where(where, keys), ctx):
                continue
        names.append(rel_path.rsplit("/", 1)[-1].removesuffix(".md"))
    return names
