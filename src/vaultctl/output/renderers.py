"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.table import Table
from rich.text import Text

from vaultctl.output.console import (
    create_console,
    get_output,
    style_for_severity,
    style_for_status,
)

if TYPE_CHECKING:
    from rich.console import Console

    from vaultctl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    A failed result that still carries a report (a strict audit)
    renders the report before the error line.
    """
    console = create_console()

    renderer = _OP_RENDERERS.get(result.op, _render_generic)
    if result.ok:
        renderer(result, console, verbose=verbose)
    else:
        if result.data and result.op in _OP_RENDERERS:
            renderer(result, console, verbose=verbose)
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(str(item.get("name", "")) for item in items)

    files = result.data.get("files")
    if files and isinstance(files, list):
        return "\n".join(str(f.get("path", "")) for f in files)

    changed = result.data.get("files_changed")
    if changed and isinstance(changed, list):
        return "\n".join(str(p) for p in changed)

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK/ERROR status line."""
    label = Text("OK", style="vault.ok")
    op = Text(f"  {result.op}", style="vault.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="vault.key")
    if key in ("path", "schema_path", "output_dir"):
        v = Text(str(value), style="vault.path")
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {escape(str(v))}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {escape(name)}"

    annotations = span_data.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"

    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="vault.error")
    op = Text(f"  {result.op}", style="vault.op")
    sep = Text(" — ")
    console.print(label, op, sep, Text(msg))

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {escape(str(v))}")


# ── Audit renderers ───────────────────────────────────────────────────


def _render_issue(console: Console, issue: dict[str, Any], *, verbose: bool) -> None:
    sev = str(issue.get("severity", "warning"))
    style = style_for_severity(sev)
    prefix = f"[{style}]{sev}[/{style}]" if style else sev
    code = f"[vault.code]{issue.get('code', '')}[/vault.code]"
    fixable = " [vault.hint](fixable)[/vault.hint]" if issue.get("auto_fixable") else ""
    console.print(f"  {prefix} {code}: {escape(str(issue.get('message', '')))}{fixable}")
    if issue.get("suggestion"):
        console.print(f"    [vault.hint]{escape(str(issue['suggestion']))}[/vault.hint]")
    if verbose and issue.get("meta"):
        for k, v in issue["meta"].items():
            console.print(f"    [vault.key]{k}:[/vault.key] {escape(str(v))}")


def _render_audit(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render audit results with issues grouped by document."""
    files = result.data.get("files", [])
    failures = result.data.get("failures", [])
    summary = result.data.get("summary", {})

    if not files and not failures:
        console.print("[vault.ok]OK[/vault.ok]  No issues found.")
        _field(console, "files_checked", summary.get("files_checked", 0))
        if verbose:
            _render_meta(console, result)
        return

    for report in files:
        console.print(f"\n[vault.path]{escape(str(report.get('path', '')))}[/vault.path]")
        for issue in report.get("issues", []):
            _render_issue(console, issue, verbose=verbose)

    for failure in failures:
        console.print(
            f"\n[vault.error]failed[/vault.error] {escape(str(failure.get('path')))}: "
            f"{escape(str(failure.get('message')))}"
        )

    errors = summary.get("total_errors", 0)
    warnings = summary.get("total_warnings", 0)
    console.print(f"\n{errors} errors, {warnings} warnings")
    _field(console, "files_checked", summary.get("files_checked", 0))
    _field(console, "healthy", summary.get("healthy", False))
    if verbose:
        _render_meta(console, result)


def _render_fix(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render fix outcomes and the run summary."""
    _status_line(console, result)
    summary = result.data.get("summary", {})
    if summary.get("dry_run"):
        console.print("  [vault.warning]dry run[/vault.warning] — no files written")

    outcomes = result.data.get("outcomes", [])
    shown = outcomes if verbose else [o for o in outcomes if o.get("status") != "skipped"]
    current = None
    for outcome in shown:
        path = outcome.get("path")
        if path != current:
            console.print(f"\n[vault.path]{escape(str(path))}[/vault.path]")
            current = path
        status = str(outcome.get("status", ""))
        style = style_for_status(status)
        console.print(
            f"  [{style}]{status}[/{style}] [vault.code]{outcome.get('code')}[/vault.code]: "
            f"{escape(str(outcome.get('message', '')))}"
        )

    console.print()
    for key in ("fixed", "skipped", "failed", "remaining"):
        _field(console, key, summary.get(key, 0))
    if verbose:
        _render_meta(console, result)


# ── Query renderers ───────────────────────────────────────────────────


def _render_list(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a document listing as a table."""
    items = result.data.get("items", [])
    if not items:
        console.print("No documents found.")
        return

    extra = list(items[0].get("fields", {}))
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Name", style="vault.path", no_wrap=True)
    table.add_column("Type")
    for col in extra:
        table.add_column(col)
    if verbose:
        table.add_column("Path", style="dim")

    for item in items:
        row = [str(item.get("name", "")), str(item.get("type") or "")]
        values = item.get("fields", {})
        row.extend("" if values.get(col) is None else str(values.get(col)) for col in extra)
        if verbose:
            row.append(str(item.get("path", "")))
        table.add_row(*row)

    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} documents")
    if verbose:
        _render_meta(console, result)


# ── Schema renderers ──────────────────────────────────────────────────


def _render_schema_show(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    d = result.data
    _field(console, "schema_path", d.get("schema_path", ""))
    _field(console, "link_format", d.get("link_format", ""))

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Type", style="bold")
    table.add_column("Directory", style="vault.path")
    table.add_column("Fields", justify="right")
    table.add_column("Required")
    for t in d.get("types", []):
        table.add_row(
            str(t.get("type_path", "")),
            str(t.get("output_dir", "")),
            str(t.get("fields", 0)),
            ", ".join(t.get("required", [])),
        )
    console.print()
    console.print(table)

    enums = d.get("enums", {})
    if enums:
        console.print("\n[bold]enums[/bold]")
        for name, values in enums.items():
            console.print(f"  {escape(name)}: {escape(', '.join(values))}")
    sources = d.get("dynamic_sources", {})
    if sources:
        console.print("\n[bold]dynamic sources[/bold]")
        for name, source in sources.items():
            console.print(f"  {escape(name)}: {escape(str(source.get('dir', '')))}")


def _render_schema_resolve(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    d = result.data
    for key in ("type_path", "output_dir", "dir_mode"):
        _field(console, key, d.get(key, ""))
    if d.get("ancestors"):
        _field(console, "extends", " → ".join(d["ancestors"]))

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Field", style="bold")
    table.add_column("Shape")
    table.add_column("Required")
    table.add_column("Default")
    table.add_column("Values")
    if verbose:
        table.add_column("Inherited", style="dim")
    for f in d.get("fields", []):
        values = f.get("options") or ([f"enum:{f['enum']}"] if f.get("enum") else [])
        if f.get("source"):
            values = [f"source:{f['source']}"]
        row = [
            str(f.get("name", "")),
            str(f.get("shape", "")),
            "yes" if f.get("required") else "",
            "" if f.get("default") is None else str(f.get("default")),
            ", ".join(str(v) for v in values),
        ]
        if verbose:
            row.append("yes" if f.get("inherited") else "")
        table.add_row(*row)
    console.print()
    console.print(table)


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line plus key-value fields."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


_OP_RENDERERS: dict[str, Any] = {
    "audit": _render_audit,
    "fix": _render_fix,
    "list": _render_list,
    "schema_show": _render_schema_show,
    "schema_resolve": _render_schema_resolve,
}
