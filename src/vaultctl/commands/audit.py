"""Command: audit documents against the schema, optionally fixing them."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from vaultctl.commands._base import VaultCommand

if TYPE_CHECKING:
    from vaultctl.commands._context import AppContext
    from vaultctl.services.fix import FixPrompt

_GLOB_CHARS = frozenset("*?[")


def _looks_like_path(app: AppContext, target: str) -> bool:
    """A TARGET naming a file, a directory, or a glob is a path filter."""
    if target.endswith(".md") or any(ch in _GLOB_CHARS for ch in target):
        return True
    return (app.vault.root / target).exists()


def _prompt_fix(prompt: FixPrompt) -> str | None:
    """Ask about one fix on the terminal; None skips it."""
    issue = prompt.issue
    click.echo(f"\n{prompt.path}: [{issue.code}] {issue.message}", err=True)
    if issue.suggestion:
        click.echo(f"  {issue.suggestion}", err=True)
    if not prompt.choices:
        return "apply" if click.confirm("  Apply fix?", default=True, err=True) else None
    answer = click.prompt(
        "  Choose",
        type=click.Choice(["skip", *prompt.choices]),
        default=prompt.default or "skip",
        err=True,
    )
    return None if answer == "skip" else answer


@click.command(
    cls=VaultCommand,
    examples="""\
  vaultctl audit
  vaultctl audit task
  vaultctl audit projects/
  vaultctl audit --type task --where "status == 'done'"
  vaultctl audit --only unknown-field --only missing-required
  vaultctl audit --strict --allow-field rating
  vaultctl audit --fix --dry-run
  vaultctl audit --fix --auto
  vaultctl --json audit""",
)
@click.argument("target", required=False)
@click.option("-t", "--type", "type_path", default=None, help="Audit only this type (and its subtypes).")
@click.option("-p", "--path", "path", default=None, help="Audit only this file, directory, or glob.")
@click.option("-w", "--where", "where", multiple=True, help="Expression documents must match (repeatable).")
@click.option("--strict", is_flag=True, help="Unknown fields are errors; errors fail the run.")
@click.option("--only", multiple=True, help="Report only this issue code (repeatable).")
@click.option("--ignore", multiple=True, help="Never report this issue code (repeatable).")
@click.option("--allow-field", "allow_fields", multiple=True, help="Extra field that is never unknown.")
@click.option("--fix", is_flag=True, help="Repair fixable issues.")
@click.option("--auto", is_flag=True, help="With --fix: apply every auto-fix without prompting.")
@click.option("--dry-run", is_flag=True, help="With --fix: show planned fixes, write nothing.")
@click.pass_obj
def audit(
    app: AppContext,
    target: str | None,
    type_path: str | None,
    path: str | None,
    where: tuple[str, ...],
    strict: bool,
    only: tuple[str, ...],
    ignore: tuple[str, ...],
    allow_fields: tuple[str, ...],
    fix: bool,
    auto: bool,
    dry_run: bool,
) -> None:
    """Check documents against the vault schema.

    TARGET is a type path, or a file, directory, or glob within the vault.
    """
    if target is not None:
        if _looks_like_path(app, target):
            path = path or target
        else:
            type_path = type_path or target

    if fix or dry_run:
        from vaultctl.services.fix import FixService

        if dry_run:
            mode = "dry-run"
        elif auto or not app.interactive:
            mode = "auto"
        else:
            mode = "interactive"
        app.emit(
            FixService(app.vault).fix(
                mode=mode,
                decide=_prompt_fix if mode == "interactive" else None,
                type_path=type_path,
                path=path,
                where=where,
                only=only,
                ignore=ignore,
                allow_fields=allow_fields,
            )
        )
        return

    from vaultctl.services.audit import AuditService

    app.emit(
        AuditService(app.vault).audit(
            type_path=type_path,
            path=path,
            where=where,
            only=only,
            ignore=ignore,
            strict=True if strict else None,
            allow_fields=allow_fields,
        )
    )
