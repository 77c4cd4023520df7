"""Command: list documents by type and where expressions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from vaultctl.commands._base import VaultCommand

if TYPE_CHECKING:
    from vaultctl.commands._context import AppContext


@click.command(
    "list",
    cls=VaultCommand,
    examples="""\
  vaultctl list task
  vaultctl list task --where "status == 'raw'"
  vaultctl list --where "hasTag('urgent')" --paths
  vaultctl list task --fields status,due
  vaultctl --json list project""",
)
@click.argument("type_path", required=False)
@click.option("-w", "--where", "where", multiple=True, help="Expression documents must match (repeatable).")
@click.option("--fields", default=None, help="Comma-separated frontmatter fields to show.")
@click.option("--paths", is_flag=True, help="Show vault-relative paths instead of names.")
@click.pass_obj
def list_cmd(
    app: AppContext,
    type_path: str | None,
    where: tuple[str, ...],
    fields: str | None,
    paths: bool,
) -> None:
    """List documents, optionally filtered by TYPE_PATH and expressions."""
    from vaultctl.services.query import QueryService

    field_names = tuple(f.strip() for f in fields.split(",") if f.strip()) if fields else ()
    app.emit(
        QueryService(app.vault).list_documents(
            type_path=type_path,
            where=where,
            fields=field_names,
            paths=paths,
        )
    )
