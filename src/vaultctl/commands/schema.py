"""Command group: inspect the vault schema."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from vaultctl.commands._base import VaultGroup

if TYPE_CHECKING:
    from vaultctl.commands._context import AppContext

_SCHEMA_EXAMPLES = """\
  vaultctl schema show
  vaultctl schema resolve task
  vaultctl schema resolve objective/milestone
  vaultctl --json schema resolve task"""


@click.group(cls=VaultGroup, examples=_SCHEMA_EXAMPLES)
@click.pass_obj
def schema(app: AppContext) -> None:
    """Show types, enums, and effective fields."""


@schema.command(
    examples="""\
  vaultctl schema show
  vaultctl --json schema show"""
)
@click.pass_obj
def show(app: AppContext) -> None:
    """List type paths, enums, and dynamic sources."""
    from vaultctl.services.schema import SchemaService

    app.emit(SchemaService(app.vault).show())


@schema.command(
    examples="""\
  vaultctl schema resolve task
  vaultctl -v schema resolve objective/milestone"""
)
@click.argument("type_path")
@click.pass_obj
def resolve(app: AppContext, type_path: str) -> None:
    """Show the effective fields of TYPE_PATH, inherited ones included."""
    from vaultctl.services.schema import SchemaService

    app.emit(SchemaService(app.vault).resolve_type(type_path))
