"""Subcommand modules for vaultctl.

Provides register_commands() which uses deferred imports to keep
``vaultctl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the schema group and the standalone commands on the root CLI group."""
    from vaultctl.commands.schema import schema

    cli.add_command(schema)

    from vaultctl.commands.audit import audit
    from vaultctl.commands.list_cmd import list_cmd

    cli.add_command(audit)
    cli.add_command(list_cmd)
