"""Click classes for vaultctl commands.

Every command and group may declare ``examples=``: worked invocations
printed by ``--examples`` instead of crowding ``--help``.  The flag is
eager, so ``vaultctl schema resolve --examples`` works without a
TYPE_PATH and never loads the vault.
"""

from __future__ import annotations

import inspect
from typing import Any

import click


class _ExamplesMixin:
    params: list[click.Parameter]

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = inspect.cleandoc(examples) if examples else None
        if self.examples:
            self.params.append(
                click.Option(
                    ["--examples"],
                    is_flag=True,
                    expose_value=False,
                    is_eager=True,
                    callback=self._print_examples,
                    help="Show usage examples.",
                )
            )

    def _print_examples(self, ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value or ctx.resilient_parsing or self.examples is None:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo("\n".join(f"  {line}" for line in self.examples.splitlines()))
        ctx.exit(0)


class VaultCommand(_ExamplesMixin, click.Command):
    pass


class VaultGroup(_ExamplesMixin, click.Group):
    """Subcommands declared with ``@group.command`` get ``examples=`` too."""

    command_class = VaultCommand
