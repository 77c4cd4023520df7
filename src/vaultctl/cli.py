"""``vaultctl``: root flags, then the audit, list, and schema commands."""

from __future__ import annotations

from pathlib import Path

import click

from vaultctl import __version__
from vaultctl.commands import register_commands
from vaultctl.commands._base import VaultGroup
from vaultctl.commands._context import AppContext
from vaultctl.config.settings import VaultSettings


@click.group(
    cls=VaultGroup,
    invoke_without_command=True,
    examples="""\
    vaultctl audit
    vaultctl --vault ~/notes audit --fix --auto
    vaultctl -c ci.toml --json audit --strict
    vaultctl -v list task --where "status != 'done'"
    """,
)
@click.version_option(version=__version__, prog_name="vaultctl")
@click.option(
    "--vault",
    "vault_root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Vault directory (default: where vaultctl.toml is found, else the current directory).",
)
@click.option("-c", "--config", "config_path", default=None, help="Use this vaultctl.toml.")
@click.option("--json", "json_output", is_flag=True, help="Print results as JSON.")
@click.option("-q", "--quiet", is_flag=True, help="One line per result; log errors only.")
@click.option("-v", "--verbose", is_flag=True, help="Show issue details, timings, and debug logs.")
@click.option("--log-json", is_flag=True, help="Write logs to stderr as JSON lines.")
@click.option("--no-interact", is_flag=True, help="Never prompt; --fix applies auto-fixes only.")
@click.pass_context
def cli(ctx: click.Context, vault_root: Path | None, config_path: str | None, **flags: bool) -> None:
    """vaultctl: audit, fix, and query the frontmatter of a markdown vault."""
    settings = VaultSettings.from_cli(config_path=config_path, vault_root=vault_root, **flags)
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
