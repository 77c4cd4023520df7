"""Tests for --examples flag on CLI commands.

Parametrized to cover all commands that define examples text.
"""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from vaultctl.cli import cli

# (CLI args, expected keywords in output)
EXAMPLES_COMMANDS: list[tuple[list[str], list[str]]] = [
    (["audit", "--examples"], ["vaultctl audit --fix --dry-run", "--only unknown-field"]),
    (["list", "--examples"], ["vaultctl list task", "--fields status,due"]),
    (["schema", "--examples"], ["vaultctl schema show", "vaultctl schema resolve task"]),
    (["schema", "show", "--examples"], ["vaultctl --json schema show"]),
    (["schema", "resolve", "--examples"], ["objective/milestone"]),
]


def _examples_id(item: tuple[list[str], list[str]]) -> str:
    """Generate a readable test ID from args."""
    args, _ = item
    return "_".join(a for a in args if a != "--examples")


@pytest.mark.parametrize(
    "args,expected_keywords",
    EXAMPLES_COMMANDS,
    ids=[_examples_id(item) for item in EXAMPLES_COMMANDS],
)
def test_examples_flag(
    cli_runner: CliRunner, args: list[str], expected_keywords: list[str]
) -> None:
    result = cli_runner.invoke(cli, args)
    assert result.exit_code == 0
    assert result.output.startswith("Examples for '")
    assert f"{' '.join(args[:-1])}':" in result.output.splitlines()[0]
    for kw in expected_keywords:
        assert kw in result.output, f"Expected '{kw}' in examples output for {args}"


class TestExamplesInHelp:
    """Test that --examples appears in --help output for commands that have it."""

    @pytest.mark.parametrize(
        "args",
        [
            ["audit", "--help"],
            ["list", "--help"],
            ["schema", "--help"],
            ["schema", "show", "--help"],
            ["schema", "resolve", "--help"],
        ],
    )
    def test_examples_in_help(self, cli_runner: CliRunner, args: list[str]) -> None:
        result = cli_runner.invoke(cli, args)
        assert result.exit_code == 0
        assert "--examples" in result.output


class TestExamplesEagerExit:
    """Test that --examples exits before validation (eager option)."""

    def test_examples_skips_required_args(self, cli_runner: CliRunner) -> None:
        # 'schema resolve' requires TYPE_PATH, but --examples should work without it
        result = cli_runner.invoke(cli, ["schema", "resolve", "--examples"])
        assert result.exit_code == 0
        assert "Examples for" in result.output

    def test_examples_never_loads_the_vault(self, cli_runner: CliRunner) -> None:
        with cli_runner.isolated_filesystem():
            result = cli_runner.invoke(cli, ["audit", "--examples"])
        assert result.exit_code == 0
        assert "ERROR" not in result.output
