"""Tests for the root vaultctl CLI."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from vaultctl import __version__
from vaultctl.cli import cli


def test_cli_help(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "vaultctl" in result.output


def test_cli_version(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
    assert "vaultctl" in result.output


def test_cli_no_args(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, [])
    assert result.exit_code == 0
    assert "Usage" in result.output


# --- Global flags ---


@pytest.mark.parametrize("flag", ["--json", "-q", "-v", "--log-json", "--no-interact"])
def test_global_flag_accepted(cli_runner: CliRunner, flag: str) -> None:
    result = cli_runner.invoke(cli, [flag, "--version"])
    assert result.exit_code == 0


def test_config_option_accepted(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["-c", "/tmp/test.toml", "--version"])
    assert result.exit_code == 0


def test_unknown_flag_rejected(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--no-reweave", "--version"])
    assert result.exit_code == 2


# --- Commands registered ---

EXPECTED_GROUPS = ["schema"]

EXPECTED_COMMANDS = ["audit", "list"]


@pytest.mark.parametrize("group", EXPECTED_GROUPS)
def test_group_registered(cli_runner: CliRunner, group: str) -> None:
    result = cli_runner.invoke(cli, [group, "--help"])
    assert result.exit_code == 0, f"{group} --help failed: {result.output}"


@pytest.mark.parametrize("command", EXPECTED_COMMANDS)
def test_command_registered(cli_runner: CliRunner, command: str) -> None:
    result = cli_runner.invoke(cli, [command, "--help"])
    assert result.exit_code == 0, f"{command} --help failed: {result.output}"


def test_all_commands_in_help(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--help"])
    for name in EXPECTED_GROUPS + EXPECTED_COMMANDS:
        assert name in result.output, f"{name} missing from --help"


# --- Config wiring ---


@pytest.mark.usefixtures("_isolated_vault")
def test_config_flag_points_at_toml(cli_runner: CliRunner, vault_root: Path) -> None:
    (vault_root / "tasks" / "a.md").write_text("---\ntype: task\nstatus: raw\nrating: 5\n---\n", encoding="utf-8")
    custom = vault_root / "strict.toml"
    custom.write_text("[audit]\nstrict = true\n", encoding="utf-8")

    relaxed = cli_runner.invoke(cli, ["audit"])
    strict = cli_runner.invoke(cli, ["-c", str(custom), "audit"])

    assert relaxed.exit_code == 0
    assert strict.exit_code == 1
    assert "strict mode" in strict.stderr


@pytest.mark.usefixtures("_isolated_vault")
def test_warnings_go_to_stderr(cli_runner: CliRunner, vault_root: Path) -> None:
    (vault_root / "tasks" / "bad.md").write_bytes(b"\xff\xfe")
    result = cli_runner.invoke(cli, ["-q", "audit"])
    assert result.exit_code == 0
    assert "WARNING: Could not read tasks/bad.md" in result.stderr
    assert "WARNING" not in result.stdout


def test_vault_option_selects_the_vault(
    cli_runner: CliRunner,
    vault_root: Path,
    tmp_path_factory: pytest.TempPathFactory,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("VAULTCTL_CONFIG", raising=False)
    (vault_root / "tasks" / "a.md").write_text("---\ntype: task\nstaus: x\n---\n", encoding="utf-8")
    elsewhere = tmp_path_factory.mktemp("elsewhere")
    with cli_runner.isolated_filesystem(temp_dir=elsewhere):
        result = cli_runner.invoke(cli, ["--vault", str(vault_root), "-q", "audit"])
    assert result.exit_code == 0
    assert result.stdout.splitlines() == ["tasks/a.md"]


def test_vault_option_must_exist(cli_runner: CliRunner, tmp_path: Path) -> None:
    result = cli_runner.invoke(cli, ["--vault", str(tmp_path / "missing"), "audit"])
    assert result.exit_code == 2


def test_root_examples(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--examples"])
    assert result.exit_code == 0
    assert "  vaultctl --vault ~/notes audit --fix --auto" in result.output.splitlines()
