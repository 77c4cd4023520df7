"""Shared pytest fixtures and test helpers for vaultctl tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from vaultctl.config.settings import VaultSettings
from vaultctl.domain.schema import VaultSchema, load_schema
from vaultctl.infrastructure.vault import Vault
from vaultctl.services.telemetry import _current_span, disable_telemetry

SCHEMA_YAML = """\
version: 1
enums:
  priority: [low, medium, high]
dynamic_sources:
  active_projects:
    dir: projects
    filter:
      status:
        equals: active
types:
  meta:
    fields:
      created:
        prompt: date
  task:
    output_dir: tasks
    field_order: [status, priority, due, estimate, billable, project, focus, labels]
    fields:
      status:
        prompt: select
        options: [raw, done]
        required: true
        default: raw
      priority:
        prompt: select
        enum: priority
      due:
        prompt: date
      estimate:
        prompt: number
      billable:
        prompt: boolean
      project:
        prompt: relation
        source: project
      focus:
        prompt: relation
        source: active_projects
      labels:
        prompt: list
  bug:
    extends: task
    fields:
      severity:
        prompt: select
        options: [minor, major]
  project:
    fields:
      status:
        prompt: select
        options: [active, archived]
        required: true
        default: active
  objective:
    dir_mode: instance-grouped
    subtypes:
      milestone:
        fields:
          due:
            prompt: date
  area:
    recursive: true
"""


@pytest.fixture(autouse=True)
def _reset_telemetry_state() -> Generator[None]:
    """``-v`` invocations enable telemetry for the thread; switch it back off."""
    yield
    disable_telemetry()
    _current_span.set(None)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    """Temporary vault directory with a schema and the type directories.

    This is the single source of truth for the vault directory layout.
    All vault-related fixtures (schema, vault, _isolated_vault) build on this.
    """
    (tmp_path / ".vaultctl").mkdir()
    (tmp_path / ".vaultctl" / "schema.yaml").write_text(SCHEMA_YAML, encoding="utf-8")
    for directory in ("tasks", "projects", "objectives", "areas"):
        (tmp_path / directory).mkdir()
    return tmp_path


@pytest.fixture
def schema(vault_root: Path) -> VaultSchema:
    """The test schema, loaded the way the vault loads it."""
    return load_schema(vault_root / ".vaultctl" / "schema.yaml")


@pytest.fixture
def vault(vault_root: Path) -> Vault:
    """Vault on the temp directory with default settings."""
    settings = VaultSettings.from_cli(vault_root=vault_root)
    return Vault(settings)


@pytest.fixture
def _isolated_vault(vault_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to the temp vault root so the CLI finds the test vault.

    Use via ``@pytest.mark.usefixtures("_isolated_vault")`` on command test
    classes. Tests that need the path can also request ``vault_root``.
    """
    monkeypatch.delenv("VAULTCTL_CONFIG", raising=False)
    monkeypatch.chdir(vault_root)


# ---------------------------------------------------------------------------
# Shared test helpers (used across service and command test modules)
# ---------------------------------------------------------------------------


def write_doc(root: Path, rel_path: str, text: str) -> Path:
    """Write a document exactly as given (no newline translation)."""
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline="")
    return path


def read_doc(root: Path, rel_path: str) -> str:
    with open(root / rel_path, encoding="utf-8", newline="") as fh:
        return fh.read()


def write_project(root: Path, name: str, status: str = "active", folder: str = "projects") -> Path:
    return write_doc(root, f"{folder}/{name}.md", f"---\ntype: project\nstatus: {status}\n---\n")
