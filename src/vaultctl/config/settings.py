"""VaultSettings: root flags, ``VAULTCTL_*`` variables, and ``vaultctl.toml``.

Highest priority first: flags given on the command line, then
environment variables (``VAULTCTL_AUDIT__WORKERS=8`` reaches a nested
section), then the discovered ``vaultctl.toml``, then the section
defaults in :mod:`vaultctl.config.models`.

Engine reads:
    ``vault.schema_path``             the Vault, when locating the schema
    ``audit.workers``                 document loading and per-document checks
    ``audit.strict``                  the default for ``audit --strict``
    ``audit.allowed_fields``          keys never reported as unknown
    ``audit.ignored_directories``     document discovery
    ``fix.workers``                   the fix thread pool
    ``fix.duplicate_key_strategy``    duplicate keys under ``--fix --auto``
"""

from __future__ import annotations

import tomllib
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import click
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, TomlConfigSettingsSource

from vaultctl.config.discovery import find_config
from vaultctl.config.models import AuditConfig, FixConfig, VaultConfig

# The TOML file for the settings object being built; settings sources are
# chosen in a classmethod, so the path cannot travel as an argument.
_toml_file: ContextVar[Path | None] = ContextVar("_toml_file", default=None)


class VaultSettings(BaseSettings):
    """Everything a command needs to know before it touches the vault.

    Attributes:
        vault_root: Directory holding the documents and ``.vaultctl/``.
        config_path: The ``vaultctl.toml`` in effect, or None.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "VAULTCTL_",
        "env_nested_delimiter": "__",
    }

    vault_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # Output flags; they also pick the log level (see config.logging).
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False
    no_interact: bool = False

    vault: VaultConfig = Field(default_factory=VaultConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    fix: FixConfig = Field(default_factory=FixConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=_toml_file.get()),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        vault_root: Path | None = None,
        **flags: Any,
    ) -> VaultSettings:
        """Build settings for one invocation.

        An explicit *config_path* wins over the walk-up search from
        *vault_root* (or the working directory).  Without *vault_root*,
        the vault is the directory holding the config file.

        Raises:
            click.ClickException: if the config file is not valid TOML.
        """
        if config_path:
            explicit = Path(config_path)
            toml_path = explicit if explicit.is_file() else None
        else:
            toml_path = find_config(vault_root)
        if vault_root is None:
            vault_root = toml_path.parent if toml_path else Path.cwd()

        token = _toml_file.set(toml_path)
        try:
            return cls(vault_root=vault_root, config_path=toml_path, **flags)
        except tomllib.TOMLDecodeError as exc:
            raise click.ClickException(f"Invalid TOML in {toml_path}: {exc}") from exc
        finally:
            _toml_file.reset(token)
