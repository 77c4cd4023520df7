"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, vaultctl.toml only contains
overrides.  A fresh vault needs no config file at all.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

# --- vaultctl.toml sections ---


class VaultConfig(BaseModel):
    """[vault] section."""

    model_config = {"frozen": True}

    schema_path: Path | None = None


class AuditConfig(BaseModel):
    """[audit] section."""

    model_config = {"frozen": True}

    workers: int = Field(default=4, ge=1)
    strict: bool = False
    allowed_fields: list[str] = Field(default_factory=list)
    ignored_directories: list[str] = Field(default_factory=list)


class FixConfig(BaseModel):
    """[fix] section."""

    model_config = {"frozen": True}

    workers: int = Field(default=4, ge=1)
    duplicate_key_strategy: Literal["auto", "first", "last"] = "auto"

