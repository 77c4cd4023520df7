"""Rich/JSON output helpers.

The CLI renders ServiceResult for humans (Rich output, colors) or
machines (--json).  The formatter layer adapts ServiceResult to the
requested output mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from vaultctl.output.renderers import render_quiet, render_result

if TYPE_CHECKING:
    from vaultctl.config.settings import VaultSettings
    from vaultctl.services.result import ServiceResult


@dataclass(frozen=True)
class OutputSettings:
    """Output flags taken from the root CLI group."""

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False

    @classmethod
    def from_settings(cls, settings: VaultSettings) -> OutputSettings:
        return cls(json_output=settings.json_output, quiet=settings.quiet, verbose=settings.verbose)


def format_result(result: ServiceResult, *, settings: OutputSettings | None = None) -> str:
    """Format a ServiceResult for display.

    Args:
        result: The service result to format.
        settings: Output mode; human-readable Rich output by default.
    """
    settings = settings or OutputSettings()
    if settings.json_output:
        return result.model_dump_json(indent=2)
    if settings.quiet:
        return render_quiet(result)
    return render_result(result, verbose=settings.verbose)
