"""Rich Console factory and theme for vaultctl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract.  In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

VAULT_THEME = Theme(
    {
        "vault.ok": "bold green",
        "vault.error": "bold red",
        "vault.warning": "bold yellow",
        "vault.op": "bold cyan",
        "vault.key": "dim",
        "vault.path": "bold blue",
        "vault.code": "magenta",
        "vault.hint": "italic dim",
    }
)

_SEVERITY_STYLES: dict[str, str] = {
    "error": "vault.error",
    "warning": "vault.warning",
}

_STATUS_STYLES: dict[str, str] = {
    "fixed": "vault.ok",
    "skipped": "vault.warning",
    "failed": "vault.error",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=VAULT_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_severity(severity: str) -> str:
    """Return the Rich style name for an issue severity."""
    return _SEVERITY_STYLES.get(severity, "")


def style_for_status(status: str) -> str:
    """Return the Rich style name for a fix outcome status."""
    return _STATUS_STYLES.get(status, "")
