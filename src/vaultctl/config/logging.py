"""Log routing: structlog lines on stderr, stdout left to command results.

The ``vaultctl`` level follows the output flags.  ``-v`` shows debug
lines, including one ``operation.complete`` line per service call, and
``-q`` keeps errors only.  The default shows warnings such as unreadable
documents and failed writes.  Every line names the vault it came from,
worker threads included.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from vaultctl.config.settings import VaultSettings


def vault_level(settings: VaultSettings) -> int:
    if settings.verbose:
        return logging.DEBUG
    if settings.quiet:
        return logging.ERROR
    return logging.WARNING


def _tag_vault(root: str) -> structlog.types.Processor:
    def processor(_logger: Any, _method: str, event_dict: Any) -> Any:
        event_dict.setdefault("vault", root)
        return event_dict

    return processor


def configure_logging(settings: VaultSettings) -> None:
    """Route stdlib and structlog records through one stderr handler."""
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _tag_vault(str(settings.vault_root)),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_json:
        final: list[structlog.types.Processor] = [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.WARNING)
    logging.getLogger("vaultctl").setLevel(vault_level(settings))
