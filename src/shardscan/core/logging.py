# src/shardscan/core/logging.py
"""Logging setup for the scanners.

structlog and stdlib records share one processor chain through
ProcessorFormatter, so SQLAlchemy and tenacity messages render the same
way as the scanners' own events. Scan context (shard_id, workflow_id,
run_id) is bound with structlog contextvars and merged into every line.

Logs go to stderr. stdout is reserved for scan output records so that
`shardscan db scan > results.jsonl` stays machine-readable.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Chatty at DEBUG: statement echo, pool checkouts, one line per retry sleep
_NOISY_LOGGERS: tuple[str, ...] = ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool", "tenacity")


def _drop_formatter_keys(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Strip the _record and _from_structlog keys ProcessorFormatter adds."""
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
) -> None:
    """Route structlog and stdlib logging to stderr.

    Safe to call more than once; each call replaces the root handlers.

    Args:
        json_output: One JSON object per line instead of console rendering.
        level: Root log level name (DEBUG, INFO, WARNING, ERROR).
    """
    log_level = getattr(logging, level.upper())

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    renderers: list[Any]
    if json_output:
        renderers = [_drop_formatter_keys, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [_drop_formatter_keys, structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=renderers, foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(log_level)

    # At least WARNING, or stricter if the root level is
    noisy_level = max(log_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return the structlog logger for a module name."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
