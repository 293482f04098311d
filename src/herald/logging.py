"""Structured logging for Herald.

The worker, scheduler, API, and audit sink log through structlog. JSON
output is the production default, colored console output is for local
runs. Storage and dispatch modules use standard library loggers, which
share the same level and stream.

Dispatch runs bind their claim token as ``dispatch_run`` so every
structured line written during a run can be grouped.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False

_SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _output_processors(format: str) -> list[Processor]:
    if format.lower() == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format: "json" or "text".

    Example:
        ```python
        from herald.logging import configure_logging, get_logger

        configure_logging(level="DEBUG", format="text")
        get_logger("herald.worker").info("Worker started", batch_size=50)
        ```
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, *_output_processors(format)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Add key-value pairs to every structured line in the current context.

    Example:
        ```python
        bind_context(dispatch_run="claim_a1b2")
        try:
            ...
        finally:
            unbind_context("dispatch_run")
        ```
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove keys added by bind_context()."""
    structlog.contextvars.unbind_contextvars(*keys)


logger = get_logger("herald")
