"""Structured logging setup using structlog.

One shared processor chain (context vars, log level, timestamps, stack
info) feeds either a coloured ConsoleRenderer for local runs or a
JSONRenderer for production.  ``APP_ENV=production`` or the
``json_output`` flag selects JSON.

Log lines go to stderr by default: the CLI prints its results on stdout,
and the two streams must not interleave when output is piped.

Ingestion binds ``tenant_id`` / ``context_id`` through contextvars, so
every event emitted while a Context is being chunked, embedded, or
stored carries the tenant it belongs to.
"""

import logging
import os
import sys
from typing import TextIO

import structlog


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, JSON is still used if
                     ``APP_ENV`` is ``"production"``.
        stream: Destination for log lines. Defaults to ``sys.stderr``.

    Returns:
        A configured structlog BoundLogger.
    """
    out = stream if stream is not None else sys.stderr
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    # merge_contextvars must run first so tenant bindings reach the renderer.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        # No colour codes when stderr is redirected to a file.
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        # Events below log_level are dropped before any processor runs.
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=True,
    )

    # Route stdlib logging (httpx, openai, aiosqlite) through the same chain.
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(out)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    # httpx logs every request at INFO; one line per embedding batch is noise.
    logging.getLogger("httpx").setLevel(max(logging.WARNING, root_logger.level))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def bind_tenant_context(tenant_id: str, **extra: str) -> None:
    """Bind ``tenant_id`` (and e.g. ``context_id``) to the current task's log context.

    Each asyncio task keeps its own bindings, so concurrent ingestions for
    different tenants never mix their fields.
    """
    structlog.contextvars.bind_contextvars(tenant_id=tenant_id, **extra)


def clear_tenant_context() -> None:
    """Drop bindings made by :func:`bind_tenant_context`."""
    structlog.contextvars.unbind_contextvars("tenant_id", "context_id")
