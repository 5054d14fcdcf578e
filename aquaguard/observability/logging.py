"""
Structured logging configuration using structlog.

Library modules log through the standard ``logging`` module with
%-style arguments; workers, the orchestrator and the API use structlog
loggers with key/value context (device_id, message_id, request_id).
Both end up on one stdout handler rendered by structlog, as JSON lines
in production and coloured console output elsewhere.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from aquaguard.config.settings import get_settings

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and route stdlib logging through it.

    Args:
        level: Overrides ``Settings.log_level`` (e.g. ``--debug`` on the CLI).

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Reading stored", device_id="AG-001", ph=7.1)
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if settings.is_production:
        renderers: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
