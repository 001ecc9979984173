"""Structured logging configuration using structlog.

JSON lines for log shipping, colored console output in development or
with LOG_FORMAT=text. Both the stdlib loggers used by the engine and the
structlog loggers used by task handlers end up in the same handler, and
every record carries the run_id bound for the current run.
"""

import logging
import sys
from typing import Optional

import structlog
from app.config import get_settings

# Libraries that are chatty at INFO.
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "aiosqlite", "kombu", "amqp")


def setup_logging(level: Optional[str] = None) -> None:
    """Route stdlib and structlog output through one formatter.

    Args:
        level: Overrides ``LOG_LEVEL`` (e.g. "DEBUG" for a local run)
    """
    settings = get_settings()
    render_text = settings.is_development or settings.LOG_FORMAT == "text"

    pre_chain: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if render_text:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        final_processors = [renderer]
    else:
        final_processors = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final_processors],
            foreign_pre_chain=pre_chain,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.SQLALCHEMY_ECHO else logging.WARNING
    )
    logging.getLogger("celery").setLevel(logging.INFO)
