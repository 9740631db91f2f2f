"""Structured logging for the event pipeline.

Application records and audit records share one stdlib root; audit records
come from their own named logger so a deployment can route them to a
separate handler.
"""

import sys
import logging
from typing import Any, List

import orjson
import structlog
from core.config import Settings


def _dumps(obj: Any, **kwargs) -> str:
    # structlog passes default= for unserializable values
    return orjson.dumps(obj, default=kwargs.get("default")).decode()


def configure_logging(settings: Settings) -> None:
    """Configure stdlib handlers and the structlog pipeline from settings."""
    level = getattr(logging, settings.log_level)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)

    # Audit records are never filtered below INFO by the application level
    logging.getLogger(settings.audit_logger_name).setLevel(min(level, logging.INFO))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        instance_id=settings.instance_id,
        version_cli=settings.version_cli,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
        processors.append(structlog.processors.JSONRenderer(serializer=_dumps))
    else:
        processors.insert(0, structlog.processors.TimeStamper(fmt="%H:%M:%S"))
        processors.append(structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=35,
            exception_formatter=structlog.dev.plain_traceback
        ))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_dispatch(logger: structlog.BoundLogger, sink: str, event_name: str,
                 success: bool, **kwargs) -> None:
    """Log the result of one sink call.

    Delivered events go to debug; failed deliveries are the only trace a
    sink failure leaves, so they are logged as warnings.
    """
    log = logger.debug if success else logger.warning
    log(
        "Event dispatched" if success else "Event dispatch failed",
        sink=sink,
        event_name=event_name,
        **kwargs
    )
