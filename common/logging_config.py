# common/logging_config.py
import logging
import os
import sys
from typing import Optional

import structlog


_configured = False


def add_service_info(logger, method_name, event_dict):
    """Stamp every entry with the service name from the environment."""
    event_dict.setdefault("service", os.getenv("SERVICE_NAME", "tapechart"))
    return event_dict


def configure_logging(json_format: Optional[bool] = None, log_level: Optional[str] = None) -> None:
    """
    Configure structlog on top of the standard library logging module.

    Parameters
    ----------
    json_format : Optional[bool]
        Render JSON lines when True, coloured console output when False.
        Defaults to the LOG_JSON environment variable.
    log_level : Optional[str]
        Minimum level name. Defaults to LOG_LEVEL or INFO.
    """
    global _configured

    if json_format is None:
        json_format = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_format:
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ])
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # SQL echo and HTTP client chatter
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structured logger, configuring logging on first use.

    Usage::

        logger = get_logger(__name__)
        logger.info("tape chart fetched", organization_id=7, spaces=12)
    """
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
