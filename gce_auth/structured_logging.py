import logging
import sys
from typing import Any, MutableMapping

import structlog

from gce_auth.config import ConfigLogging

__all__ = ["setup_logging", "sanitize_logs"]

SECRET_KEYS = ("access_token", "authorization")
MASK = "**********"


def sanitize_logs(_, __, event_dict: MutableMapping[str, Any]) -> MutableMapping:
    """Mask bearer credentials so they never reach a log sink."""
    for key in SECRET_KEYS:
        if event_dict.get(key):
            event_dict[key] = MASK

    return event_dict


def setup_logging(logging_config: ConfigLogging):
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        sanitize_logs,
    ]

    if logging_config.format_json:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler: logging.Handler
    if logging_config.to_file:
        handler = logging.FileHandler(filename=logging_config.to_file, mode="a")
    else:
        handler = logging.StreamHandler(sys.stdout)

    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging_config.level.upper())
