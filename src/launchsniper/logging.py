"""Structured logging for the launch sniper.

Every component logs through get_logger(), which names the stdlib logger
``launchsniper`` and binds the ``component`` key. setup_logging() is called
once by the CLI and tags every line with the trading mode.
"""
import logging
import sys
from typing import Optional

import structlog

LOGGER_NAME = "launchsniper"

# Chatty at INFO; only surfaced when the agent itself runs at DEBUG
_LIBRARY_LOGGERS = ("httpx", "httpcore", "websockets", "aiosqlite", "solana")


def get_logger(component: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return the project logger, bound to a component name when given."""
    logger = structlog.get_logger(LOGGER_NAME)
    if component:
        return logger.bind(component=component)
    return logger


def _add_mode(dry_run: bool) -> structlog.types.Processor:
    mode = "paper" if dry_run else "live"

    def add_mode(logger, method_name, event_dict):
        event_dict.setdefault("mode", mode)
        return event_dict

    return add_mode


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    dry_run: bool = False,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog over the stdlib root logger.

    Args:
        level: Log level for the agent (DEBUG, INFO, WARNING, ERROR)
        json_output: Render JSON lines instead of the console format
        log_file: Also write to this file
        dry_run: Tag every line with mode=paper instead of mode=live

    Returns:
        The project logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers, force=True)

    library_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_mode(dry_run),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # No ANSI colors when a log file is attached
        processors.append(structlog.dev.ConsoleRenderer(colors=log_file is None))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return get_logger()
