"""
Logging configuration module for Palace Atomic MCP Server.

Configures structlog from settings (PALACE_LOG_LEVEL, PALACE_LOG_JSON).
"""

import logging
import sys

import structlog

from .config import settings


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog for the application.

    Logs go to stderr; stdout carries the MCP stdio protocol.

    Args:
        level: Level name such as "DEBUG"; defaults to settings.log_level
        json_output: Render JSON lines instead of console output; defaults to settings.log_json
    """
    level_name = (level or settings.log_level).upper()
    use_json = settings.log_json if json_output is None else json_output

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a configured structlog logger.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        A bound structlog logger
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
