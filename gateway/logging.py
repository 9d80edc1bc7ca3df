"""
Centralized logging configuration using loguru.
"""
from __future__ import annotations

import logging
import sys
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# stdlib loggers whose records are forwarded into loguru
INTERCEPTED_LOGGERS = ("hypercorn.error", "hypercorn.access", "httpx")

# Remove default handler and add custom one with better format
logger.remove()
_sink_id = logger.add(sys.stderr, format=LOG_FORMAT, level="INFO", colorize=True)


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Any = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(debug: bool = False) -> None:
    """
    Reinstall the stderr sink at DEBUG or INFO and route stdlib logging
    (hypercorn, httpx) through loguru.
    """
    global _sink_id
    logger.remove(_sink_id)
    _sink_id = logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level="DEBUG" if debug else "INFO",
        colorize=True,
    )

    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.setLevel(level)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


def get_logger(name: str = __name__) -> Any:
    """
    Get a logger bound to a specific module name.
    
    Usage:
        from gateway.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Hello from this module")
    """
    return logger.bind(name=name)
