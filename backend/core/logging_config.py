"""
Loguru logging configuration.

Console output is human-readable in development and JSON elsewhere; every
record carries the correlation ID so a merge, its priority recompute and its
events can be read together.
"""

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from core.correlation import get_correlation_id

if TYPE_CHECKING:
    from loguru import Record

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[correlation_id]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def correlation_filter(record: "Record") -> bool:
    """Attach the correlation ID to the record. Never drops messages."""
    record["extra"]["correlation_id"] = get_correlation_id() or "-"
    return True


def configure_logging(
    environment: str = "development", log_dir: str | None = "logs"
) -> None:
    """
    Configure Loguru for the application.

    Args:
        environment: "development" for colored console, anything else for JSON
        log_dir: Directory for the rotating file sink; None disables it
    """
    logger.remove()

    is_dev = environment == "development"

    if is_dev:
        logger.add(
            sys.stderr,
            format=LOG_FORMAT,
            level="DEBUG",
            filter=correlation_filter,
            colorize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="{message}",
            level="INFO",
            filter=correlation_filter,
            serialize=True,
        )

    if not log_dir:
        return

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logger.add(
        str(Path(log_dir) / "civicpulse.log"),
        format=LOG_FORMAT if is_dev else "{message}",
        level="INFO",
        filter=correlation_filter,
        rotation="10 MB",
        retention="7 days",
        serialize=not is_dev,
    )
