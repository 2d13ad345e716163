"""Loguru sink configuration."""

import sys

from loguru import logger

from wa_operator.config.schema import LoggingConfig


def configure_logging(level: str = "INFO", file: str = "") -> None:
    """Replace the default sink with stderr at `level`, plus an optional rotating file."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan> - <level>{message}</level>",
    )
    if file:
        logger.add(file, level=level.upper(), rotation="10 MB", retention=5, enqueue=True)


def configure_from(config: LoggingConfig, verbose: bool = False) -> None:
    configure_logging("DEBUG" if verbose else config.level, config.file)
