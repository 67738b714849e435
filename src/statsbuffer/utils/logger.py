"""Logging configuration."""

import logging
from pathlib import Path
from typing import Optional, Union
from rich.logging import RichHandler
from ..settings import settings

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _console_handler() -> logging.Handler:
    handler = RichHandler(
        rich_tracebacks=settings.rich_tracebacks,
        show_time=True,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _file_handler(log_file: Union[str, Path]) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance."""
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

        # Console handler with rich
        logger.addHandler(_console_handler())

        # File handler
        if settings.log_file:
            logger.addHandler(_file_handler(settings.log_file))

    return logger


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    """Configure the 'statsbuffer' logger hierarchy."""
    level_name = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    logger = logging.getLogger("statsbuffer")
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_console_handler())
    if log_file:
        logger.addHandler(_file_handler(log_file))

    return logger
