"""Logging setup for the FlowForge CLI.

Application loggers (``src.*``) follow LOG_LEVEL; HTTP, database and model
SDK loggers are held at WARNING or above so a generation run stays readable.
Importing this module configures logging once.
"""

import logging
import sys
from typing import Literal, TextIO

from src.settings import get_settings

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

# Library loggers and the most verbose level each may emit
LIBRARY_LEVELS: dict[str, int] = {
    "alembic": logging.WARNING,
    "asyncio": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.ERROR,
    "sqlalchemy.engine": logging.ERROR,
    "sqlalchemy.pool": logging.WARNING,
    "langchain_core": logging.WARNING,
    "langchain_openai": logging.WARNING,
    "openai": logging.WARNING,
}

CONSOLE_FORMAT = "%(asctime)s %(levelname)s | %(name)s | %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)s | %(name)s:%(lineno)d | %(message)s"


def quiet_libraries() -> None:
    """Apply LIBRARY_LEVELS and drop handlers libraries installed themselves."""
    for name, level in LIBRARY_LEVELS.items():
        library_logger = logging.getLogger(name)
        library_logger.setLevel(level)
        library_logger.handlers.clear()


def configure_logging(level: LogLevel | None = None, stream: TextIO | None = None) -> None:
    """Route all records to one stderr handler.

    Args:
        level: overrides settings.log_level
        stream: handler target, stderr by default so stdout stays clean for JSON
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(
        logging.Formatter(DEBUG_FORMAT if settings.debug else CONSOLE_FORMAT, datefmt="%H:%M:%S")
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    logging.getLogger("src").setLevel(log_level)

    quiet_libraries()


configure_logging()
