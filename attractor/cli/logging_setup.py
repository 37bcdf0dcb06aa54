"""Logging for the ``attractor`` command.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
attached here, once per CLI invocation, to the package root logger.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "attractor"

FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _level_number(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def _file_handler(path: Path, level: int) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(path), encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATEFMT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    *,
    console: Console | None = None,
) -> logging.Logger:
    """Route ``attractor.*`` log records to a Rich console and optionally a file.

    Calling it again replaces the handlers from the previous call. An
    unrecognised *level* name is treated as ``INFO``.
    """
    numeric = _level_number(level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric)

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=True,
        show_path=False,
        markup=False,
    )
    console_handler.setLevel(numeric)
    logger.addHandler(console_handler)

    if log_file is not None:
        logger.addHandler(_file_handler(Path(log_file), numeric))

    return logger
