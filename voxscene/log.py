"""
Logging helpers.

The library only ever logs through module loggers obtained from
``get_logger``; ``setup_logging`` is for applications and tests that want
console (and optionally file) output.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    "debug": "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d: %(message)s",
}


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None,
                  format_style: str = "detailed") -> logging.Logger:
    """
    Configure the ``voxscene`` logger hierarchy.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file to log to in addition to stdout
        format_style: One of "simple", "detailed", "debug"

    Returns:
        The configured package logger
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    formatter = logging.Formatter(FORMATS.get(format_style, FORMATS["detailed"]),
                                  datefmt='%H:%M:%S')

    package_logger = logging.getLogger("voxscene")
    package_logger.setLevel(numeric_level)

    for handler in package_logger.handlers[:]:
        if not isinstance(handler, logging.NullHandler):
            package_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)
