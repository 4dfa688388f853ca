"""Opt-in console/file logging for the ``artface`` logger tree.

Library modules only call ``logging.getLogger(__name__)``. Nothing is
configured on import; a host application calls :func:`setup_logging` to see
per-face warnings and batch summaries:

    import artface

    artface.setup_logging(level=logging.DEBUG, log_file="logs/artface.log")
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

ROOT_LOGGER = "artface"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    enable_colors: bool = True,
) -> logging.Logger:
    """Attach handlers to the ``artface`` logger and return it.

    Calling again replaces the handlers installed by the previous call, so
    hosts can change level or destination at runtime. Records do not
    propagate to the root logger once handlers are installed.

    Args:
        level: Threshold for the artface logger and its handlers.
        log_file: Also write uncolored records to this file.
        enable_colors: Colorize console output with colorlog.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False

    console = colorlog.StreamHandler(sys.stderr)
    if enable_colors:
        console.setFormatter(
            colorlog.ColoredFormatter(
                "%(log_color)s" + LOG_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS
            )
        )
    else:
        console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    # decoding EXIF-heavy images makes PIL chatty at DEBUG
    logging.getLogger("PIL").setLevel(max(level, logging.INFO))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the artface tree (``artface.<name>`` for bare names)."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
