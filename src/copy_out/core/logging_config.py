"""Centralized logging configuration for copy-out."""

import os
import sys
import logging
import threading
from typing import Optional

ROOT_LOGGER_NAME = "copy-out"

# thaw rows and copy batches log from pool workers, so the structured form names the thread
_FORMATS = {
    "structured": (
        "%(asctime)s | %(name)s | %(levelname)-8s | %(threadName)s | "
        "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
    ),
    "simple": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Setup centralized logging with environment variable configuration.

    Args:
        name: Logger name (defaults to "copy-out")
        level: Log level override (defaults to env var or INFO)
        format_type: Logging format ("structured" or "simple")

    Environment Variables:
        LOG_LEVEL: Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_FORMAT: Set format type ("structured" or "simple"), wins over format_type
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if not logger.handlers:
        chosen = os.getenv("LOG_FORMAT", format_type).lower()
        if chosen == "structured":
            formatter = logging.Formatter(_FORMATS["structured"], datefmt=_DATE_FORMAT)
        else:
            formatter = logging.Formatter(_FORMATS["simple"])
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    return setup_logger(name)


def get_worker_logger(component: str) -> logging.Logger:
    """
    Logger for code running inside a fan-out worker thread.

    Named `copy-out.<component>.<thread name>` so interleaved lines from
    concurrent rows and batches stay attributable.
    """
    thread_name = threading.current_thread().name
    return setup_logger(f"{ROOT_LOGGER_NAME}.{component}.{thread_name}")


logger = setup_logger()
