"""
Logging setup: one console handler on the root logger.
Modules log through logging.getLogger(__name__).
"""
from __future__ import annotations

import logging
import os
import sys

_logging_initialized = False

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> None:
    """Install the console handler once. Level from argument or MATCHDAY_LOG_LEVEL (default INFO)."""
    global _logging_initialized
    if _logging_initialized:
        return
    _logging_initialized = True

    level_name = (level or os.environ.get("MATCHDAY_LOG_LEVEL", "INFO")).upper()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    # Third-party noise
    logging.getLogger("passlib").setLevel(logging.WARNING)
