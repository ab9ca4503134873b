# spendcast/logger.py
import os
import sys
import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Install stdout (and optionally file) handlers on the "spendcast" logger.

    Level falls back to SPENDCAST_LOG_LEVEL, file to SPENDCAST_LOG_FILE.
    Calling it again replaces the handlers so repeated runs don't duplicate output.
    """
    level = (level or os.getenv("SPENDCAST_LOG_LEVEL") or "INFO").upper()
    log_file = log_file or os.getenv("SPENDCAST_LOG_FILE")

    logger = logging.getLogger("spendcast")
    logger.setLevel(getattr(logging, level, logging.INFO))

    # Remove previous handlers to ensure logging updates in repeated runs
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
