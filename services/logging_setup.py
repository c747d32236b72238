"""Logging configuration for the recruiting services."""

import logging
import sys
from pathlib import Path
from typing import Optional


def setup_logging(
    verbose: bool = False,
    log_file: Optional[str] = None,
    level: str = "INFO",
) -> logging.Logger:
    """Configure console (+ optional file) logging. Returns the project logger."""
    logger = logging.getLogger("recruiting")
    console_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(logging.DEBUG if log_file or verbose else console_level)

    # Streamlit reruns the script; don't stack handlers
    if getattr(logger, "_recruiting_configured", False):
        return logger

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(console)

    # File handler for full debug log
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    logger._recruiting_configured = True
    return logger
