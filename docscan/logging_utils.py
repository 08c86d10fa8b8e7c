"""
Shared logging setup for the scanner package and the app.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = "docscan"


def setup_logging(
    verbose: bool = False,
    log_file: Optional[Path] = None,
    level: Union[int, str, None] = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbose: Whether to enable debug-level console output
        log_file: Optional file that receives detailed (debug) logs
        level: Explicit console level, overrides verbose when given

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)

    # Streamlit reruns the script on every interaction; avoid stacking handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if level is None:
        level = logging.DEBUG if verbose else logging.INFO

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(level)

    logger.propagate = False
    return logger
