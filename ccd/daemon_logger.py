"""
Centralized logging for the CCD daemon.
Logs to the console and, optionally, to daily files.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "ccd"


def setup_logging(verbose: bool = False, log_dir: Optional[str] = None,
                  level: str = "INFO") -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbose: Log everything at DEBUG, including recoverable failures.
        log_dir: When set, also write ccd_<date>.log and ccd_errors_<date>.log there.
        level: Console level when not verbose.

    Returns:
        The configured "ccd" logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    console_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(logging.DEBUG if verbose else console_level)
    logger.propagate = False

    # Clear existing handlers to avoid duplicates
    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s: %(message)s'))
    logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime('%Y-%m-%d')
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        file_handler = logging.FileHandler(log_path / f"ccd_{today}.log", encoding='utf-8')
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

        error_handler = logging.FileHandler(log_path / f"ccd_errors_{today}.log", encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        logger.addHandler(error_handler)

    return logger
