"""
Logging configuration for the analysis scripts.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler


def setup_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the 'flatfish_cpue' package logger.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to also write plain-text logs to.
    """
    logger = logging.getLogger('flatfish_cpue')
    logger.setLevel(level)

    # Avoid duplicate output when scripts call this more than once
    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = RichHandler(level=level, show_path=False, rich_tracebacks=True)
    console_handler.setFormatter(logging.Formatter('%(message)s', datefmt='%H:%M:%S'))
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S',
        ))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
