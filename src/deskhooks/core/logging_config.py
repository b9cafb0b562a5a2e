"""Logging Configuration - Centralized logging setup.

Provides a standard logging configuration that defaults to INFO level
so payload bodies logged at DEBUG stay out of production logs.
"""

import logging
import sys
from pathlib import Path
from typing import Union


def setup_logging(
    log_level: Union[int, str] = logging.INFO,
    log_file: str = "deskhooks.log",
    log_dir: str = "logs",
) -> None:
    """Configure logging for the application.

    Args:
        log_level: Logging level or level name (default: INFO)
        log_file: Log file name inside log_dir
        log_dir: Directory for the log file
    """
    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path / log_file, encoding='utf-8')
        ]
    )

    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.info(f"Logging initialized ({logging.getLevelName(log_level)} level)")
