"""Logging setup for entry-point scripts."""

import logging
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = '%(asctime)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(
    name: str = '',
    log_path: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Set up console logging and, optionally, a clean log file.

    The library modules only create loggers; scripts call this once to decide
    where records go. Calling it again replaces the previous handlers.

    Args:
        name: Logger to configure ('' is the root logger)
        log_path: Optional file to also write records to (overwritten)
        level: Logging level

    Returns:
        The configured logger
    """
    run_logger = logging.getLogger(name)
    run_logger.setLevel(level)
    run_logger.handlers.clear()  # Clear any existing handlers

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    run_logger.addHandler(console_handler)

    if log_path is not None:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode='w')
        file_handler.setFormatter(formatter)
        run_logger.addHandler(file_handler)

    return run_logger
