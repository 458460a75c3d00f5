"""
Logging Setup Module

Configures the installer log: one append-only text file plus a mirror on
standard output, both using the same timestamped format.
"""

import logging
import sys
from pathlib import Path
from typing import Union

LOGGER_NAME = 'imagesmith'
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(log_file: Union[str, Path], level: int = logging.INFO) -> logging.Logger:
    """
    Attach file and stdout handlers to the package logger.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        log_file: Path of the log file (created with its parent directory)
        level: Minimum level written to both handlers

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger
