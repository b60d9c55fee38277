# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/system/logging_setup.py

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_FILE_NAME = "castore.log"


def setup_logging(verbose: bool = False, local_log: Optional[Path] = None) -> Optional[Path]:
    """Setup loguru logging for command-line use.

    Configures:
    - Console output: WARNING+ (DEBUG+ when verbose)
    - File output: DEBUG+ in local_log/castore.log if a log directory is given

    Library code never calls this; embedding processes configure loguru themselves.

    Returns:
        Path of the log file, or None if file logging is off
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "WARNING",
        format="<level>{level}</level>: {message}",
        colorize=True
    )

    if local_log is None:
        return None

    try:
        log_dir = Path(local_log).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / LOG_FILE_NAME

        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="10 MB",
            retention="30 days",
            compression="gz",
            enqueue=True,
        )
        logger.debug(f"File logging enabled: {log_file}")
        return log_file

    except OSError as e:
        # Don't fail the entire application if logging setup fails
        logger.warning(f"Failed to setup file logging: {e}")
        return None
