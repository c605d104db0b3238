"""
Logging Configuration

Console output plus an optional rotating log file. Call setup_logging() once
at startup, then use logging.getLogger(__name__) in each module.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

MAX_BYTES = 1024 * 1024  # 1 MB per log file
BACKUP_COUNT = 3


def setup_logging(console_level=logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure application-wide logging"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console)

    if log_file is not None:
        handler = RotatingFileHandler(
            log_file,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8'
        )
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        root_logger.addHandler(handler)

    # Flask's request log is noise for a local control panel
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
