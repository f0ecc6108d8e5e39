"""
Centralized logging setup for deployment runs.

Every run writes to the console and to a timestamped file under the
deployment log directory, so ``deploy-engine view-logs`` can find the
latest run afterwards.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

LOG_FILE_PREFIX = "deploy-"
FILE_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
CONSOLE_FORMAT = '[%(levelname)s] %(message)s'


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None,
                  logger_name: str = "deploy_engine") -> Optional[Path]:
    """
    Configure the package logger with console and file handlers.

    Args:
        log_level: Logging level name
        log_dir: Directory for the run log file (no file handler when None)
        logger_name: Root logger of the package

    Returns:
        Path of the run log file, or None when file logging is disabled
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear any existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    log_file = None
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = log_path / f"{LOG_FILE_PREFIX}{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logger.addHandler(file_handler)

    configure_third_party_loggers()
    return log_file


def configure_third_party_loggers():
    """Configure third-party library loggers to reduce noise"""
    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('requests').setLevel(logging.WARNING)


def latest_log_file(log_dir: str) -> Optional[Path]:
    """Most recent deployment log in ``log_dir``, if any."""
    log_path = Path(log_dir)
    if not log_path.is_dir():
        return None
    logs = sorted(log_path.glob(f"{LOG_FILE_PREFIX}*.log"), key=lambda p: p.stat().st_mtime)
    return logs[-1] if logs else None


def tail_lines(path: Path, lines: int = 50) -> List[str]:
    """Last ``lines`` lines of a text file; empty when the file is missing."""
    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            return [line.rstrip('\n') for line in f.readlines()[-lines:]]
    except FileNotFoundError:
        return []
