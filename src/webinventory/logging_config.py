"""Logging configuration for the web inventory crawler."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

QUIET_LOGGERS = ('asyncio', 'matplotlib', 'PIL', 'urllib3')


def default_log_file(log_dir: str = "logs") -> str:
    """Return a fresh per-run log file path: ``logs/app-<timestamp>.log``."""
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    return str(Path(log_dir) / f"app-{timestamp}.log")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None
) -> None:
    """Configure console and file logging for an inventory run.

    The console shows ``level`` and above. The log file, when given,
    always records DEBUG so a failed run can be traced afterwards.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path; parent directories are created
        format_string: Optional format applied to both handlers
    """
    console_level = getattr(logging, level.upper(), logging.INFO)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(format_string or CONSOLE_FORMAT))
    handlers = [console]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(format_string or FILE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if log_file else console_level,
        handlers=handlers,
        force=True
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
