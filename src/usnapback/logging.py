# ================================================================================
# Logging configuration using loguru
# ================================================================================

import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
)


def configure_console_logging(level: str = "INFO") -> None:
    """Replace all loguru sinks with a single coloured stderr sink."""
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)


def configure_file_logging(log_dir: str | Path = ".", debug: bool = False) -> str:
    """
    Configure file logging with a timestamped log file.

    Args:
        log_dir: Directory to write log files to. Defaults to current directory.
        debug: Write DEBUG messages (stem growth trace) instead of INFO+.

    Returns:
        Path to the log file.
    """
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_filename = f"{log_dir}/usnapback_{timestamp}.log"

    logger.add(
        log_filename,
        format=FILE_FORMAT,
        level="DEBUG" if debug else "INFO",
        rotation="10 MB",
    )

    return log_filename


__all__ = ["logger", "configure_console_logging", "configure_file_logging"]
