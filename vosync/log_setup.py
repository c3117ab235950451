"""Logging configuration for VoSync."""

import logging
import sys
from logging.handlers import RotatingFileHandler
import os
from typing import Optional, Sequence
from .utils import ensure_dir_exists

DEFAULT_LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
SESSION_LOG_FILE = "session.log"

# Third-party loggers that are only useful when debugging them
QUIET_LOGGERS = ("ffmpeg", "asyncio")

def setup_logging(
    log_level: int = logging.INFO,
    log_dir: str = "logs",
    log_file: str = "vosync.log",
    file_level: Optional[int] = None,
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    max_bytes: int = 10 * 1024 * 1024, # 10 MB
    backup_count: int = 5,
    quiet_loggers: Sequence[str] = QUIET_LOGGERS
) -> Optional[str]:
    """
    Configures logging for the application.

    Console output goes to stdout at `log_level`. The rotating file gets
    `file_level`, which can be lower so encoder command lines (logged at
    DEBUG) end up in the file without flooding the console. Calling this
    again replaces the handlers of the previous call.

    Args:
        log_level: Minimum level for the console.
        log_dir: The directory to store log files.
        log_file: The name of the log file.
        file_level: Minimum level for the file. Defaults to `log_level`.
        log_format: The format string for log messages.
        date_format: The format string for timestamps in logs.
        max_bytes: Maximum size of a log file before rotation.
        backup_count: Number of backup log files to keep.
        quiet_loggers: Loggers pinned to WARNING.

    Returns:
        The log file path, or None when the file handler could not be created.
    """
    file_level = log_level if file_level is None else file_level
    logger = logging.getLogger()
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(min(log_level, file_level))
    formatter = logging.Formatter(log_format, datefmt=date_format)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(log_level)
    logger.addHandler(stream_handler)

    log_path = None
    try:
        ensure_dir_exists(log_dir)
        log_path = os.path.join(log_dir, log_file)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(file_level)
        logger.addHandler(file_handler)
        logger.info(f"Logging initialized. Log file: {log_path} "
                    f"(console {logging.getLevelName(log_level)}, file {logging.getLevelName(file_level)})")
    except Exception as e:
        # Console logging still works without the file
        logger.error(f"Failed to set up file logging handler at {log_dir}/{log_file}: {e}", exc_info=True)
        log_path = None

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_path

def attach_session_log(
    work_dir: str,
    level: int = logging.DEBUG,
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT
) -> logging.Handler:
    """
    Adds a plain file handler writing `<work_dir>/session.log`.

    Used by batch runs so every session folder keeps its own log next to its
    output. Remove it with `detach_session_log` when the session ends.
    """
    ensure_dir_exists(work_dir)
    handler = logging.FileHandler(os.path.join(work_dir, SESSION_LOG_FILE), encoding='utf-8')
    handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
    handler.setLevel(level)
    root = logging.getLogger()
    root.addHandler(handler)
    if root.level > level:
        root.setLevel(level)
    return handler

def detach_session_log(handler: logging.Handler) -> None:
    logging.getLogger().removeHandler(handler)
    handler.close()
