"""Utility functions for VoSync."""

import os
import re
import logging
from typing import Optional

from .exceptions import FileSystemError

logger = logging.getLogger(__name__)

_SRT_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2}):(\d{2})[,. ](\d{1,3})\s*$")

def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e

def remove_file_quietly(file_path: Optional[str]) -> None:
    """Removes a file if it exists, logging (not raising) on failure."""
    if file_path and os.path.exists(file_path):
        try:
            os.remove(file_path)
        except OSError as e:
            logger.warning(f"Could not remove file {file_path}: {e}")

def format_time_srt(seconds: float) -> str:
    """
    Formats seconds into SRT time format HH:MM:SS,ms.

    Args:
        seconds: Time in seconds.

    Returns:
        Formatted time string.
    """
    if seconds < 0:
        seconds = 0.0 # Ensure non-negative time
    milliseconds = round(seconds * 1000)
    hrs = milliseconds // 3600000
    milliseconds %= 3600000
    mins = milliseconds // 60000
    milliseconds %= 60000
    secs = milliseconds // 1000
    milliseconds %= 1000
    return f"{hrs:02d}:{mins:02d}:{secs:02d},{milliseconds:03d}"

def parse_time_srt(value: str) -> Optional[float]:
    """
    Parses an SRT timestamp into seconds.

    Comma, dot and (legacy) space are all accepted as the fractional
    separator. Returns None when the value is not a timestamp.
    """
    match = _SRT_TIME_RE.match(value)
    if not match:
        return None
    hrs, mins, secs, frac = match.groups()
    if int(mins) > 59 or int(secs) > 59:
        return None
    millis = int(frac.ljust(3, "0"))
    return int(hrs) * 3600 + int(mins) * 60 + int(secs) + millis / 1000.0

def format_time_lrc(seconds: float) -> str:
    """Formats seconds as an LRC tag body, mm:ss.cc (minutes may exceed 59)."""
    if seconds < 0:
        seconds = 0.0
    centis = int(round(seconds * 1000)) // 10
    mins = centis // 6000
    centis %= 6000
    return f"{mins:02d}:{centis // 100:02d}.{centis % 100:02d}"

def word_count(text: str) -> int:
    """Counts whitespace separated words."""
    return len(text.split())

def default_worker_count(reserve: int = 1, cap: int = 8) -> int:
    """CPU cores minus a reserve, kept between 1 and `cap`."""
    return max(1, min(cap, (os.cpu_count() or 1) - reserve))
