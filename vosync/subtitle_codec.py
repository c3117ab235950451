"""Handles reading and writing subtitle files (SRT) and the LRC reference export."""

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import SubtitleEntry, TextOverlay
from .exceptions import FileSystemError, FormattingError
from .utils import ensure_dir_exists, format_time_lrc, format_time_srt, parse_time_srt

logger = logging.getLogger(__name__)

_BLOCK_SPLIT_RE = re.compile(r"\n[ \t]*\n")
_HTML_TAG_RE = re.compile(r"<.*?>")
_STYLE_TAG_RE = re.compile(r"\{.*?\}")
_DASHES = ("-", "—", "–")
_WHITESPACE_RE = re.compile(r"\s+")
_LEADING_TIME_RE = re.compile(r"\d{1,2}:\d{2}:\d{2}[,. ]\d{1,3}")

# Gap given to an overlay marker after the final entry, where no next entry bounds it
TRAILING_OVERLAY_SECONDS = 2.0


def clean_subtitle_text(text: str) -> str:
    """Strips markup from subtitle text and normalizes dashes and whitespace."""
    if not text:
        return ""
    text = _HTML_TAG_RE.sub("", text)
    text = _STYLE_TAG_RE.sub("", text)
    for dash in _DASHES:
        text = text.replace(dash, " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


class SubtitleCodec(ABC):
    """Abstract base class for subtitle codecs."""

    @abstractmethod
    def parse(self, content: str) -> List[SubtitleEntry]:
        """
        Parses subtitle text into entries.

        Malformed blocks are skipped; this never raises for bad input.
        """
        pass

    @abstractmethod
    def format(self, entries: List[SubtitleEntry], overlays: Optional[Dict[int, TextOverlay]] = None) -> str:
        """Serializes entries (and optional overlay markers) to subtitle text."""
        pass

    def read_file(self, path: str) -> List[SubtitleEntry]:
        """
        Reads and parses a subtitle file.

        Raises:
            FileNotFoundError: If the file does not exist.
            FileSystemError: If the file cannot be read.
        """
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Subtitle file not found: {path}")
        try:
            # utf-8-sig drops the BOM some captioning tools write
            with open(path, "r", encoding="utf-8-sig") as f:
                content = f.read()
        except (IOError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read subtitle file {path}: {e}", exc_info=True)
            raise FileSystemError(f"Could not read subtitle file {path}: {e}") from e
        entries = self.parse(content)
        logger.info(f"Parsed {len(entries)} entries from {path}")
        return entries

    def write_file(
        self,
        path: str,
        entries: List[SubtitleEntry],
        overlays: Optional[Dict[int, TextOverlay]] = None
    ) -> str:
        """
        Serializes entries and writes them to `path`.

        Raises:
            FormattingError: If writing fails.
        """
        out_dir = os.path.dirname(path)
        if out_dir:
            ensure_dir_exists(out_dir)
        content = self.format(entries, overlays)
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        except IOError as e:
            logger.error(f"Failed to write subtitle file to {path}: {e}", exc_info=True)
            raise FormattingError(f"Could not write subtitle file: {e}") from e
        logger.info(f"Wrote {len(entries)} entries to {path}")
        return path


class SRTCodec(SubtitleCodec):
    """Reads and writes the SubRip Text (SRT) format."""

    def parse(self, content: str) -> List[SubtitleEntry]:
        result: List[SubtitleEntry] = []
        if not content or not content.strip():
            return result

        content = content.replace("\r\n", "\n").replace("\r", "\n")
        for block_no, block in enumerate(_BLOCK_SPLIT_RE.split(content), start=1):
            lines = [line.strip() for line in block.split("\n") if line.strip()]
            if len(lines) < 2:
                if lines:
                    logger.debug(f"Skipping block {block_no}: too few lines")
                continue

            # The time line is normally the first or second line
            time_line_idx = next((i for i, line in enumerate(lines[:3]) if "-->" in line), -1)
            if time_line_idx == -1:
                logger.warning(f"Skipping block {block_no}: no time range found ({lines[0][:40]!r})")
                continue

            time_parts = lines[time_line_idx].split("-->")
            if len(time_parts) != 2:
                logger.warning(f"Skipping block {block_no}: malformed time line {lines[time_line_idx]!r}")
                continue
            start = parse_time_srt(time_parts[0])
            # Some tools append positioning after the end time
            end_match = _LEADING_TIME_RE.match(time_parts[1].strip())
            end_field = end_match.group(0) if end_match else ""
            end = parse_time_srt(end_field)
            if start is None or end is None:
                logger.warning(f"Skipping block {block_no}: unparsable time line {lines[time_line_idx]!r}")
                continue
            if end <= start:
                logger.warning(f"Skipping block {block_no}: end {end:.3f}s is not after start {start:.3f}s")
                continue

            text = clean_subtitle_text(" ".join(lines[time_line_idx + 1:]))
            if not text:
                logger.debug(f"Dropping block {block_no}: empty text after cleaning")
                continue

            index = len(result) + 1
            if time_line_idx > 0:
                try:
                    index = int(lines[time_line_idx - 1])
                except ValueError:
                    pass  # best effort, keep positional index

            result.append(SubtitleEntry(index=index, start_time=start, end_time=end, text=text))

        return result

    def format(self, entries: List[SubtitleEntry], overlays: Optional[Dict[int, TextOverlay]] = None) -> str:
        blocks: List[str] = []
        srt_index = 1

        for i, entry in enumerate(entries):
            blocks.append(
                f"{srt_index}\n"
                f"{format_time_srt(entry.start_time)} --> {format_time_srt(entry.end_time)}\n"
                f"{entry.text}\n"
            )
            srt_index += 1

            overlay = overlays.get(i) if overlays else None
            if overlay is None:
                continue

            gap_start = entry.end_time
            gap_end = entries[i + 1].start_time if i < len(entries) - 1 else gap_start + TRAILING_OVERLAY_SECONDS
            if gap_end <= gap_start:
                logger.debug(f"No gap after entry {entry.index}; overlay marker not emitted")
                continue

            marker_lines = [f"[OVERLAY:{_overlay_type_name(overlay)}]"]
            if overlay.reference and overlay.reference.strip():
                marker_lines.append(f"[REF] {overlay.reference.strip()}")
            if overlay.arabic and overlay.arabic.strip():
                marker_lines.append(f"[ARABIC] {overlay.arabic.strip()}")
            blocks.append(
                f"{srt_index}\n"
                f"{format_time_srt(gap_start)} --> {format_time_srt(gap_end)}\n"
                + "\n".join(marker_lines) + "\n"
            )
            srt_index += 1

        return "\n".join(blocks)

    def format_lrc(self, entries: List[SubtitleEntry]) -> str:
        """Formats entries as LRC lines, `[mm:ss.cc]text`."""
        return "".join(f"[{format_time_lrc(e.start_time)}]{e.text}\n" for e in entries)

    def write_lrc(self, path: str, entries: List[SubtitleEntry]) -> str:
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.format_lrc(entries))
        except IOError as e:
            logger.error(f"Failed to write LRC file to {path}: {e}", exc_info=True)
            raise FormattingError(f"Could not write LRC file: {e}") from e
        return path


def _overlay_type_name(overlay: TextOverlay) -> str:
    return getattr(overlay.type, "value", str(overlay.type))
