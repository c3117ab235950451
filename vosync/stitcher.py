"""Joins voiceover segments and silences into one continuous track."""

import asyncio
import logging
import os
from typing import Dict, List, Optional

from .encoder import MediaEncoder
from .exceptions import EncoderError, FileSystemError, StitchError
from .models import SubtitleEntry, VoSegment
from .pauses import HEAD_SILENCE_INDEX
from .slicer import SEGMENTS_DIR, STITCHED_FILENAME

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "concat_list.txt"


def silence_filename(seconds: float) -> str:
    return f"silence_{seconds:g}s.wav"


def manifest_line(path: str) -> str:
    """One concat demuxer line, with single quotes escaped."""
    escaped = os.path.abspath(path).replace("'", "'\\''")
    return f"file '{escaped}'"


class VoStitcher:
    """
    Builds the concat manifest and runs the encoder's concat mode once.

    Entries without a usable segment are filled with silence of the
    requested slice length, so the entries after them keep their timing.
    """

    def __init__(self, encoder: MediaEncoder):
        self.encoder = encoder

    async def stitch(
        self,
        entries: List[SubtitleEntry],
        segments: List[VoSegment],
        pauses: Dict[int, float],
        work_dir: str
    ) -> str:
        """
        Returns the path of `<work_dir>/stitched_vo.mp3`.

        Raises:
            StitchError: If a silence file or the final track cannot be produced.
        """
        segments_dir = os.path.join(work_dir, SEGMENTS_DIR)
        manifest_path = os.path.join(segments_dir, MANIFEST_FILENAME)
        output_path = os.path.join(work_dir, STITCHED_FILENAME)
        silence_cache: Dict[float, str] = {}

        files = await self.build_playlist(entries, segments, pauses, segments_dir, silence_cache)
        self.write_manifest(manifest_path, files)
        logger.info(f"Stitching {len(files)} files ({len(silence_cache)} distinct silences) into {output_path}")

        try:
            await asyncio.to_thread(self.encoder.concat_audio, manifest_path, output_path)
        except EncoderError as e:
            logger.error(f"Stitching failed: {e}")
            raise StitchError(f"Failed to stitch voiceover: {e}", stderr=e.stderr) from e
        return output_path

    async def build_playlist(
        self,
        entries: List[SubtitleEntry],
        segments: List[VoSegment],
        pauses: Dict[int, float],
        segments_dir: str,
        silence_cache: Optional[Dict[float, str]] = None
    ) -> List[str]:
        """Ordered file list: head silence, then each segment followed by its pause."""
        cache = silence_cache if silence_cache is not None else {}
        by_index = {s.index: s for s in segments}
        files: List[str] = []

        head = pauses.get(HEAD_SILENCE_INDEX, 0.0)
        if head > 0:
            files.append(await self._silence(head, segments_dir, cache))

        for position, entry in enumerate(entries):
            segment = by_index.get(entry.index)
            if segment is not None and segment.is_valid and os.path.exists(segment.audio_path):
                files.append(segment.audio_path)
            else:
                filler = segment.duration if segment is not None and segment.duration > 0 else entry.padded_duration
                logger.warning(f"Entry {entry.index} has no valid segment, filling {filler:.3f}s of silence")
                if filler > 0:
                    files.append(await self._silence(filler, segments_dir, cache))

            pause = pauses.get(position, 0.0)
            if pause > 0:
                files.append(await self._silence(pause, segments_dir, cache))
        return files

    @staticmethod
    def write_manifest(manifest_path: str, files: List[str]) -> None:
        try:
            with open(manifest_path, "w", encoding="utf-8") as f:
                for path in files:
                    f.write(manifest_line(path) + "\n")
        except OSError as e:
            raise FileSystemError(f"Could not write concat manifest {manifest_path}: {e}") from e

    async def _silence(self, seconds: float, segments_dir: str, cache: Dict[float, str]) -> str:
        key = round(seconds, 3)
        if key in cache:
            return cache[key]
        path = os.path.join(segments_dir, silence_filename(key))
        try:
            await asyncio.to_thread(self.encoder.generate_silence, path, key)
        except EncoderError as e:
            raise StitchError(f"Failed to generate {key}s of silence: {e}", stderr=e.stderr) from e
        cache[key] = path
        return path
