"""Cuts the source voiceover into one segment per subtitle entry."""

import asyncio
import logging
import os
import shutil
from typing import List, Optional

from .encoder import MediaEncoder
from .exceptions import EncoderError, FileSystemError, SyncCancelledError
from .models import (SegmentMismatch, SliceResult, SubtitleEntry, ValidationIssue,
                     ValidationResult, VoSegment)
from .utils import default_worker_count, ensure_dir_exists, remove_file_quietly

logger = logging.getLogger(__name__)

SEGMENTS_DIR = "vo_segments"
STITCHED_FILENAME = "stitched_vo.mp3"
MISMATCH_REPORT_MS = 50.0


def segment_filename(index: int) -> str:
    return f"segment_{index:03d}.wav"


class VoSlicer:
    """
    Slices a voiceover by each entry's original timestamps plus padding.

    A failed slice is recorded on its segment and does not stop the run.
    Encoder calls run in worker threads, at most `workers` at a time.
    """

    def __init__(
        self,
        encoder: MediaEncoder,
        workers: Optional[int] = None,
        valid_drift_ms: float = 100.0,
        error_drift_ms: float = 200.0
    ):
        self.encoder = encoder
        self.workers = workers if workers and workers > 0 else default_worker_count()
        self.valid_drift_ms = valid_drift_ms
        self.error_drift_ms = error_drift_ms

    async def slice_all(
        self,
        source_path: str,
        entries: List[SubtitleEntry],
        work_dir: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> SliceResult:
        """
        Slices every entry into `<work_dir>/vo_segments/segment_NNN.wav`.

        Raises:
            FileNotFoundError: If the source voiceover does not exist.
            SyncCancelledError: If `cancel_event` is set before all slices are cut.
                                Files written by this run are removed first.
        """
        if not os.path.exists(source_path):
            raise FileNotFoundError(f"Voiceover file not found: {source_path}")

        output_dir = os.path.join(work_dir, SEGMENTS_DIR)
        self._reset_output(work_dir, output_dir)

        result = SliceResult(source_path=source_path, output_dir=output_dir)
        try:
            result.source_duration = await asyncio.to_thread(self.encoder.probe_duration, source_path)
        except EncoderError as e:
            logger.warning(f"Could not probe voiceover duration, slices will not be clamped: {e}")
            result.source_duration = 0.0

        logger.info(f"Slicing {len(entries)} segments from {source_path} "
                    f"(duration {result.source_duration:.3f}s, {self.workers} workers)")

        semaphore = asyncio.Semaphore(self.workers)
        abort = asyncio.Event()
        tasks = [
            asyncio.ensure_future(self._slice_one(entry, result, output_dir, semaphore, cancel_event, abort))
            for entry in entries
        ]
        try:
            segments = await asyncio.gather(*tasks)
        except Exception:
            # Threads already running cannot be interrupted, wait for them before cleaning up
            abort.set()
            await asyncio.gather(*tasks, return_exceptions=True)
            for entry in entries:
                remove_file_quietly(os.path.join(output_dir, segment_filename(entry.index)))
            logger.error("Slicing aborted, removed partial segments")
            raise

        if cancel_event is not None and cancel_event.is_set():
            for segment in segments:
                if segment is not None:
                    remove_file_quietly(segment.audio_path)
            logger.warning("Slicing cancelled, removed partial segments")
            raise SyncCancelledError("Voiceover slicing was cancelled")

        result.segments = sorted((s for s in segments if s is not None), key=lambda s: s.index)
        logger.info(f"Sliced {len(result.valid_segments)}/{len(result.segments)} valid segments, "
                    f"{len(result.errors)} errors, {len(result.warnings)} warnings")
        return result

    async def _slice_one(
        self,
        entry: SubtitleEntry,
        result: SliceResult,
        output_dir: str,
        semaphore: asyncio.Semaphore,
        cancel_event: Optional[asyncio.Event],
        abort: asyncio.Event
    ) -> Optional[VoSegment]:
        async with semaphore:
            if abort.is_set() or (cancel_event is not None and cancel_event.is_set()):
                return None

            start = entry.slice_start
            end = entry.slice_end
            if result.source_duration > 0 and end > result.source_duration:
                message = (f"Segment {entry.index}: end {end:.3f}s clamped to "
                           f"voiceover duration {result.source_duration:.3f}s")
                logger.warning(message)
                result.warnings.append(message)
                end = result.source_duration

            duration = end - start
            segment = VoSegment(
                index=entry.index,
                audio_path=os.path.join(output_dir, segment_filename(entry.index)),
                start_time=start,
                end_time=end,
                duration=duration,
                text=entry.text,
            )
            if duration <= 0:
                segment.validation_error = f"Empty slice window ({start:.3f}s - {end:.3f}s)"
                result.errors.append(f"Segment {entry.index}: {segment.validation_error}")
                return segment

            try:
                await asyncio.to_thread(self.encoder.slice_audio, result.source_path, segment.audio_path, start, duration)
                segment.actual_duration = await asyncio.to_thread(self.encoder.probe_duration, segment.audio_path)
            except EncoderError as e:
                segment.validation_error = str(e)
                result.errors.append(f"Segment {entry.index}: {e}")
                logger.error(f"Slice failed for segment {entry.index}: {e}\n{e.stderr or ''}")
                return segment

            segment.drift_ms = abs(segment.actual_duration - duration) * 1000.0
            segment.is_valid = segment.drift_ms <= self.error_drift_ms
            detail = (f"Duration drift {segment.drift_ms:.0f}ms "
                      f"(expected {duration:.3f}s, got {segment.actual_duration:.3f}s)")
            if not segment.is_valid:
                segment.validation_error = detail
                logger.warning(f"Segment {entry.index}: {segment.validation_error}")
            elif segment.drift_ms > self.valid_drift_ms:
                segment.warning = detail
                logger.info(f"Segment {entry.index}: {segment.warning}")
            return segment

    @staticmethod
    def _reset_output(work_dir: str, output_dir: str) -> None:
        """Removes segments and stitched audio left over from a previous run."""
        try:
            if os.path.isdir(output_dir):
                shutil.rmtree(output_dir)
        except OSError as e:
            raise FileSystemError(f"Could not clean segment directory {output_dir}: {e}") from e
        ensure_dir_exists(output_dir)
        remove_file_quietly(os.path.join(work_dir, STITCHED_FILENAME))


def validate_segments(
    segments: List[VoSegment],
    warn_ms: float = 100.0,
    error_ms: float = 200.0
) -> ValidationResult:
    """
    Scores how closely measured segment durations match the requested ones.

    Drift above `error_ms` marks the segment invalid, drift between `warn_ms`
    and `error_ms` is a warning. The score starts at the valid share and is
    reduced by 5 points per error and 2 per warning.
    """
    result = ValidationResult()
    for segment in segments:
        if segment.actual_duration <= 0:
            segment.is_valid = False
            result.invalid_segments += 1
            result.issues.append(ValidationIssue(
                segment.index, segment.text, segment.validation_error or "Segment has no measurable audio"))
            continue

        drift_ms = abs(segment.actual_duration - segment.duration) * 1000.0
        segment.drift_ms = drift_ms
        if drift_ms > MISMATCH_REPORT_MS:
            percent = drift_ms / (segment.duration * 1000.0) * 100.0 if segment.duration > 0 else 0.0
            result.mismatches.append(SegmentMismatch(
                segment.index, segment.text, segment.duration, segment.actual_duration,
                round(drift_ms, 1), round(percent, 1)))

        if drift_ms > error_ms:
            segment.is_valid = False
            segment.validation_error = f"Duration drift {drift_ms:.0f}ms exceeds {error_ms:.0f}ms"
            result.invalid_segments += 1
            result.issues.append(ValidationIssue(segment.index, segment.text, segment.validation_error))
        elif drift_ms > warn_ms:
            segment.is_valid = True
            segment.warning = f"Duration drift {drift_ms:.0f}ms"
            result.warning_segments += 1
            result.valid_segments += 1
            result.issues.append(ValidationIssue(segment.index, segment.text, segment.warning, severity="Warning"))
        else:
            segment.is_valid = True
            result.valid_segments += 1

    total = len(segments)
    if total:
        score = result.valid_segments / total * 100.0
        score -= result.invalid_segments * 5.0 + result.warning_segments * 2.0
        result.accuracy_score = round(max(0.0, min(100.0, score)), 1)
    logger.info(f"Validation: {result.valid_segments} valid, {result.invalid_segments} invalid, "
                f"{result.warning_segments} warnings, accuracy {result.accuracy_score}%")
    return result
