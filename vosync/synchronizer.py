"""Orchestrates a voiceover synchronization run."""

import asyncio
import logging
import os
import time
from typing import Dict, List, Optional

from .aligner import FuzzyAligner
from .config_loader import SyncConfig
from .encoder import MediaEncoder
from .exceptions import EncoderError, SliceError, StitchError, SubtitleParseError, SyncCancelledError, VoSyncError
from .expander import SentenceExpander, expansion_stats
from .models import AlignedWindow, SubtitleEntry, SyncResult, TargetSyncResult, TextOverlay
from .pauses import PauseCalculator, compute_padding, position_map
from .retimer import retime_entries
from .slicer import VoSlicer, validate_segments
from .stitcher import VoStitcher
from .subtitle_codec import SRTCodec, SubtitleCodec
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)

EXPANDED_SRT = "expanded.srt"
EXPANDED_LRC = "expanded.lrc"
ADJUSTED_SRT = "adjusted.srt"
ADJUSTED_VO = "adjusted_vo.mp3"
TARGET_CHUNKS_DIR = "target_chunks"
UNALIGNED_DURATION = 2.0


class TimelineSynchronizer:
    """
    Manages the end-to-end process of fitting a voiceover to its subtitle timeline.
    """

    def __init__(
        self,
        config: SyncConfig,
        encoder: MediaEncoder,
        codec: Optional[SubtitleCodec] = None,
        expander: Optional[SentenceExpander] = None,
        pause_calculator: Optional[PauseCalculator] = None,
        aligner: Optional[FuzzyAligner] = None,
        slicer: Optional[VoSlicer] = None,
        stitcher: Optional[VoStitcher] = None
    ):
        """
        Initializes the TimelineSynchronizer.

        Args:
            config: Validated synchronization settings.
            encoder: The media encoder every audio operation goes through.
            codec, expander, pause_calculator, aligner, slicer, stitcher:
                Optional replacements; defaults are built from `config`.
        """
        self.config = config
        self.encoder = encoder
        self.codec = codec or SRTCodec()
        self.expander = expander or SentenceExpander(
            target_segment_duration=config.target_segment_duration,
            chunk_words=config.chunk_words,
            min_sentence_duration=config.min_sentence_duration,
            min_chunk_duration=config.min_chunk_duration,
        )
        self.pause_calculator = pause_calculator or PauseCalculator(config.overlay_words_per_second)
        self.aligner = aligner or FuzzyAligner(
            sentence_threshold=config.sentence_threshold,
            word_threshold=config.word_threshold,
            max_window=config.max_window,
            word_window=config.word_window,
            word_pad=config.word_pad,
        )
        self.slicer = slicer or VoSlicer(encoder, config.resolve_slice_workers(),
                                         config.valid_drift_ms, config.error_drift_ms)
        self.stitcher = stitcher or VoStitcher(encoder)

    async def run(
        self,
        srt_path: str,
        vo_path: str,
        work_dir: str,
        pause_hints: Optional[Dict[int, float]] = None,
        overlays: Optional[Dict[int, TextOverlay]] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> SyncResult:
        """
        Expands the subtitle, slices and stitches the voiceover, and retimes the entries.

        `pause_hints` and `overlays` are keyed by 0-based positions in the
        input subtitle; -1 in `pause_hints` is head silence.

        Raises:
            FileNotFoundError: If the subtitle or voiceover file is missing.
            SubtitleParseError: If the subtitle has no usable entries.
            SliceError: If no segment could be cut.
            StitchError: If the final track cannot be produced.
            SyncCancelledError: If `cancel_event` is set during the run.
            VoSyncError: For any other processing error.
        """
        start_time = time.time()
        logger.info(f"--- Starting VoSync run for: {srt_path} + {vo_path} ---")
        ensure_dir_exists(work_dir)

        try:
            logger.info("Step 1: Parsing subtitle...")
            entries = self.codec.read_file(srt_path)
            if not entries:
                raise SubtitleParseError(f"No subtitle entries found in {srt_path}")

            logger.info("Step 2: Expanding entries into sentences...")
            expanded = self.expander.expand(entries)
            compute_padding(expanded, self.config.padding_start_max, self.config.padding_end_max)

            logger.info("Step 3: Calculating pauses...")
            identity = [
                AlignedWindow(e.original_start_time, e.original_end_time, e.text, 1.0, "identity")
                for e in entries
            ]
            positions = position_map(identity, expanded)
            hints = self.pause_calculator.remap_hints(pause_hints or {}, identity, expanded)
            expanded_overlays = {positions[k]: v for k, v in (overlays or {}).items() if k in positions}
            pauses = self.pause_calculator.build(expanded, hints, expanded_overlays)
            self._check_cancelled(cancel_event)

            logger.info("Step 4: Slicing voiceover...")
            slice_result = await self.slicer.slice_all(vo_path, expanded, work_dir, cancel_event)
            validation = validate_segments(slice_result.segments, self.config.valid_drift_ms, self.config.error_drift_ms)
            if not slice_result.valid_segments:
                raise SliceError(f"No usable voiceover segments were cut from {vo_path}")
            self._check_cancelled(cancel_event)

            logger.info("Step 5: Stitching voiceover...")
            stitched_path = await self.stitcher.stitch(expanded, slice_result.segments, pauses, work_dir)

            logger.info("Step 6: Retiming entries...")
            retime_entries(expanded, pauses, slice_result.segments)
            stats = expansion_stats(entries, expanded, pauses)

            srt_out = self.codec.write_file(os.path.join(work_dir, EXPANDED_SRT), expanded, expanded_overlays)
            lrc_out = self.codec.write_lrc(os.path.join(work_dir, EXPANDED_LRC), expanded)

            logger.info(f"--- VoSync run completed in {time.time() - start_time:.2f} seconds "
                        f"({stats.original_entry_count} -> {stats.expanded_entry_count} entries, "
                        f"accuracy {validation.accuracy_score}%) ---")
            return SyncResult(
                entries=expanded,
                pauses=pauses,
                stats=stats,
                slice_result=slice_result,
                validation=validation,
                expanded_srt_path=srt_out,
                expanded_lrc_path=lrc_out,
                stitched_vo_path=stitched_path,
            )

        except (VoSyncError, FileNotFoundError) as e:
            logger.error(f"VoSync run failed: {e}", exc_info=False)
            raise
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred during synchronization: {e}", exc_info=True)
            raise VoSyncError(f"An unexpected critical error occurred: {e}") from e

    async def sync_to_target(
        self,
        reference_srt: str,
        vo_path: str,
        target_srt: str,
        work_dir: str
    ) -> TargetSyncResult:
        """
        Re-times a voiceover onto a target subtitle's timeline.

        `reference_srt` describes where text sits in `vo_path`. Each target
        entry borrows its matching audio, preceded by whatever silence the
        target timeline needs. Unaligned entries become 2s of silence.
        """
        logger.info(f"--- Syncing {vo_path} onto timeline of {target_srt} ---")
        ensure_dir_exists(work_dir)
        chunks_dir = os.path.join(work_dir, TARGET_CHUNKS_DIR)
        ensure_dir_exists(chunks_dir)

        reference = self.codec.read_file(reference_srt)
        target = self.codec.read_file(target_srt)
        if not reference or not target:
            raise SubtitleParseError("Both the reference and the target subtitle need entries")

        alignment = self.aligner.align(target, reference)
        files: List[str] = []
        adjusted: List[SubtitleEntry] = []
        silences: Dict[float, str] = {}
        playhead = 0.0

        try:
            for i, (entry, window) in enumerate(zip(target, alignment)):
                duration = window.duration if window is not None else UNALIGNED_DURATION

                lead = round(entry.start_time - playhead, 3)
                if lead > 0:
                    files.append(await self._silence(lead, chunks_dir, silences))
                    playhead += lead

                if window is not None:
                    chunk = os.path.join(chunks_dir, f"chunk_{i + 1:03d}.wav")
                    await asyncio.to_thread(self.encoder.slice_audio, vo_path, chunk, window.start_time, duration)
                    files.append(chunk)
                else:
                    logger.warning(f"Target entry {entry.index} is unaligned, using {duration}s of silence")
                    files.append(await self._silence(duration, chunks_dir, silences))

                adjusted.append(SubtitleEntry(index=i + 1, start_time=playhead, end_time=playhead + duration, text=entry.text))
                playhead += duration
        except EncoderError as e:
            raise StitchError(f"Failed to prepare voiceover chunks: {e}", stderr=e.stderr) from e

        manifest = os.path.join(chunks_dir, "concat_list.txt")
        self.stitcher.write_manifest(manifest, files)
        vo_out = os.path.join(work_dir, ADJUSTED_VO)
        try:
            await asyncio.to_thread(self.encoder.concat_audio, manifest, vo_out)
        except EncoderError as e:
            raise StitchError(f"Failed to stitch adjusted voiceover: {e}", stderr=e.stderr) from e

        srt_out = self.codec.write_file(os.path.join(work_dir, ADJUSTED_SRT), adjusted)
        result = TargetSyncResult(entries=adjusted, alignment=alignment, vo_path=vo_out, srt_path=srt_out)
        logger.info(f"Voiceover synced onto target timeline: {vo_out} ({result.unaligned_count} unaligned entries)")
        return result

    async def _silence(self, seconds: float, directory: str, cache: Dict[float, str]) -> str:
        key = round(seconds, 3)
        if key not in cache:
            path = os.path.join(directory, f"silence_{key:g}s.wav")
            await asyncio.to_thread(self.encoder.generate_silence, path, key)
            cache[key] = path
        return cache[key]

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SyncCancelledError("Synchronization was cancelled")
