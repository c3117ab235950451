"""Crossfade offsets and clip assembly with a fallback ladder."""

import asyncio
import logging
import os
import random
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .config_loader import SyncConfig
from .encoder import MediaEncoder
from .exceptions import ConfigurationError, EncoderError, FileSystemError, SyncCancelledError, TransitionError
from .kenburns import (DEFAULT_FPS, MotionType, build_zoompan_filter, frame_count,
                       resolve_motion, still_duration)
from .models import ClipSpec
from .stitcher import manifest_line
from .utils import ensure_dir_exists, remove_file_quietly

logger = logging.getLogger(__name__)

CLIPS_DIR = "clips"
TRIM_TOLERANCE = 0.05


class TransitionType(str, Enum):
    CUT = "Cut"
    FADE = "Fade"
    FADE_BLACK = "FadeBlack"
    FADE_WHITE = "FadeWhite"
    WIPE_LEFT = "WipeLeft"
    WIPE_RIGHT = "WipeRight"
    WIPE_UP = "WipeUp"
    WIPE_DOWN = "WipeDown"
    SLIDE_LEFT = "SlideLeft"
    SLIDE_RIGHT = "SlideRight"
    ZOOM_IN = "ZoomIn"
    CIRCLE_OPEN = "CircleOpen"
    CIRCLE_CLOSE = "CircleClose"
    PIXELIZE = "Pixelize"
    DIAGONAL_TL = "DiagonalTL"
    DIAGONAL_BR = "DiagonalBR"

    @property
    def ffmpeg_name(self) -> str:
        """Name of the xfade transition. CUT renders as a zero-length fade."""
        return _XFADE_NAMES.get(self, "fade")

    @property
    def recommended_duration(self) -> float:
        return _RECOMMENDED_DURATIONS.get(self, 0.5)


_XFADE_NAMES = {
    TransitionType.FADE_BLACK: "fadeblack",
    TransitionType.FADE_WHITE: "fadewhite",
    TransitionType.WIPE_LEFT: "wipeleft",
    TransitionType.WIPE_RIGHT: "wiperight",
    TransitionType.WIPE_UP: "wipeup",
    TransitionType.WIPE_DOWN: "wipedown",
    TransitionType.SLIDE_LEFT: "slideleft",
    TransitionType.SLIDE_RIGHT: "slideright",
    TransitionType.ZOOM_IN: "zoomin",
    TransitionType.CIRCLE_OPEN: "circleopen",
    TransitionType.CIRCLE_CLOSE: "circleclose",
    TransitionType.PIXELIZE: "pixelize",
    TransitionType.DIAGONAL_TL: "diagtl",
    TransitionType.DIAGONAL_BR: "diagbr",
}

_RECOMMENDED_DURATIONS = {
    TransitionType.CUT: 0.0,
    TransitionType.FADE_WHITE: 0.3,
    TransitionType.ZOOM_IN: 0.4,
    TransitionType.PIXELIZE: 0.4,
}


def crossfade_offsets(durations: List[float], transition_duration: float) -> List[float]:
    """
    Timeline position where the transition into each clip starts.

    Every clip before `i` contributes its length minus the overlap. The first
    clip has no incoming transition and gets 0.
    """
    offsets = [0.0] * len(durations)
    cumulative = 0.0
    for i in range(1, len(durations)):
        cumulative += durations[i - 1] - transition_duration
        offsets[i] = max(0.0, cumulative)
    return offsets


def crossfaded_duration(durations: List[float], transition_duration: float) -> float:
    """Length of the output once every join overlaps by `transition_duration`."""
    if not durations:
        return 0.0
    return durations[0] + sum(d - transition_duration for d in durations[1:])


@dataclass
class CrossfadePlan:
    transition: TransitionType
    transition_duration: float
    offsets: List[float] = field(default_factory=list)
    total_duration: float = 0.0
    crossfade_audio: bool = False

    @property
    def transition_name(self) -> str:
        return self.transition.ffmpeg_name

    @property
    def audio_mode(self) -> str:
        return "crossfade" if self.crossfade_audio else "silence"

    def filter_complex(self, video_only: bool = False) -> str:
        """Textual filter graph with [vout] and [aout] outputs."""
        count = len(self.offsets)
        d = f"{self.transition_duration:.2f}"
        parts = []

        last = "[0:v]"
        for i in range(1, count):
            label = "[vout]" if i == count - 1 else f"[v{i}]"
            parts.append(f"{last}[{i}:v]xfade=transition={self.transition_name}:duration={d}"
                         f":offset={self.offsets[i]:.3f}{label}")
            last = label

        if self.crossfade_audio and not video_only:
            last = "[0:a]"
            for i in range(1, count):
                label = "[aout]" if i == count - 1 else f"[a{i}]"
                parts.append(f"{last}[{i}:a]acrossfade=d={d}:c1=tri:c2=tri{label}")
                last = label
        else:
            parts.append(f"anullsrc=channel_layout=stereo:sample_rate=44100,"
                         f"atrim=0:{self.total_duration:.3f}[aout]")
        return ";".join(parts)


def build_crossfade_plan(
    durations: List[float],
    has_audio: List[bool],
    transition: TransitionType = TransitionType.FADE,
    transition_duration: Optional[float] = None
) -> CrossfadePlan:
    """Audio is crossfaded only when every clip has an audio stream."""
    d = transition.recommended_duration if transition_duration is None else transition_duration
    return CrossfadePlan(
        transition=transition,
        transition_duration=d,
        offsets=crossfade_offsets(durations, d),
        total_duration=crossfaded_duration(durations, d),
        crossfade_audio=bool(has_audio) and all(has_audio),
    )


class ClipAssembler:
    """
    Prepares visual clips for the timeline and joins them with transitions.

    Joining tries the full crossfade first, then a video-only crossfade with
    generated silence, then plain concatenation. Only a failure of the last
    step is fatal.
    """

    def __init__(
        self,
        encoder: MediaEncoder,
        transition: TransitionType = TransitionType.FADE,
        transition_duration: Optional[float] = None,
        enabled: bool = True,
        timeout: Optional[float] = None,
        parallel_clips: int = 3,
        width: int = 1920,
        height: int = 1080,
        fps: int = DEFAULT_FPS,
        vignette: bool = False,
        rng: Optional[random.Random] = None
    ):
        self.encoder = encoder
        self.transition = transition
        self.transition_duration = transition_duration
        self.enabled = enabled
        self.timeout = timeout
        self.parallel_clips = max(1, min(8, parallel_clips))
        self.width = width
        self.height = height
        self.fps = fps
        self.vignette = vignette
        self.rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: SyncConfig, encoder: MediaEncoder, rng: Optional[random.Random] = None) -> "ClipAssembler":
        """Builds an assembler from the transition settings in `config`."""
        try:
            transition = TransitionType(config.transition)
        except ValueError as e:
            raise ConfigurationError(f"Unknown transition type: '{config.transition}'") from e
        return cls(
            encoder,
            transition=transition,
            transition_duration=config.transition_duration,
            timeout=config.filter_timeout,
            parallel_clips=config.resolve_parallel_clips(),
            rng=rng,
        )

    async def prepare_clips(
        self,
        clips: List[ClipSpec],
        durations: List[float],
        work_dir: str,
        motion: MotionType = MotionType.RANDOM,
        cancel_event: Optional[asyncio.Event] = None
    ) -> List[str]:
        """
        Trims videos and renders stills to their timeline durations.

        Returns one path per clip, in clip order.
        """
        if len(clips) != len(durations):
            raise ValueError(f"Got {len(durations)} durations for {len(clips)} clips")

        output_dir = os.path.join(work_dir, CLIPS_DIR)
        ensure_dir_exists(output_dir)
        # Resolve motions up front so a seeded rng gives the same result regardless of scheduling
        motions = [resolve_motion(motion, self.rng) for _ in clips]
        semaphore = asyncio.Semaphore(self.parallel_clips)
        produced: List[str] = []
        abort = asyncio.Event()

        def output_for(i: int) -> str:
            return os.path.join(output_dir, f"clip_{i:03d}.mp4")

        async def prepare(i: int) -> Optional[str]:
            async with semaphore:
                if abort.is_set() or (cancel_event is not None and cancel_event.is_set()):
                    return None
                output = output_for(i)
                path = await self._prepare_one(clips[i], durations[i], motions[i], output)
                if path == output:
                    produced.append(output)
                return path

        tasks = [asyncio.ensure_future(prepare(i)) for i in range(len(clips))]
        try:
            paths = await asyncio.gather(*tasks)
        except Exception:
            # Encoder threads keep running after a sibling fails, let them finish first
            abort.set()
            await asyncio.gather(*tasks, return_exceptions=True)
            for i in range(len(clips)):
                remove_file_quietly(output_for(i))
            logger.error("Clip preparation aborted, removed partial clips")
            raise

        if cancel_event is not None and cancel_event.is_set():
            for path in produced:
                remove_file_quietly(path)
            raise SyncCancelledError("Clip preparation was cancelled")
        return list(paths)

    async def _prepare_one(self, clip: ClipSpec, duration: float, motion: MotionType, output: str) -> str:
        if clip.is_still:
            seconds = still_duration(duration)
            vf = build_zoompan_filter(seconds, motion, self.width, self.height, self.fps, self.vignette)
            logger.info(f"Ken Burns: {os.path.basename(clip.path)} -> {os.path.basename(output)}, "
                        f"{motion.value}, {seconds:.1f}s")
            try:
                await asyncio.to_thread(self.encoder.render_still, clip.path, output, vf,
                                        frame_count(seconds, self.fps), self.fps, self.timeout)
            except EncoderError as e:
                raise TransitionError(f"Could not render still {clip.path}: {e}") from e
            return output

        if clip.duration > duration + TRIM_TOLERANCE:
            try:
                await asyncio.to_thread(self.encoder.trim_video, clip.path, output, duration, self.timeout)
                return output
            except EncoderError as e:
                logger.warning(f"Trimming {clip.path} to {duration:.2f}s failed, using it untrimmed: {e}")
        return clip.path

    async def concatenate(self, clip_paths: List[str], output_path: str) -> str:
        """Joins clips into `output_path` and returns it."""
        if not clip_paths:
            raise TransitionError("No clips to concatenate")
        if len(clip_paths) == 1:
            logger.info("Only one clip, copying directly to output")
            try:
                shutil.copyfile(clip_paths[0], output_path)
            except OSError as e:
                raise FileSystemError(f"Could not copy {clip_paths[0]} to {output_path}: {e}") from e
            return output_path
        if not self.enabled or self.transition == TransitionType.CUT:
            await self._plain_concat(clip_paths, output_path)
            return output_path

        try:
            durations = [await asyncio.to_thread(self.encoder.probe_duration, p) for p in clip_paths]
            has_audio = [await asyncio.to_thread(self.encoder.has_audio, p) for p in clip_paths]
        except EncoderError as e:
            logger.error(f"Could not probe clips for transitions, using plain concatenation: {e}")
            await self._plain_concat(clip_paths, output_path)
            return output_path

        plan = build_crossfade_plan(durations, has_audio, self.transition, self.transition_duration)
        logger.info(f"Concatenating {len(clip_paths)} clips with {self.transition.value} transition "
                    f"({plan.transition_duration}s), audio: {plan.audio_mode}")
        logger.debug(f"Transition filter: {plan.filter_complex()}")

        try:
            await asyncio.to_thread(self.encoder.run_filter_graph, clip_paths, plan, output_path, False, self.timeout)
            return output_path
        except EncoderError as e:
            logger.warning(f"Crossfade with audio failed, trying video-only transition: {e}")

        try:
            await asyncio.to_thread(self.encoder.run_filter_graph, clip_paths, plan, output_path, True, self.timeout)
            return output_path
        except EncoderError as e:
            logger.warning(f"Video-only transition also failed, falling back to plain concatenation: {e}")

        await self._plain_concat(clip_paths, output_path)
        return output_path

    async def _plain_concat(self, clip_paths: List[str], output_path: str) -> None:
        manifest = f"{output_path}.concat.txt"
        try:
            with open(manifest, "w", encoding="utf-8") as f:
                for path in clip_paths:
                    f.write(manifest_line(path) + "\n")
        except OSError as e:
            raise FileSystemError(f"Could not write concat manifest {manifest}: {e}") from e

        try:
            await asyncio.to_thread(self.encoder.concat_media, manifest, output_path, self.timeout)
        except EncoderError as e:
            raise TransitionError(f"Plain concatenation failed: {e}", stderr=e.stderr) from e
        finally:
            remove_file_quietly(manifest)
