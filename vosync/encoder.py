"""Boundary to the external media encoder (ffmpeg)."""

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional

import ffmpeg

from .exceptions import EncoderError, EncoderTimeoutError

if TYPE_CHECKING:
    from .crossfade import CrossfadePlan

logger = logging.getLogger(__name__)

SILENCE_SOURCE = "anullsrc=r=44100:cl=stereo"
SAMPLE_RATE = 44100
CHANNELS = 2


class MediaEncoder(ABC):
    """
    Operations the synchronization engine asks of an encoder.

    Implementations never return partial success: a call either produces its
    output or raises EncoderError carrying the encoder's diagnostic text.
    """

    @abstractmethod
    def probe_duration(self, path: str) -> float:
        """Duration of a media file in seconds."""
        pass

    @abstractmethod
    def has_audio(self, path: str) -> bool:
        pass

    @abstractmethod
    def slice_audio(self, source: str, output: str, start: float, duration: float) -> None:
        """Cuts `duration` seconds from `start` into a lossless file."""
        pass

    @abstractmethod
    def generate_silence(self, output: str, duration: float) -> None:
        pass

    @abstractmethod
    def concat_audio(self, manifest: str, output: str) -> None:
        """Concatenates the files listed in a concat manifest, encoding once."""
        pass

    @abstractmethod
    def concat_media(self, manifest: str, output: str, timeout: Optional[float] = None) -> None:
        """Plain concatenation of video clips, no transitions."""
        pass

    @abstractmethod
    def run_filter_graph(
        self,
        inputs: List[str],
        plan: "CrossfadePlan",
        output: str,
        video_only: bool = False,
        timeout: Optional[float] = None
    ) -> None:
        """Runs a crossfade filter graph over `inputs`."""
        pass

    @abstractmethod
    def render_still(
        self,
        image: str,
        output: str,
        vf: str,
        frames: int,
        fps: int,
        timeout: Optional[float] = None
    ) -> None:
        """Renders a still image to video with the given filter."""
        pass

    @abstractmethod
    def trim_video(self, source: str, output: str, duration: float, timeout: Optional[float] = None) -> None:
        pass


class FFmpegEncoder(MediaEncoder):
    """MediaEncoder backed by the ffmpeg/ffprobe executables via ffmpeg-python."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
        preset: str = "veryfast",
        crf: int = 23
    ):
        """
        Args:
            ffmpeg_path: Optional path to the ffmpeg executable.
                         If None, assumes ffmpeg is in the system PATH.
            ffprobe_path: Optional path to ffprobe, same convention.
            preset: libx264 preset for video re-encodes.
            crf: libx264 constant rate factor.
        """
        self.ffmpeg_cmd = ffmpeg_path or "ffmpeg"
        self.ffprobe_cmd = ffprobe_path or "ffprobe"
        self.preset = preset
        self.crf = crf
        logger.info(f"Using ffmpeg command: {self.ffmpeg_cmd}, ffprobe command: {self.ffprobe_cmd}")

    def probe_duration(self, path: str) -> float:
        info = self._probe(path)
        try:
            return float(info["format"]["duration"])
        except (KeyError, TypeError, ValueError) as e:
            raise EncoderError(f"ffprobe reported no duration for {path}") from e

    def has_audio(self, path: str) -> bool:
        info = self._probe(path)
        return any(s.get("codec_type") == "audio" for s in info.get("streams", []))

    def slice_audio(self, source: str, output: str, start: float, duration: float) -> None:
        stream = (
            ffmpeg
            .input(source, ss=f"{start:.3f}", t=f"{duration:.3f}")
            .output(output, acodec="pcm_s16le", ar=SAMPLE_RATE, ac=CHANNELS)
        )
        self._run(stream, description=f"slice {output}")

    def generate_silence(self, output: str, duration: float) -> None:
        stream = (
            ffmpeg
            .input(SILENCE_SOURCE, f="lavfi", t=f"{duration:.3f}")
            .output(output, acodec="pcm_s16le", ar=SAMPLE_RATE, ac=CHANNELS)
        )
        self._run(stream, description=f"silence {output}")

    def concat_audio(self, manifest: str, output: str) -> None:
        stream = (
            ffmpeg
            .input(manifest, f="concat", safe=0)
            .output(output, acodec="libmp3lame", **{"q:a": 2})
        )
        self._run(stream, description=f"concat {output}")

    def concat_media(self, manifest: str, output: str, timeout: Optional[float] = None) -> None:
        stream = (
            ffmpeg
            .input(manifest, f="concat", safe=0)
            .output(output, **self._video_output_args())
        )
        self._run(stream, timeout=timeout, description=f"concat {output}")

    def run_filter_graph(
        self,
        inputs: List[str],
        plan: "CrossfadePlan",
        output: str,
        video_only: bool = False,
        timeout: Optional[float] = None
    ) -> None:
        sources = [ffmpeg.input(path) for path in inputs]

        video = sources[0].video
        for i in range(1, len(sources)):
            video = ffmpeg.filter(
                [video, sources[i].video], "xfade",
                transition=plan.transition_name,
                duration=f"{plan.transition_duration:.2f}",
                offset=f"{plan.offsets[i]:.3f}",
            )

        if plan.crossfade_audio and not video_only:
            audio = sources[0].audio
            for i in range(1, len(sources)):
                audio = ffmpeg.filter(
                    [audio, sources[i].audio], "acrossfade",
                    d=f"{plan.transition_duration:.2f}", c1="tri", c2="tri",
                )
        else:
            audio = (
                ffmpeg
                .input("anullsrc=channel_layout=stereo:sample_rate=44100", f="lavfi")
                .filter("atrim", start=0, end=f"{plan.total_duration:.3f}")
            )

        stream = ffmpeg.output(video, audio, output, **self._video_output_args())
        self._run(stream, timeout=timeout, description=f"crossfade {output}")

    def render_still(
        self,
        image: str,
        output: str,
        vf: str,
        frames: int,
        fps: int,
        timeout: Optional[float] = None
    ) -> None:
        stream = (
            ffmpeg
            .input(image, loop=1)
            .output(
                output, vf=vf, vcodec="libx264", preset="ultrafast", crf=28,
                pix_fmt="yuv420p", r=fps, movflags="+faststart", **{"frames:v": frames}
            )
        )
        self._run(stream, timeout=timeout, description=f"still {output}")

    def trim_video(self, source: str, output: str, duration: float, timeout: Optional[float] = None) -> None:
        stream = ffmpeg.input(source).output(output, t=f"{duration:.3f}", **self._video_output_args())
        self._run(stream, timeout=timeout, description=f"trim {output}")

    def _video_output_args(self) -> dict:
        return {
            "vcodec": "libx264",
            "preset": self.preset,
            "crf": self.crf,
            "pix_fmt": "yuv420p",
            "acodec": "aac",
            "audio_bitrate": "128k",
            "movflags": "+faststart",
        }

    def _probe(self, path: str) -> dict:
        try:
            return ffmpeg.probe(path, cmd=self.ffprobe_cmd)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode("utf-8", errors="replace") if e.stderr else "No stderr output"
            logger.error(f"ffprobe failed for {path}: {stderr_output}")
            raise EncoderError(f"ffprobe failed for {path}", stderr=stderr_output) from e

    def _run(self, stream, timeout: Optional[float] = None, description: str = "") -> None:
        """Runs an ffmpeg-python stream, raising EncoderError with ffmpeg's stderr on failure."""
        logger.debug(f"ffmpeg {description}: {' '.join(stream.get_args())}")
        try:
            process = stream.run_async(
                cmd=self.ffmpeg_cmd, pipe_stdout=True, pipe_stderr=True, overwrite_output=True
            )
        except OSError as e:
            raise EncoderError(f"Could not start ffmpeg for {description}: {e}") from e

        try:
            _, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            process.kill()
            _, stderr = process.communicate()
            stderr_output = stderr.decode("utf-8", errors="replace") if stderr else ""
            raise EncoderTimeoutError(f"ffmpeg timed out after {timeout}s ({description})", stderr=stderr_output) from e

        if process.returncode != 0:
            stderr_output = stderr.decode("utf-8", errors="replace") if stderr else "No stderr output"
            logger.error(f"ffmpeg failed ({description}), exit code {process.returncode}")
            raise EncoderError(f"ffmpeg failed ({description}) with exit code {process.returncode}", stderr=stderr_output)
