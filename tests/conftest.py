"""
Pytest Configuration and Shared Fixtures for VoSync Tests
"""

import os
import threading
from typing import Dict, List, Optional

import pytest

from vosync.config_loader import SyncConfig
from vosync.encoder import MediaEncoder
from vosync.exceptions import EncoderError
from vosync.models import SubtitleEntry


# ============================================
# Fake Encoder
# ============================================

class FakeEncoder(MediaEncoder):
    """
    Deterministic stand-in for ffmpeg.

    Every output is a small placeholder file whose "duration" is recorded,
    so probe_duration returns exactly what was asked for unless `drift`
    says otherwise.
    """

    def __init__(
        self,
        source_duration: float = 60.0,
        drift: Optional[Dict[str, float]] = None,
        fail_slices: Optional[List[str]] = None,
        graph_failures: int = 0,
        fail_concat: bool = False,
        fail_media_concat: bool = False,
        default_audio: bool = True,
    ):
        self.source_duration = source_duration
        self.drift = drift or {}
        self.fail_slices = set(fail_slices or [])
        self.graph_failures = graph_failures
        self.fail_concat = fail_concat
        self.fail_media_concat = fail_media_concat
        self.default_audio = default_audio
        self.durations: Dict[str, float] = {}
        self.audio: Dict[str, bool] = {}
        self.calls: List[tuple] = []
        self.manifests: List[List[str]] = []
        self.on_slice = None
        self._lock = threading.Lock()

    def _write(self, path: str, duration: float) -> None:
        with open(path, "w") as f:
            f.write("fake media")
        with self._lock:
            self.durations[path] = duration

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    @staticmethod
    def read_manifest(manifest: str) -> List[str]:
        paths = []
        with open(manifest, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line.startswith("file '") and line.endswith("'"):
                    paths.append(line[6:-1].replace("'\\''", "'"))
        return paths

    def probe_duration(self, path: str) -> float:
        self._record("probe", path)
        if path in self.durations:
            return self.durations[path]
        if not os.path.exists(path):
            raise EncoderError(f"ffprobe failed for {path}", stderr=f"{path}: No such file or directory")
        return self.source_duration

    def has_audio(self, path: str) -> bool:
        return self.audio.get(path, self.default_audio)

    def slice_audio(self, source: str, output: str, start: float, duration: float) -> None:
        self._record("slice", output, round(start, 3), round(duration, 3))
        name = os.path.basename(output)
        if name in self.fail_slices:
            raise EncoderError(f"ffmpeg failed (slice {output}) with exit code 1", stderr="Invalid argument")
        self._write(output, duration + self.drift.get(name, 0.0))
        if self.on_slice is not None:
            self.on_slice(output)

    def generate_silence(self, output: str, duration: float) -> None:
        self._record("silence", output, duration)
        self._write(output, duration)

    def concat_audio(self, manifest: str, output: str) -> None:
        self._record("concat_audio", manifest, output)
        paths = self.read_manifest(manifest)
        self.manifests.append(paths)
        if self.fail_concat:
            raise EncoderError("ffmpeg failed (concat) with exit code 1", stderr="Invalid data found when processing input")
        self._write(output, sum(self.durations.get(p, 0.0) for p in paths))

    def concat_media(self, manifest: str, output: str, timeout: Optional[float] = None) -> None:
        self._record("concat_media", manifest, output)
        paths = self.read_manifest(manifest)
        self.manifests.append(paths)
        if self.fail_media_concat:
            raise EncoderError("ffmpeg failed (concat) with exit code 1", stderr="Non-monotonous DTS")
        self._write(output, sum(self.durations.get(p, 0.0) for p in paths))

    def run_filter_graph(self, inputs, plan, output, video_only=False, timeout=None) -> None:
        self._record("graph", tuple(inputs), video_only)
        if self.graph_failures > 0:
            self.graph_failures -= 1
            raise EncoderError("ffmpeg failed (crossfade) with exit code 1", stderr="Error reinitializing filters")
        self._write(output, plan.total_duration)

    def render_still(self, image, output, vf, frames, fps, timeout=None) -> None:
        self._record("still", image, output, vf, frames, fps)
        self._write(output, frames / fps)

    def trim_video(self, source, output, duration, timeout=None) -> None:
        self._record("trim", source, output, duration)
        self._write(output, duration)


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def fake_encoder():
    return FakeEncoder()


@pytest.fixture
def sync_config():
    """Default settings with a fixed worker count."""
    return SyncConfig(slice_workers=2)


@pytest.fixture
def write_file(tmp_path):
    """Writes text into tmp_path and returns the path."""
    def _write(name: str, content: str) -> str:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
def vo_file(write_file):
    """Placeholder voiceover; FakeEncoder never reads it."""
    return write_file("voiceover.mp3", "not really audio")


@pytest.fixture
def two_entry_srt():
    return (
        "1\n"
        "00:00:00,000 --> 00:00:02,000\n"
        "Halo dunia.\n"
        "\n"
        "2\n"
        "00:00:02,500 --> 00:00:05,000\n"
        "Ini contoh.\n"
    )


def make_entries(*spans, texts=None) -> List[SubtitleEntry]:
    """Entries from (start, end) pairs, with generated or given texts."""
    return [
        SubtitleEntry(
            index=i + 1,
            start_time=start,
            end_time=end,
            text=texts[i] if texts else f"Entry number {i + 1}",
        )
        for i, (start, end) in enumerate(spans)
    ]
