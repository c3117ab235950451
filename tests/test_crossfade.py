"""
Tests for crossfade offsets, filter graphs and the clip assembly fallback ladder.
"""

import os
import random
import time

import pytest

from vosync.crossfade import (ClipAssembler, TransitionType, build_crossfade_plan, crossfade_offsets,
                              crossfaded_duration)
from vosync.config_loader import SyncConfig
from vosync.exceptions import ConfigurationError, EncoderError, TransitionError
from vosync.kenburns import MotionType
from vosync.models import ClipSpec

from conftest import FakeEncoder


class TestOffsets:

    def test_three_clips(self):
        offsets = crossfade_offsets([10.0, 8.0, 6.0], 1.0)
        assert offsets[1:] == [9.0, 16.0]

    def test_total_duration(self):
        assert crossfaded_duration([10.0, 8.0, 6.0], 1.0) == 22.0

    def test_offsets_clamped_to_zero(self):
        assert crossfade_offsets([0.5, 2.0, 2.0], 1.0)[1] == 0.0

    def test_transition_names_and_durations(self):
        assert TransitionType.DIAGONAL_TL.ffmpeg_name == "diagtl"
        assert TransitionType.CUT.ffmpeg_name == "fade"
        assert TransitionType.CUT.recommended_duration == 0.0
        assert TransitionType.FADE_WHITE.recommended_duration == 0.3
        assert TransitionType.WIPE_LEFT.recommended_duration == 0.5


class TestPlan:

    def test_audio_crossfade_when_all_clips_have_audio(self):
        plan = build_crossfade_plan([10.0, 8.0, 6.0], [True, True, True], TransitionType.FADE, 1.0)
        graph = plan.filter_complex()

        assert plan.audio_mode == "crossfade"
        assert "[0:v][1:v]xfade=transition=fade:duration=1.00:offset=9.000[v1]" in graph
        assert "[v1][2:v]xfade=transition=fade:duration=1.00:offset=16.000[vout]" in graph
        assert "[a1][2:a]acrossfade=d=1.00:c1=tri:c2=tri[aout]" in graph

    def test_silence_track_when_any_clip_lacks_audio(self):
        plan = build_crossfade_plan([10.0, 8.0, 6.0], [True, False, True], TransitionType.WIPE_LEFT, 1.0)
        graph = plan.filter_complex()

        assert plan.audio_mode == "silence"
        assert "acrossfade" not in graph
        assert graph.endswith("anullsrc=channel_layout=stereo:sample_rate=44100,atrim=0:22.000[aout]")

    def test_video_only_graph_uses_silence(self):
        plan = build_crossfade_plan([4.0, 4.0], [True, True], TransitionType.FADE, 0.5)
        assert "acrossfade" not in plan.filter_complex(video_only=True)

    def test_recommended_duration_used_by_default(self):
        plan = build_crossfade_plan([4.0, 4.0], [True, True], TransitionType.ZOOM_IN)
        assert plan.transition_duration == 0.4


@pytest.fixture
def clips(tmp_path):
    paths = []
    for i, duration in enumerate([10.0, 8.0, 6.0]):
        path = tmp_path / f"in_{i}.mp4"
        path.write_text("clip")
        paths.append(str(path))
    return paths


def _encoder_for(clips, **kwargs):
    encoder = FakeEncoder(**kwargs)
    for path, duration in zip(clips, [10.0, 8.0, 6.0]):
        encoder.durations[path] = duration
    return encoder


class TestConcatenate:

    @pytest.mark.asyncio
    async def test_full_crossfade(self, clips, tmp_path):
        encoder = _encoder_for(clips)
        output = str(tmp_path / "out.mp4")
        await ClipAssembler(encoder, TransitionType.FADE, 1.0).concatenate(clips, output)

        assert encoder.calls_named("graph") == [("graph", tuple(clips), False)]
        assert encoder.durations[output] == 22.0

    @pytest.mark.asyncio
    async def test_falls_back_to_video_only(self, clips, tmp_path):
        encoder = _encoder_for(clips, graph_failures=1)
        await ClipAssembler(encoder, TransitionType.FADE, 1.0).concatenate(clips, str(tmp_path / "out.mp4"))

        assert [c[2] for c in encoder.calls_named("graph")] == [False, True]
        assert encoder.calls_named("concat_media") == []

    @pytest.mark.asyncio
    async def test_falls_back_to_plain_concat(self, clips, tmp_path):
        encoder = _encoder_for(clips, graph_failures=2)
        output = str(tmp_path / "out.mp4")
        await ClipAssembler(encoder, TransitionType.FADE, 1.0).concatenate(clips, output)

        assert len(encoder.calls_named("concat_media")) == 1
        assert encoder.manifests[-1] == clips
        assert not os.path.exists(output + ".concat.txt")

    @pytest.mark.asyncio
    async def test_all_steps_failing_is_fatal(self, clips, tmp_path):
        encoder = _encoder_for(clips, graph_failures=2, fail_media_concat=True)
        with pytest.raises(TransitionError) as exc_info:
            await ClipAssembler(encoder, TransitionType.FADE, 1.0).concatenate(clips, str(tmp_path / "out.mp4"))
        assert exc_info.value.stderr == "Non-monotonous DTS"

    @pytest.mark.asyncio
    async def test_cut_uses_plain_concat(self, clips, tmp_path):
        encoder = _encoder_for(clips)
        await ClipAssembler(encoder, TransitionType.CUT).concatenate(clips, str(tmp_path / "out.mp4"))
        assert encoder.calls_named("graph") == []
        assert len(encoder.calls_named("concat_media")) == 1

    @pytest.mark.asyncio
    async def test_single_clip_is_copied(self, clips, tmp_path):
        encoder = _encoder_for(clips)
        output = tmp_path / "single.mp4"
        await ClipAssembler(encoder).concatenate(clips[:1], str(output))
        assert output.read_text() == "clip"
        assert encoder.calls == []

    @pytest.mark.asyncio
    async def test_no_clips(self, tmp_path):
        with pytest.raises(TransitionError):
            await ClipAssembler(FakeEncoder()).concatenate([], str(tmp_path / "out.mp4"))


class TestPrepareClips:

    @pytest.mark.asyncio
    async def test_trims_renders_and_passes_through(self, tmp_path):
        encoder = FakeEncoder()
        specs = [
            ClipSpec(path="long.mp4", duration=10.0, has_audio=True),
            ClipSpec(path="short.mp4", duration=3.0),
            ClipSpec(path="still.jpg", is_still=True),
        ]
        assembler = ClipAssembler(encoder, rng=random.Random(7))
        paths = await assembler.prepare_clips(specs, [4.0, 4.0, 0.5], str(tmp_path))

        clips_dir = os.path.join(str(tmp_path), "clips")
        assert paths == [os.path.join(clips_dir, "clip_000.mp4"), "short.mp4", os.path.join(clips_dir, "clip_002.mp4")]
        assert encoder.calls_named("trim")[0][3] == 4.0
        still = encoder.calls_named("still")[0]
        assert still[4] == 90

    @pytest.mark.asyncio
    async def test_seeded_motion_is_reproducible(self, tmp_path):
        specs = [ClipSpec(path=f"img{i}.jpg", is_still=True) for i in range(4)]
        filters = []
        for run in range(2):
            encoder = FakeEncoder()
            assembler = ClipAssembler(encoder, rng=random.Random(42))
            await assembler.prepare_clips(specs, [2.0] * 4, str(tmp_path / f"run{run}"))
            filters.append(sorted((os.path.basename(c[2]), c[3]) for c in encoder.calls_named("still")))
        assert filters[0] == filters[1]

    @pytest.mark.asyncio
    async def test_fixed_motion(self, tmp_path):
        encoder = FakeEncoder()
        await ClipAssembler(encoder).prepare_clips(
            [ClipSpec(path="img.jpg", is_still=True)], [2.0], str(tmp_path), motion=MotionType.PAN_TOP_TO_BOTTOM)
        vf = encoder.calls_named("still")[0][3]
        assert "ih*(0.4+(0.6-0.4)*max(0,on-1)/59)" in vf

    @pytest.mark.asyncio
    async def test_failed_still_removes_clips_after_slow_trim_finishes(self, tmp_path):
        class BrokenStillEncoder(FakeEncoder):
            def render_still(self, image, output, vf, frames, fps, timeout=None):
                raise EncoderError("ffmpeg failed (zoompan) with exit code 1", stderr="Invalid image")

            def trim_video(self, source, output, duration, timeout=None):
                time.sleep(0.3)
                super().trim_video(source, output, duration, timeout)

        encoder = BrokenStillEncoder()
        specs = [ClipSpec(path="still.jpg", is_still=True), ClipSpec(path="long.mp4", duration=10.0)]
        with pytest.raises(TransitionError):
            await ClipAssembler(encoder, parallel_clips=2).prepare_clips(specs, [2.0, 4.0], str(tmp_path))

        clips_dir = os.path.join(str(tmp_path), "clips")
        assert len(encoder.calls_named("trim")) == 1
        assert os.listdir(clips_dir) == []

    @pytest.mark.asyncio
    async def test_mismatched_lengths(self, tmp_path):
        with pytest.raises(ValueError):
            await ClipAssembler(FakeEncoder()).prepare_clips([ClipSpec(path="a.mp4")], [], str(tmp_path))


class TestFromConfig:

    def test_settings_applied(self):
        config = SyncConfig(transition="WipeLeft", transition_duration=0.8, filter_timeout=120.0, parallel_clips=12)
        assembler = ClipAssembler.from_config(config, FakeEncoder())
        assert assembler.transition == TransitionType.WIPE_LEFT
        assert assembler.transition_duration == 0.8
        assert assembler.timeout == 120.0
        assert assembler.parallel_clips == 8

    def test_unknown_transition(self):
        with pytest.raises(ConfigurationError):
            ClipAssembler.from_config(SyncConfig(transition="Spin"), FakeEncoder())
