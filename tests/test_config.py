"""
Tests for configuration loading, pause hint and overlay files, and utilities.
"""

import logging

import pytest

from vosync.config_loader import ConfigLoader, SyncConfig
from vosync.exceptions import ConfigurationError, FileSystemError
from vosync.models import OverlayType
from vosync.utils import default_worker_count, ensure_dir_exists, format_time_lrc, format_time_srt, parse_time_srt


class TestSyncConfig:

    def test_values_are_coerced(self):
        cfg = SyncConfig.from_dict({"chunk_words": "12", "valid_drift_ms": 80, "transition": "WipeLeft"})
        assert cfg.chunk_words == 12
        assert cfg.valid_drift_ms == 80.0
        assert isinstance(cfg.valid_drift_ms, float)
        assert cfg.transition == "WipeLeft"

    def test_unknown_keys_ignored(self, caplog):
        cfg = SyncConfig.from_dict({"render_quality": "high"})
        assert cfg == SyncConfig()
        assert "render_quality" in caplog.text

    def test_bad_value_raises(self):
        with pytest.raises(ConfigurationError, match="chunk_words"):
            SyncConfig.from_dict({"chunk_words": "many"})

    def test_drift_thresholds_must_be_ordered(self):
        with pytest.raises(ConfigurationError):
            SyncConfig.from_dict({"valid_drift_ms": 300, "error_drift_ms": 200})

    def test_negative_padding_rejected(self):
        with pytest.raises(ConfigurationError):
            SyncConfig.from_dict({"padding_start_max": -0.1})

    def test_file_log_level(self):
        assert SyncConfig.from_dict({"file_log_level": "info"}).resolve_file_log_level() == logging.INFO
        with pytest.raises(ConfigurationError):
            SyncConfig.from_dict({"file_log_level": "LOUD"})

    def test_threshold_range(self):
        with pytest.raises(ConfigurationError):
            SyncConfig.from_dict({"sentence_threshold": 1.5})

    def test_optional_values_accept_strings(self):
        cfg = SyncConfig.from_dict({"ffmpeg_path": "/opt/ffmpeg/bin/ffmpeg", "filter_timeout": None})
        assert cfg.ffmpeg_path == "/opt/ffmpeg/bin/ffmpeg"
        assert cfg.filter_timeout is None

    def test_worker_resolution(self):
        assert SyncConfig(slice_workers=5).resolve_slice_workers() == 5
        assert 1 <= SyncConfig().resolve_slice_workers() <= 8
        assert SyncConfig(parallel_clips=20).resolve_parallel_clips() == 8
        assert SyncConfig(parallel_clips=0).resolve_parallel_clips() == 1


class TestConfigLoader:

    def test_load_yaml(self, write_file):
        path = write_file("config.yaml", "chunk_words: 10\npadding_end_max: 0.15\n")
        cfg = ConfigLoader().load_sync_config(path)
        assert cfg.chunk_words == 10
        assert cfg.padding_end_max == 0.15

    def test_empty_file_gives_defaults(self, write_file):
        assert ConfigLoader().load_sync_config(write_file("config.yaml", "")) == SyncConfig()

    def test_root_must_be_mapping(self, write_file):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(write_file("config.yaml", "- a\n- b\n"))

    def test_invalid_yaml(self, write_file):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(write_file("config.yaml", "key: [unclosed\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader().load_config(str(tmp_path / "absent.yaml"))

    def test_directory_is_not_a_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(str(tmp_path))


class TestHintFiles:

    def test_pause_hints(self, write_file):
        path = write_file("hints.yaml", "-1: 0.5\n0: 2\n3: 1.25\n")
        assert ConfigLoader().load_pause_hints(path) == {-1: 0.5, 0: 2.0, 3: 1.25}

    def test_negative_pause_hint(self, write_file):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_pause_hints(write_file("hints.yaml", "2: -1.0\n"))

    def test_non_numeric_pause_hint(self, write_file):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_pause_hints(write_file("hints.yaml", "first: 1.0\n"))

    def test_overlays(self, write_file):
        path = write_file("overlays.yaml", (
            "1:\n"
            "  type: QuranVerse\n"
            "  text: Sesungguhnya bersama kesulitan ada kemudahan\n"
            "  reference: QS. Al-Insyirah 94:6\n"
            "4:\n"
            "  type: KeyPhrase\n"
        ))
        overlays = ConfigLoader().load_overlays(path)

        assert overlays[1].type == OverlayType.QURAN_VERSE
        assert overlays[1].reference == "QS. Al-Insyirah 94:6"
        assert overlays[4].type == OverlayType.KEY_PHRASE
        assert overlays[4].text == ""

    def test_unknown_overlay_type(self, write_file):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_overlays(write_file("overlays.yaml", "1:\n  type: Banner\n"))

    def test_overlay_must_be_mapping(self, write_file):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_overlays(write_file("overlays.yaml", "1: QuranVerse\n"))


class TestUtils:

    def test_default_worker_count(self, monkeypatch):
        monkeypatch.setattr("os.cpu_count", lambda: 16)
        assert default_worker_count() == 8
        monkeypatch.setattr("os.cpu_count", lambda: 4)
        assert default_worker_count(reserve=1) == 3
        monkeypatch.setattr("os.cpu_count", lambda: None)
        assert default_worker_count() == 1

    def test_format_time_srt(self):
        assert format_time_srt(3723.4567) == "01:02:03,457"
        assert format_time_srt(-1.0) == "00:00:00,000"

    def test_parse_time_srt(self):
        assert parse_time_srt("00:01:02,500") == 62.5
        assert parse_time_srt("00:00:01.5") == 1.5
        assert parse_time_srt("00:61:00,000") is None
        assert parse_time_srt("soon") is None

    def test_format_time_lrc(self):
        assert format_time_lrc(125.456) == "02:05.45"
        assert format_time_lrc(3725.0) == "62:05.00"

    def test_ensure_dir_exists_rejects_files(self, write_file):
        with pytest.raises(FileSystemError):
            ensure_dir_exists(write_file("plain.txt", "x"))
