"""Handles loading configuration from YAML files."""

import yaml
import os
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError
from .models import OverlayType, TextOverlay
from .utils import default_worker_count

logger = logging.getLogger(__name__)


@dataclass
class SyncConfig:
    """Typed view of the settings a synchronization run depends on."""

    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    log_dir: str = "logs"
    log_file: str = "vosync.log"
    file_log_level: str = "DEBUG"
    work_dir: str = "output"

    # Sentence expansion
    target_segment_duration: float = 12.0
    chunk_words: int = 15
    min_sentence_duration: float = 0.5
    min_chunk_duration: float = 1.0

    # Slice padding caps in seconds
    padding_start_max: float = 0.0
    padding_end_max: float = 0.0

    # Segment drift tolerances (milliseconds)
    valid_drift_ms: float = 100.0
    error_drift_ms: float = 200.0

    # Fuzzy alignment
    sentence_threshold: float = 0.7
    word_threshold: float = 0.8
    max_window: int = 4
    word_window: int = 10
    word_pad: float = 0.2

    # Concurrency
    slice_workers: int = 0  # 0 = derive from CPU count
    cpu_reserve: int = 1
    parallel_clips: int = 3

    # Visual assembly
    transition: str = "Fade"
    transition_duration: float = 0.5
    filter_timeout: Optional[float] = None

    overlay_words_per_second: float = 2.5

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "SyncConfig":
        """
        Builds a SyncConfig from a loaded YAML mapping.

        Unknown keys are ignored with a warning. Values are coerced to the
        type of the field default; values that cannot be coerced raise.

        Raises:
            ConfigurationError: If a value has the wrong type.
        """
        known = {f.name: f for f in fields(cls)}
        defaults = cls()
        kwargs: Dict[str, Any] = {}
        for key, value in config.items():
            if key not in known:
                logger.warning(f"Ignoring unknown configuration key: '{key}'")
                continue
            default = getattr(defaults, key)
            if value is None or default is None:
                kwargs[key] = value
                continue
            try:
                if isinstance(default, bool):
                    kwargs[key] = bool(value)
                elif isinstance(default, int):
                    kwargs[key] = int(value)
                elif isinstance(default, float):
                    kwargs[key] = float(value)
                else:
                    kwargs[key] = str(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for '{key}': {value!r} ({e})") from e
        cfg = cls(**kwargs)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        """Checks cross-field constraints."""
        if not isinstance(logging.getLevelName(self.file_log_level.upper()), int):
            raise ConfigurationError(f"Unknown 'file_log_level': '{self.file_log_level}'")
        if self.target_segment_duration <= 0:
            raise ConfigurationError("'target_segment_duration' must be positive.")
        if self.chunk_words < 1:
            raise ConfigurationError("'chunk_words' must be at least 1.")
        if self.padding_start_max < 0 or self.padding_end_max < 0:
            raise ConfigurationError("Padding caps cannot be negative.")
        if self.error_drift_ms < self.valid_drift_ms:
            raise ConfigurationError("'error_drift_ms' must not be below 'valid_drift_ms'.")
        if not 0.0 < self.sentence_threshold <= 1.0 or not 0.0 < self.word_threshold <= 1.0:
            raise ConfigurationError("Similarity thresholds must be in (0, 1].")
        if self.max_window < 1 or self.word_window < 1:
            raise ConfigurationError("Alignment windows must be at least 1.")
        if self.transition_duration < 0:
            raise ConfigurationError("'transition_duration' cannot be negative.")

    def resolve_slice_workers(self) -> int:
        """Concurrency limit for slicing: CPU count minus a reserve, at least 1."""
        if self.slice_workers > 0:
            return self.slice_workers
        return default_worker_count(self.cpu_reserve)

    def resolve_file_log_level(self) -> int:
        return logging.getLevelName(self.file_log_level.upper())

    def resolve_parallel_clips(self) -> int:
        return max(1, min(8, self.parallel_clips))


class ConfigLoader:
    """Loads configuration settings from a YAML file."""

    def load_config(self, config_path: str) -> dict:
        """
        Loads configuration from the specified YAML file path.

        Args:
            config_path: The path to the YAML configuration file.

        Returns:
            A dictionary containing the loaded configuration settings.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML or
                              if there are other reading errors.
        """
        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
            logger.error(f"Configuration path is not a file: {config_path}")
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except IOError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if config is None:
            logger.warning(f"Configuration file {config_path} is empty, using defaults.")
            return {}
        if not isinstance(config, dict):
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")
        logger.info(f"Configuration loaded successfully from {config_path}")
        return config

    def load_sync_config(self, config_path: str) -> SyncConfig:
        """Loads the YAML file and converts it into a SyncConfig."""
        return SyncConfig.from_dict(self.load_config(config_path))

    def load_pause_hints(self, path: str) -> Dict[int, float]:
        """
        Loads a pause hint file: a mapping of 0-based entry position to seconds.

        Position -1 is the silence before the first entry.
        """
        hints: Dict[int, float] = {}
        for key, value in self.load_config(path).items():
            try:
                hints[int(key)] = float(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid pause hint {key!r}: {value!r} in {path}") from e
            if hints[int(key)] < 0:
                raise ConfigurationError(f"Pause hint for {key!r} is negative in {path}")
        logger.info(f"Loaded {len(hints)} pause hints from {path}")
        return hints

    def load_overlays(self, path: str) -> Dict[int, TextOverlay]:
        """
        Loads an overlay file: a mapping of 0-based entry position to
        `{type, text, reference, arabic}`.
        """
        overlays: Dict[int, TextOverlay] = {}
        for key, value in self.load_config(path).items():
            if not isinstance(value, dict):
                raise ConfigurationError(f"Overlay {key!r} in {path} must be a mapping")
            try:
                overlays[int(key)] = TextOverlay(
                    type=OverlayType(value.get("type")),
                    text=str(value.get("text") or ""),
                    reference=value.get("reference"),
                    arabic=value.get("arabic"),
                )
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid overlay {key!r} in {path}: {e}") from e
        logger.info(f"Loaded {len(overlays)} overlays from {path}")
        return overlays
