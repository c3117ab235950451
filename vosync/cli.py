"""Command-Line Interface handler for VoSync."""

import argparse
import asyncio
import logging
import os
import sys

from .config_loader import ConfigLoader, SyncConfig
from .log_setup import setup_logging
from .encoder import FFmpegEncoder
from .synchronizer import TimelineSynchronizer
from .exceptions import VoSyncError, ConfigurationError

logger = logging.getLogger(__name__)

class CLIHandler:
    """Parses arguments and orchestrates the VoSync process."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            description="VoSync: Fit a voiceover to its subtitle timeline with natural pauses.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        parser.add_argument(
            "-s", "--srt",
            required=True,
            help="Subtitle file describing where the text sits in the voiceover."
        )
        parser.add_argument(
            "-a", "--vo",
            required=True,
            help="Path to the voiceover audio file."
        )
        parser.add_argument(
            "-o", "--output-dir",
            default=None, # Default taken from config file (work_dir)
            help="Working directory for segments, stitched audio and the expanded subtitle."
        )
        parser.add_argument(
            "-c", "--config",
            default="config.yaml",
            help="Path to the configuration YAML file. Defaults are used if it does not exist."
        )
        parser.add_argument(
            "--pause-hints",
            default=None,
            help="YAML/JSON mapping of entry position to minimum pause in seconds."
        )
        parser.add_argument(
            "--overlays",
            default=None,
            help="YAML/JSON mapping of entry position to overlay {type, text, reference, arabic}."
        )
        parser.add_argument(
            "--target-srt",
            default=None,
            help="Re-time the voiceover onto this subtitle's timeline instead of expanding it."
        )
        parser.add_argument(
            "--workers",
            type=int,
            default=None,
            help="Override the number of concurrent slicing jobs."
        )
        parser.add_argument(
            "--log-level",
            default="INFO",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Set the logging level for console and file output."
        )
        return parser

    def run(self) -> None:
        """Parses arguments, sets up logging, loads config, and runs the synchronizer."""
        args = self.parser.parse_args()

        # --- Setup Logging ---
        log_level_name = args.log_level.upper()
        log_level = getattr(logging, log_level_name, logging.INFO)
        setup_logging(log_level=log_level, log_dir='logs', log_file='vosync_init.log')

        # --- Load Configuration ---
        config_loader = ConfigLoader()
        try:
            if os.path.exists(args.config):
                config = config_loader.load_sync_config(args.config)
            else:
                logger.warning(f"Configuration file not found: {args.config}. Using defaults.")
                config = SyncConfig()
            pause_hints = config_loader.load_pause_hints(args.pause_hints) if args.pause_hints else None
            overlays = config_loader.load_overlays(args.overlays) if args.overlays else None
        except (ConfigurationError, FileNotFoundError) as e:
            logger.critical(f"Failed to load configuration: {e}", exc_info=True)
            sys.exit(1)

        # --- Re-configure Logging with settings from Config ---
        setup_logging(log_level=log_level, log_dir=config.log_dir, log_file=config.log_file,
                      file_level=min(log_level, config.resolve_file_log_level()))
        logger.info("Logging re-configured with settings from config file.")

        # --- Apply CLI Overrides ---
        if args.workers:
            logger.info(f"Overriding slice_workers from config with CLI argument: {args.workers}")
            config.slice_workers = args.workers
        work_dir = args.output_dir or config.work_dir

        # --- Validate Input Paths ---
        for path in filter(None, (args.srt, args.vo, args.target_srt)):
            if not os.path.isfile(path):
                logger.critical(f"Input file not found or is not a file: {path}")
                sys.exit(1)

        try:
            logger.info("Initializing VoSync components...")
            encoder = FFmpegEncoder(ffmpeg_path=config.ffmpeg_path, ffprobe_path=config.ffprobe_path)
            synchronizer = TimelineSynchronizer(config=config, encoder=encoder)

            if args.target_srt:
                result = asyncio.run(synchronizer.sync_to_target(args.srt, args.vo, args.target_srt, work_dir))
                logger.info(f"Adjusted voiceover: {result.vo_path}, subtitle: {result.srt_path}")
            else:
                result = asyncio.run(synchronizer.run(args.srt, args.vo, work_dir, pause_hints, overlays))
                logger.info(f"Stitched voiceover: {result.stitched_vo_path}, subtitle: {result.expanded_srt_path}")
                if not result.validation.is_valid:
                    logger.warning(f"Segment accuracy {result.validation.accuracy_score}% is below target; "
                                   f"{result.validation.invalid_segments} segments were replaced by silence.")
            logger.info("VoSync finished successfully.")
            sys.exit(0)

        except VoSyncError as e:
            logger.error(f"A VoSync error occurred: {e}")
            stderr = getattr(e, "stderr", None)
            if stderr:
                logger.error(f"Encoder output:\n{stderr}")
            sys.exit(1)
        except FileNotFoundError as e:
            logger.error(f"{e}")
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            sys.exit(1)
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            sys.exit(2)
