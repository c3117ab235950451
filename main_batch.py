#!/usr/bin/env python3
"""
VoSync Batch Processing Entry Point

Processes every session folder in a directory (one .srt plus one voiceover
audio file each), smallest voiceover first, writing results into each
session's own output folder.
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from typing import List, Optional, Tuple

from tqdm import tqdm

from vosync.config_loader import ConfigLoader, SyncConfig
from vosync.log_setup import attach_session_log, detach_session_log, setup_logging
from vosync.encoder import FFmpegEncoder
from vosync.synchronizer import TimelineSynchronizer
from vosync.exceptions import VoSyncError, ConfigurationError

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".wav", ".m4a", ".aac", ".flac", ".ogg")


def find_session_files(session_dir: str) -> Optional[Tuple[str, str]]:
    """Returns (srt_path, audio_path) when the folder holds exactly one of each."""
    srts, audios = [], []
    for filename in sorted(os.listdir(session_dir)):
        path = os.path.join(session_dir, filename)
        if not os.path.isfile(path):
            continue
        lowered = filename.lower()
        if lowered.endswith(".srt"):
            srts.append(path)
        elif lowered.endswith(AUDIO_EXTENSIONS):
            audios.append(path)
    if len(srts) != 1 or len(audios) != 1:
        logger.warning(f"Skipping {session_dir}: expected one .srt and one audio file, "
                       f"found {len(srts)} and {len(audios)}")
        return None
    return srts[0], audios[0]


def find_and_sort_sessions(input_dir: str) -> List[Tuple[str, str, str, int]]:
    """
    Finds session folders and sorts them by voiceover size.

    Args:
        input_dir: The directory whose sub-directories are sessions.

    Returns:
        A list of (session_dir, srt_path, audio_path, audio_size) tuples,
        smallest voiceover first.

    Raises:
        FileNotFoundError: If the input directory doesn't exist.
        ValueError: If the input path is not a directory.
    """
    if not os.path.exists(input_dir):
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    if not os.path.isdir(input_dir):
        raise ValueError(f"Input path is not a directory: {input_dir}")

    sessions = []
    logger.info(f"Scanning directory for sessions: {input_dir}")
    for name in os.listdir(input_dir):
        session_dir = os.path.join(input_dir, name)
        if not os.path.isdir(session_dir):
            continue
        found = find_session_files(session_dir)
        if found is None:
            continue
        srt_path, audio_path = found
        try:
            sessions.append((session_dir, srt_path, audio_path, os.path.getsize(audio_path)))
        except OSError as e:
            logger.warning(f"Could not access file {audio_path}: {e}. Skipping.")

    sessions.sort(key=lambda item: item[3])
    logger.info(f"Found {len(sessions)} sessions. Sorted by voiceover size (smallest first).")
    return sessions


def run_batch_processing():
    """Parses arguments, sets up, and runs synchronization for every session."""
    parser = argparse.ArgumentParser(
        description="VoSync Batch: Synchronize every session folder in a directory.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "-i", "--input-dir",
        required=True,
        help="Directory containing one sub-directory per session."
    )
    parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to the configuration YAML file."
    )
    parser.add_argument(
        "--output-name",
        default="vosync_output",
        help="Name of the output folder created inside each session."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level for console and file output."
    )

    args = parser.parse_args()

    # --- Setup Logging (Initial) ---
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    setup_logging(log_level=log_level, log_dir='logs', log_file='vosync_batch_init.log')

    # --- Load Configuration ---
    try:
        if os.path.exists(args.config):
            config = ConfigLoader().load_sync_config(args.config)
        else:
            logger.warning(f"Configuration file not found: {args.config}. Using defaults.")
            config = SyncConfig()
    except ConfigurationError as e:
        logger.critical(f"Failed to load configuration: {e}", exc_info=True)
        sys.exit(1)

    # --- Re-configure Logging (Final) ---
    setup_logging(log_level=log_level, log_dir=config.log_dir, log_file='vosync_batch.log',
                  file_level=min(log_level, config.resolve_file_log_level()))
    logger.info("Logging re-configured with settings from config file for batch processing.")

    # --- Find and Sort Sessions ---
    try:
        sessions = find_and_sort_sessions(args.input_dir)
        if not sessions:
            logger.warning(f"No session folders found in {args.input_dir}. Exiting.")
            sys.exit(0)
    except (FileNotFoundError, ValueError) as e:
        logger.critical(f"Input directory error: {e}")
        sys.exit(1)

    # --- Initialize Components (ONCE) ---
    encoder = FFmpegEncoder(ffmpeg_path=config.ffmpeg_path, ffprobe_path=config.ffprobe_path)
    synchronizer = TimelineSynchronizer(config=config, encoder=encoder)

    # --- Process Sessions Sequentially ---
    total = len(sessions)
    processed = 0
    failed = 0
    batch_start_time = time.time()

    logger.info(f"--- Starting Batch Synchronization for {total} sessions ---")

    with tqdm(total=total, unit="session", desc="Starting Batch") as pbar:
        for session_dir, srt_path, audio_path, _ in sessions:
            session_name = os.path.basename(session_dir)
            pbar.set_description(f"Processing: {session_name[:30]}...")
            work_dir = os.path.join(session_dir, args.output_name)
            session_log = None

            try:
                session_log = attach_session_log(work_dir, level=min(log_level, config.resolve_file_log_level()))
                logger.info(f"--- Processing session: {session_dir} ---")
                session_start_time = time.time()
                result = asyncio.run(synchronizer.run(srt_path, audio_path, work_dir))
                logger.info(f"Session {session_name} synchronized in {time.time() - session_start_time:.2f}s "
                            f"(accuracy {result.validation.accuracy_score}%).")
                processed += 1
            except VoSyncError as e:
                logger.error(f"VoSync failed for session '{session_name}': {e}")
                failed += 1
            except KeyboardInterrupt:
                logger.warning("Batch process interrupted by user (Ctrl+C). Exiting.")
                sys.exit(1)
            except Exception as e:
                logger.error(f"An unexpected error occurred processing '{session_name}': {e}", exc_info=True)
                failed += 1
            finally:
                if session_log is not None:
                    detach_session_log(session_log)
                pbar.update(1)

    logger.info("--- Batch Synchronization Finished ---")
    logger.info(f"Total time: {time.time() - batch_start_time:.2f} seconds")
    logger.info(f"Successfully processed: {processed}/{total} sessions")
    logger.info(f"Failed: {failed}/{total} sessions")

    sys.exit(1 if failed > 0 else 0)


if __name__ == "__main__":
    if sys.version_info < (3, 9):
        sys.stderr.write("VoSync requires Python 3.9 or later.\n")
        sys.exit(1)

    run_batch_processing()
