"""Decides how long each visual clip stays on the timeline."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .aligner import FuzzyAligner
from .models import ClipSpec, SubtitleEntry
from .pauses import HEAD_SILENCE_INDEX

logger = logging.getLogger(__name__)

MIN_SYNCED_DURATION = 1.0
MIN_EVEN_DURATION = 3.0


@dataclass
class ClipTimeline:
    durations: List[float] = field(default_factory=list)
    synced: bool = False  # True when durations follow the voiceover subtitle


def even_division(clips: List[ClipSpec], total: float) -> List[float]:
    """Splits `total` evenly, at least 3s per clip, never longer than a clip's own length."""
    per_clip = max(MIN_EVEN_DURATION, total / max(1, len(clips)))
    return [min(per_clip, c.duration) if c.duration > 0 and not c.is_still else per_clip for c in clips]


def resolve_clip_durations(
    clips: List[ClipSpec],
    retimed_entries: Optional[List[SubtitleEntry]] = None,
    pauses: Optional[Dict[int, float]] = None,
    reference_entries: Optional[List[SubtitleEntry]] = None,
    aligner: Optional[FuzzyAligner] = None,
    target_total: Optional[float] = None,
    min_duration: float = MIN_SYNCED_DURATION
) -> ClipTimeline:
    """
    Clip durations for the final timeline.

    With `reference_entries`, each clip's text is aligned to the reference
    and a clip runs from its aligned start to the next clip's aligned start.
    If any clip cannot be aligned every clip falls back to an even split of
    `target_total`. Without a reference, clip `i` takes retimed entry `i`
    plus the pause after it, the first clip also covering head silence.
    """
    if not clips:
        return ClipTimeline()

    if reference_entries:
        timeline_end = reference_entries[-1].end_time
        targets = [SubtitleEntry(index=i + 1, start_time=0.0, end_time=1.0, text=c.text) for i, c in enumerate(clips)]
        windows = (aligner or FuzzyAligner()).align(targets, reference_entries)
        missing = [i for i, w in enumerate(windows) if w is None]
        if not missing:
            durations = []
            for i in range(len(clips)):
                start = 0.0 if i == 0 else windows[i].start_time
                end = timeline_end if i == len(clips) - 1 else windows[i + 1].start_time
                durations.append(max(min_duration, end - start))
            logger.info(f"Mapped {len(clips)} clip durations to the voiceover timeline")
            return ClipTimeline(durations=durations, synced=True)
        logger.warning(f"Could not align clip text for clips {missing}. Falling back to even division.")
        total = target_total if target_total is not None else timeline_end
        return ClipTimeline(durations=even_division(clips, total))

    if retimed_entries and len(retimed_entries) == len(clips):
        pauses = pauses or {}
        durations = [e.duration + pauses.get(i, 0.0) for i, e in enumerate(retimed_entries)]
        durations[0] += pauses.get(HEAD_SILENCE_INDEX, 0.0)
        return ClipTimeline(durations=durations, synced=True)

    if retimed_entries:
        logger.warning(f"{len(clips)} clips for {len(retimed_entries)} entries. Falling back to even division.")
        total = target_total if target_total is not None else retimed_entries[-1].end_time
    else:
        total = target_total or 0.0
    return ClipTimeline(durations=even_division(clips, total))
