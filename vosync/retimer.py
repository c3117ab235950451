"""Rebuilds working timestamps from segment durations and pauses."""

import logging
from typing import Dict, List, Optional

from .models import SubtitleEntry, VoSegment
from .pauses import HEAD_SILENCE_INDEX

logger = logging.getLogger(__name__)


def entry_duration(entry: SubtitleEntry, segment: Optional[VoSegment]) -> float:
    """
    Length an entry occupies in the stitched track.

    A valid segment contributes its measured length. Any other segment was
    stitched as silence of its requested length.
    """
    if segment is not None:
        if segment.is_valid and segment.actual_duration > 0:
            return segment.actual_duration
        if segment.duration > 0:
            return segment.duration
    return entry.padded_duration


def retime_entries(
    entries: List[SubtitleEntry],
    pauses: Dict[int, float],
    segments: Optional[List[VoSegment]] = None
) -> List[SubtitleEntry]:
    """
    Lays entries end to end from zero, in order, with pauses between them.

    Each start is the previous end plus the pause at that position, so there
    is no rounding drift. Entries are updated in place and returned.
    """
    by_index = {s.index: s for s in (segments or [])}
    clock = pauses.get(HEAD_SILENCE_INDEX, 0.0)

    for position, entry in enumerate(entries):
        duration = entry_duration(entry, by_index.get(entry.index))
        entry.start_time = clock
        entry.end_time = clock + duration
        clock = entry.end_time + pauses.get(position, 0.0)

    if entries:
        logger.info(f"Retimed {len(entries)} entries, timeline ends at {entries[-1].end_time:.3f}s")
    return entries
