"""Computes the silence inserted after each entry, and slice padding."""

import logging
from typing import Dict, List, Optional

from .models import AlignedWindow, OverlayType, SubtitleEntry, TextOverlay
from .utils import word_count

logger = logging.getLogger(__name__)

HEAD_SILENCE_INDEX = -1

# Rule-based pauses in seconds, checked in this order
QURAN_PAUSE = 2.0
HADITH_PAUSE = 1.5
QUESTION_PAUSE = 1.0
ELLIPSIS_PAUSE = 0.8
SENTENCE_PAUSE = 0.6
CLAUSE_PAUSE = 0.3

# Minimum on-screen reading time per overlay type
OVERLAY_BASE_SECONDS = {
    OverlayType.QURAN_VERSE: 3.0,
    OverlayType.HADITH: 2.5,
    OverlayType.RHETORICAL_QUESTION: 1.5,
    OverlayType.KEY_PHRASE: 1.0,
}


def rule_pause(text: str) -> float:
    """Pause implied by an entry's content markers or trailing punctuation."""
    text = text.strip()
    lowered = text.lower()
    if "qs." in lowered or "[overlay:quranverse]" in lowered:
        return QURAN_PAUSE
    if lowered.startswith("hr.") or "[overlay:hadith]" in lowered:
        return HADITH_PAUSE
    if text.endswith("?"):
        return QUESTION_PAUSE
    if text.endswith("...") or text.endswith("…"):
        return ELLIPSIS_PAUSE
    if text.endswith(".") or text.endswith("!"):
        return SENTENCE_PAUSE
    if text.endswith(",") or text.endswith(";") or text.endswith(":"):
        return CLAUSE_PAUSE
    return 0.0


def natural_gap(current: SubtitleEntry, following: SubtitleEntry) -> float:
    """Silence between two entries in the source audio that the slices do not cover."""
    gap = following.original_start_time - current.original_end_time
    gap -= current.padding_end + following.padding_start
    return max(0.0, gap)


def compute_padding(
    entries: List[SubtitleEntry],
    start_cap: float,
    end_cap: float,
    source_duration: Optional[float] = None
) -> None:
    """
    Sets padding on each entry in place.

    Padding takes at most half of the gap to the neighbouring entry, so
    adjacent slices never overlap, and never more than the cap.
    """
    for i, entry in enumerate(entries):
        if i == 0:
            room_before = entry.original_start_time
        else:
            room_before = (entry.original_start_time - entries[i - 1].original_end_time) / 2.0
        if i == len(entries) - 1:
            room_after = end_cap if source_duration is None else source_duration - entry.original_end_time
        else:
            room_after = (entries[i + 1].original_start_time - entry.original_end_time) / 2.0
        entry.padding_start = round(max(0.0, min(start_cap, room_before)), 3)
        entry.padding_end = round(max(0.0, min(end_cap, room_after)), 3)


def overlay_minimums(overlays: Optional[Dict[int, TextOverlay]], words_per_second: float = 2.5) -> Dict[int, float]:
    """Minimum pause after each overlaid entry so the overlay can be read."""
    minimums: Dict[int, float] = {}
    for index, overlay in (overlays or {}).items():
        base = OVERLAY_BASE_SECONDS.get(overlay.type, 1.0)
        words = word_count(overlay.text or "") + word_count(overlay.reference or "")
        minimums[index] = round(max(base, words / words_per_second), 3)
    return minimums


def merge_pauses(*maps: Optional[Dict[int, float]]) -> Dict[int, float]:
    """Merges pause maps by taking the maximum per index."""
    merged: Dict[int, float] = {}
    for pause_map in maps:
        for index, seconds in (pause_map or {}).items():
            if seconds is None or seconds <= 0:
                continue
            merged[index] = round(max(merged.get(index, 0.0), float(seconds)), 3)
    return merged


def position_map(alignment: List[Optional[AlignedWindow]], entries: List[SubtitleEntry]) -> Dict[int, int]:
    """
    Maps each aligned script position to an expanded entry position.

    `alignment[t]` is the window script entry `t` occupies in the expanded
    entries' original timeline. It maps to the expanded entry whose original
    end is closest to the window's end. Unaligned positions are left out.
    """
    positions: Dict[int, int] = {}
    if not entries:
        return positions
    for target, window in enumerate(alignment):
        if window is None:
            continue
        positions[target] = min(range(len(entries)), key=lambda j: abs(entries[j].original_end_time - window.end_time))
    return positions


class PauseCalculator:
    """Builds the pause map for a list of expanded entries."""

    def __init__(self, overlay_words_per_second: float = 2.5):
        self.overlay_words_per_second = overlay_words_per_second

    def calculate(self, entries: List[SubtitleEntry]) -> Dict[int, float]:
        """
        Rule-based pauses merged with natural gaps, plus head silence.

        Keys are 0-based entry positions; the pause at `i` follows entry `i`.
        No pause follows the last entry. Zero pauses are not stored.
        """
        pauses: Dict[int, float] = {}
        if not entries:
            return pauses

        head = entries[0].original_start_time - entries[0].padding_start
        if head >= 0.001:
            pauses[HEAD_SILENCE_INDEX] = round(head, 3)

        for i in range(len(entries) - 1):
            gap = natural_gap(entries[i], entries[i + 1])
            pause = round(max(gap, rule_pause(entries[i].text)), 3)
            if pause > 0:
                pauses[i] = pause

        logger.info(f"Calculated {len(pauses)} pauses totalling {sum(pauses.values()):.2f}s")
        return pauses

    def build(
        self,
        entries: List[SubtitleEntry],
        hints: Optional[Dict[int, float]] = None,
        overlays: Optional[Dict[int, TextOverlay]] = None
    ) -> Dict[int, float]:
        """Full pause map: rules and gaps, then hints and overlay minimums as lower bounds."""
        pauses = merge_pauses(
            self.calculate(entries),
            self._bounded(hints, len(entries)),
            self._bounded(overlay_minimums(overlays, self.overlay_words_per_second), len(entries)),
        )
        return pauses

    def remap_hints(
        self,
        hints: Dict[int, float],
        alignment: List[Optional[AlignedWindow]],
        entries: List[SubtitleEntry]
    ) -> Dict[int, float]:
        """
        Moves hints keyed by script positions onto expanded entry positions.

        Hints for unaligned script entries are dropped. Head silence keeps
        its key.
        """
        positions = position_map(alignment, entries)
        remapped: Dict[int, float] = {}
        for target, seconds in hints.items():
            if target == HEAD_SILENCE_INDEX:
                remapped[target] = max(remapped.get(target, 0.0), seconds)
                continue
            if target not in positions:
                logger.warning(f"Dropping pause hint for script entry {target}: entry is unaligned")
                continue
            nearest = positions[target]
            remapped[nearest] = max(remapped.get(nearest, 0.0), seconds)
        return remapped

    @staticmethod
    def _bounded(pause_map: Optional[Dict[int, float]], count: int) -> Dict[int, float]:
        bounded: Dict[int, float] = {}
        for index, seconds in (pause_map or {}).items():
            if index == HEAD_SILENCE_INDEX or 0 <= index < count:
                bounded[index] = seconds
            else:
                logger.warning(f"Ignoring pause hint for out-of-range entry {index}")
        return bounded
