"""Maps entries of one subtitle sequence onto time windows of another."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .fuzzy import similarity
from .models import AlignedWindow, SubtitleEntry

logger = logging.getLogger(__name__)


@dataclass
class _TimedWord:
    word: str
    mid_time: float
    source_index: int


class FuzzyAligner:
    """
    Aligns a target sequence (authoritative text) to a source sequence
    (whose timing is reused).

    A cursor only moves forward through the source, so once a source entry
    is consumed by a target entry no later target entry can claim it.
    """

    def __init__(
        self,
        sentence_threshold: float = 0.7,
        word_threshold: float = 0.8,
        max_window: int = 4,
        word_window: int = 10,
        word_pad: float = 0.2
    ):
        self.sentence_threshold = sentence_threshold
        self.word_threshold = word_threshold
        self.max_window = max_window
        self.word_window = word_window
        self.word_pad = word_pad

    def align(self, target: Sequence[SubtitleEntry], source: Sequence[SubtitleEntry]) -> List[Optional[AlignedWindow]]:
        """
        Returns one entry per target entry: the matched window, or None when
        neither pass found the text. Callers must handle None explicitly.
        """
        aligned: List[Optional[AlignedWindow]] = []
        cursor = 0
        unaligned = 0

        for target_entry in target:
            match = self.match_sentence(target_entry.text, source, cursor)
            if match is not None:
                aligned.append(match)
                cursor = match.source_end_index + 1
                continue

            logger.warning(f"Sentence-level match failed for: '{target_entry.text[:60]}'. Falling back to word level...")
            fallback = self.match_words(target_entry.text, source, cursor)
            if fallback is None:
                unaligned += 1
                logger.warning(f"Could not align target entry {target_entry.index}")
            aligned.append(fallback)

        logger.info(f"Aligned {len(target) - unaligned}/{len(target)} target entries")
        return aligned

    def match_sentence(self, text: str, source: Sequence[SubtitleEntry], start: int) -> Optional[AlignedWindow]:
        """Best window of 1..max_window consecutive source entries from `start`."""
        if start >= len(source):
            return None

        best_score = 0.0
        best: Optional[Tuple[int, str]] = None
        for size in range(1, self.max_window + 1):
            if start + size > len(source):
                break
            window = source[start:start + size]
            combined = " ".join(e.text for e in window)
            score = similarity(text, combined)
            # strict improvement keeps the smallest window on ties
            if score > best_score:
                best_score = score
                best = (start + size - 1, combined)

        if best is None or best_score <= self.sentence_threshold:
            return None
        end_idx, combined = best
        return AlignedWindow(
            start_time=source[start].start_time,
            end_time=source[end_idx].end_time,
            text=combined,
            score=best_score,
            method="sentence",
            source_start_index=start,
            source_end_index=end_idx,
        )

    def match_words(self, text: str, source: Sequence[SubtitleEntry], start: int) -> Optional[AlignedWindow]:
        """
        Locates the target's first and last words in the next `word_window`
        source entries, each word timed at its estimated midpoint.

        The cursor is not advanced by a word-level match.
        """
        words = self._timed_words(source, start)
        target_words = text.split()
        if not words or not target_words:
            return None

        first_idx = next(
            (i for i, w in enumerate(words) if similarity(target_words[0], w.word) > self.word_threshold), -1
        )
        last_idx = next(
            (i for i in range(len(words) - 1, -1, -1) if similarity(target_words[-1], words[i].word) > self.word_threshold),
            -1,
        )
        if first_idx == -1 or last_idx == -1 or last_idx < first_idx:
            return None

        first, last = words[first_idx], words[last_idx]
        return AlignedWindow(
            start_time=max(0.0, first.mid_time - self.word_pad),
            end_time=last.mid_time + self.word_pad,
            text=text,
            score=min(similarity(target_words[0], first.word), similarity(target_words[-1], last.word)),
            method="word",
            source_start_index=first.source_index,
            source_end_index=last.source_index,
        )

    def _timed_words(self, source: Sequence[SubtitleEntry], start: int) -> List[_TimedWord]:
        """Flattens source entries into words timed by character length."""
        timed: List[_TimedWord] = []
        for offset, entry in enumerate(source[start:start + self.word_window]):
            entry_words = entry.text.split()
            if not entry_words:
                continue
            per_char = entry.duration / max(1, len(entry.text))
            word_start = entry.start_time
            for word in entry_words:
                word_duration = len(word) * per_char
                timed.append(_TimedWord(word, word_start + word_duration / 2.0, start + offset))
                word_start += word_duration + per_char  # trailing space
        return timed
