"""Splits long subtitle entries into sentence- or chunk-sized entries."""

import logging
import re
from dataclasses import replace
from typing import Dict, List, Tuple

from .models import ExpansionStats, SubtitleEntry
from .utils import word_count

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?…])\s+")


def split_sentences(text: str) -> List[str]:
    """Splits text after sentence-ending punctuation, keeping the punctuation."""
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text.strip()) if s.strip()]


def chunk_words(text: str, size: int) -> List[str]:
    """Groups the words of `text` into chunks of at most `size` words."""
    words = text.split()
    return [" ".join(words[i:i + size]) for i in range(0, len(words), size)]


def proportional_durations(pieces: List[str], total: float) -> List[float]:
    """Shares `total` across pieces by word count."""
    counts = [word_count(p) for p in pieces]
    total_words = sum(counts) or 1
    return [total * c / total_words for c in counts]


class SentenceExpander:
    """
    Expands captioning-tool entries into one entry per sentence.

    Duration is shared by word count, not character count. Sentences longer
    than `target_segment_duration` are cut into `chunk_words`-word chunks
    using the same rule. Pieces never get shorter than the configured floors,
    and the pieces of one source entry are laid out back to back from its
    start time; gaps between source entries are left untouched.
    """

    def __init__(
        self,
        target_segment_duration: float = 12.0,
        chunk_words: int = 15,
        min_sentence_duration: float = 0.5,
        min_chunk_duration: float = 1.0
    ):
        self.target_segment_duration = target_segment_duration
        self.chunk_words = chunk_words
        self.min_sentence_duration = min_sentence_duration
        self.min_chunk_duration = min_chunk_duration

    def expand(self, entries: List[SubtitleEntry]) -> List[SubtitleEntry]:
        """
        Expands entries. Returns new entry objects; the input is not modified.

        Entries that are already a single sentence within the duration bounds
        are passed through unchanged apart from renumbering, so running the
        expander on its own output is a no-op.
        """
        result: List[SubtitleEntry] = []
        for entry in entries:
            text = entry.text.strip()
            if not text:
                continue

            sentences = split_sentences(text)
            if not sentences:
                result.append(replace(entry, index=len(result) + 1))
                continue

            if self._is_atomic(entry, sentences):
                result.append(replace(entry, index=len(result) + 1))
                continue

            for piece_text, start, end in self._layout(entry, sentences):
                result.append(SubtitleEntry(index=len(result) + 1, start_time=start, end_time=end, text=piece_text))

        logger.info(f"Expanded {len(entries)} entries into {len(result)}")
        return result

    def _is_atomic(self, entry: SubtitleEntry, sentences: List[str]) -> bool:
        if len(sentences) != 1:
            return False
        duration = entry.duration
        if duration > self.target_segment_duration:
            return len(chunk_words(sentences[0], self.chunk_words)) == 1 and duration >= self.min_chunk_duration
        return duration >= self.min_sentence_duration

    def _layout(self, entry: SubtitleEntry, sentences: List[str]) -> List[Tuple[str, float, float]]:
        pieces: List[Tuple[str, float]] = []
        clamped = False
        for sentence, sentence_duration in zip(sentences, proportional_durations(sentences, entry.duration)):
            if sentence_duration > self.target_segment_duration:
                chunks = chunk_words(sentence, self.chunk_words)
                for chunk, chunk_duration in zip(chunks, proportional_durations(chunks, sentence_duration)):
                    safe = max(self.min_chunk_duration, chunk_duration)
                    clamped = clamped or safe != chunk_duration
                    pieces.append((chunk, safe))
            else:
                safe = max(self.min_sentence_duration, sentence_duration)
                clamped = clamped or safe != sentence_duration
                pieces.append((sentence.strip(), safe))

        laid_out: List[Tuple[str, float, float]] = []
        current = entry.start_time
        for i, (piece_text, duration) in enumerate(pieces):
            end = current + duration
            if i == len(pieces) - 1 and not clamped:
                end = entry.end_time  # no float drift on the last piece
            laid_out.append((piece_text, current, end))
            current = end
        return laid_out


def _count_marker(entries: List[SubtitleEntry], marker: str, prefix: str = "") -> int:
    marker = marker.lower()
    prefix = prefix.lower()
    count = 0
    for e in entries:
        text = e.text.lower()
        if marker in text or (prefix and text.startswith(prefix)):
            count += 1
    return count


def expansion_stats(
    original: List[SubtitleEntry],
    expanded: List[SubtitleEntry],
    pauses: Dict[int, float]
) -> ExpansionStats:
    """Summarizes an expansion from its final state."""
    total_duration = sum(e.duration for e in expanded)
    return ExpansionStats(
        original_entry_count=len(original),
        expanded_entry_count=len(expanded),
        expansion_ratio=len(expanded) / len(original) if original and expanded else 0.0,
        total_duration=total_duration,
        average_segment_duration=total_duration / len(expanded) if expanded else 0.0,
        quran_verse_count=sum(
            1 for e in expanded
            if "[overlay:quranverse]" in e.text.lower() or "qs." in e.text.lower()
        ),
        hadith_count=_count_marker(expanded, "[OVERLAY:Hadith]", prefix="HR."),
        key_phrase_count=_count_marker(expanded, "[OVERLAY:KeyPhrase]"),
        total_pause_count=len(pauses),
        total_pause_duration=sum(pauses.values()),
    )
