"""Data models for VoSync."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

_WRITE_ONCE = ("original_start_time", "original_end_time")


@dataclass
class SubtitleEntry:
    """
    Represents a single timed subtitle entry.

    `start_time`/`end_time` are the working timestamps and change when the
    timeline is retimed. `original_start_time`/`original_end_time` capture
    where the text sits in the source voiceover; they are filled once (from
    the working timestamps if not given) and cannot be reassigned, because
    slicing reads them after retiming.
    """
    index: int
    start_time: float
    end_time: float
    text: str
    original_start_time: Optional[float] = None
    original_end_time: Optional[float] = None
    padding_start: float = 0.0
    padding_end: float = 0.0

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValueError(f"Entry {self.index}: end {self.end_time:.3f}s is not after start {self.start_time:.3f}s")
        if self.original_start_time is None:
            self.original_start_time = self.start_time
        if self.original_end_time is None:
            self.original_end_time = self.end_time

    def __setattr__(self, name, value):
        if name in _WRITE_ONCE and getattr(self, name, None) is not None:
            raise AttributeError(f"{name} is write-once and already set for entry {self.index}")
        super().__setattr__(name, value)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def original_duration(self) -> float:
        return self.original_end_time - self.original_start_time

    @property
    def slice_start(self) -> float:
        """Start of the audio slice in the source voiceover."""
        return max(0.0, self.original_start_time - self.padding_start)

    @property
    def slice_end(self) -> float:
        return self.original_end_time + self.padding_end

    @property
    def padded_duration(self) -> float:
        """Theoretical length of the slice, used when no measured duration exists."""
        return self.original_duration + self.padding_start + self.padding_end


class OverlayType(str, Enum):
    QURAN_VERSE = "QuranVerse"
    HADITH = "Hadith"
    RHETORICAL_QUESTION = "RhetoricalQuestion"
    KEY_PHRASE = "KeyPhrase"


@dataclass
class TextOverlay:
    """On-screen text shown in the pause after an entry."""
    type: OverlayType
    text: str = ""
    reference: Optional[str] = None
    arabic: Optional[str] = None


@dataclass
class AlignedWindow:
    """Time range borrowed from the source sequence for one target entry."""
    start_time: float
    end_time: float
    text: str
    score: float
    method: str  # "sentence", "word" or "identity"
    source_start_index: Optional[int] = None
    source_end_index: Optional[int] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class VoSegment:
    """One sliced piece of the voiceover, matching one subtitle entry."""
    index: int
    audio_path: str
    start_time: float
    end_time: float
    duration: float
    text: str = ""
    actual_duration: float = 0.0
    is_valid: bool = False
    drift_ms: float = 0.0
    validation_error: Optional[str] = None
    warning: Optional[str] = None


@dataclass
class SliceResult:
    """Holds the outcome of slicing a voiceover into per-entry segments."""
    source_path: str
    output_dir: str
    source_duration: float = 0.0
    segments: List[VoSegment] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid_segments(self) -> List[VoSegment]:
        return [s for s in self.segments if s.is_valid]

    @property
    def total_duration(self) -> float:
        return sum(s.actual_duration for s in self.segments)

    @property
    def is_success(self) -> bool:
        return len(self.segments) > 0


@dataclass
class ValidationIssue:
    segment_index: int
    text: str
    issue: str
    severity: str = "Error"  # Error, Warning


@dataclass
class SegmentMismatch:
    segment_index: int
    text: str
    expected_duration: float
    actual_duration: float
    difference_ms: float
    difference_percent: float


@dataclass
class ValidationResult:
    """Quality signals for sliced segments against their requested durations."""
    accuracy_score: float = 0.0
    valid_segments: int = 0
    invalid_segments: int = 0
    warning_segments: int = 0
    issues: List[ValidationIssue] = field(default_factory=list)
    mismatches: List[SegmentMismatch] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.invalid_segments == 0 and self.accuracy_score >= 90.0


@dataclass(frozen=True)
class ExpansionStats:
    """Read-only summary of an expansion run, always recomputed from final state."""
    original_entry_count: int
    expanded_entry_count: int
    expansion_ratio: float
    total_duration: float
    average_segment_duration: float
    quran_verse_count: int
    hadith_count: int
    key_phrase_count: int
    total_pause_count: int
    total_pause_duration: float


@dataclass
class ClipSpec:
    """A visual asset to place on the timeline (video clip or still image)."""
    path: str
    is_still: bool = False
    duration: float = 0.0  # intrinsic duration, 0 when unknown or still
    has_audio: bool = False
    text: str = ""


@dataclass
class SyncResult:
    """Everything a synchronization run produced."""
    entries: List[SubtitleEntry]
    pauses: Dict[int, float]
    stats: ExpansionStats
    slice_result: SliceResult
    validation: ValidationResult
    expanded_srt_path: str
    expanded_lrc_path: str
    stitched_vo_path: str


@dataclass
class TargetSyncResult:
    """Outcome of re-timing a voiceover onto another subtitle's timeline."""
    entries: List[SubtitleEntry]
    alignment: List[Optional[AlignedWindow]]
    vo_path: str
    srt_path: str

    @property
    def unaligned_count(self) -> int:
        return sum(1 for w in self.alignment if w is None)
