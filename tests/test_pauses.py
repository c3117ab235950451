"""
Tests for rule-based pauses, natural gaps, padding and pause merging.
"""

import pytest

from vosync.models import AlignedWindow, OverlayType, SubtitleEntry, TextOverlay
from vosync.pauses import (HEAD_SILENCE_INDEX, PauseCalculator, compute_padding, merge_pauses,
                           natural_gap, overlay_minimums, rule_pause)

from conftest import make_entries


@pytest.fixture
def calculator():
    return PauseCalculator()


class TestRulePause:

    @pytest.mark.parametrize("text,expected", [
        ("As stated in QS. Al-Baqarah: 255", 2.0),
        ("[OVERLAY:QuranVerse]", 2.0),
        ("HR. Bukhari narrated this,", 1.5),
        ("Is it true?", 1.0),
        ("And then...", 0.8),
        ("And then…", 0.8),
        ("It ended.", 0.6),
        ("Stop!", 0.6),
        ("First,", 0.3),
        ("Note;", 0.3),
        ("As follows:", 0.3),
        ("no punctuation", 0.0),
    ])
    def test_priority_order(self, text, expected):
        assert rule_pause(text) == expected

    def test_question_beats_sentence_markers(self):
        assert rule_pause("Did it end. Really?") == 1.0


class TestCalculate:

    def test_rule_pause_beats_smaller_gap(self, calculator):
        entries = make_entries((0.0, 2.0), (2.5, 5.0), texts=["Halo dunia.", "Ini contoh."])
        assert calculator.calculate(entries) == {0: 0.6}

    def test_natural_gap_is_a_floor(self, calculator):
        entries = make_entries((0.0, 2.0), (4.0, 5.0), texts=["no punctuation", "end"])
        assert calculator.calculate(entries) == {0: 2.0}

    def test_head_silence(self, calculator):
        entries = make_entries((1.5, 2.0), (2.0, 3.0), texts=["one", "two"])
        assert calculator.calculate(entries) == {HEAD_SILENCE_INDEX: 1.5}

    def test_no_pause_after_last_entry(self, calculator):
        entries = make_entries((0.0, 1.0), texts=["Done."])
        assert calculator.calculate(entries) == {}

    def test_gap_uses_original_times(self, calculator):
        entries = make_entries((0.0, 1.0), (3.0, 4.0), texts=["a", "b"])
        entries[1].start_time = 1.0
        entries[1].end_time = 2.0
        assert calculator.calculate(entries) == {0: 2.0}


class TestMerge:

    def test_merge_takes_max_not_sum(self):
        assert merge_pauses({0: 0.6}, {0: 2.0}) == {0: 2.0}

    def test_merge_unions_indices_and_ignores_non_positive(self):
        merged = merge_pauses({0: 0.3, -1: 1.0}, {1: 0.5, 2: 0.0, 3: -1.0}, None)
        assert merged == {0: 0.3, -1: 1.0, 1: 0.5}

    def test_build_merges_hints_and_overlays(self, calculator):
        entries = make_entries((0.0, 2.0), (2.5, 5.0), (5.0, 6.0), texts=["Halo dunia.", "Ini contoh,", "End"])
        overlays = {1: TextOverlay(OverlayType.HADITH, "short")}
        pauses = calculator.build(entries, hints={0: 2.0, 7: 9.0}, overlays=overlays)
        assert pauses == {0: 2.0, 1: 2.5}

    def test_overlay_minimums(self):
        overlays = {
            0: TextOverlay(OverlayType.QURAN_VERSE, " ".join(["word"] * 8), reference="QS. 2:255"),
            3: TextOverlay(OverlayType.KEY_PHRASE, "Key"),
        }
        assert overlay_minimums(overlays) == {0: 4.0, 3: 1.0}


class TestPadding:

    def test_padding_capped_and_split_at_half_gap(self):
        entries = make_entries((1.0, 2.0), (2.4, 3.0))
        compute_padding(entries, start_cap=0.05, end_cap=0.15)

        assert entries[0].padding_start == 0.05
        assert entries[0].padding_end == 0.15
        assert entries[1].padding_start == 0.05
        assert entries[1].padding_end == 0.15
        assert entries[0].slice_end <= entries[1].slice_start

    def test_padding_never_overlaps_on_tight_gap(self):
        entries = make_entries((0.0, 2.0), (2.1, 3.0))
        compute_padding(entries, start_cap=0.2, end_cap=0.2)
        assert entries[0].padding_end == pytest.approx(0.05)
        assert entries[1].padding_start == pytest.approx(0.05)

    def test_last_entry_limited_by_source_duration(self):
        entries = make_entries((0.0, 3.0))
        compute_padding(entries, start_cap=0.05, end_cap=0.15, source_duration=3.1)
        assert entries[0].padding_start == 0.0
        assert entries[0].padding_end == pytest.approx(0.1)

    def test_natural_gap_subtracts_padding(self):
        entries = make_entries((1.0, 2.0), (2.4, 3.0))
        compute_padding(entries, start_cap=0.05, end_cap=0.15)
        assert natural_gap(entries[0], entries[1]) == pytest.approx(0.2)


def test_remap_hints_to_expanded_positions(calculator):
    expanded = [
        SubtitleEntry(1, 0.0, 1.0, "One."),
        SubtitleEntry(2, 1.0, 2.0, "Two."),
        SubtitleEntry(3, 2.5, 4.0, "Three."),
    ]
    alignment = [
        AlignedWindow(0.0, 2.0, "One. Two.", 1.0, "sentence"),
        None,
        AlignedWindow(2.5, 4.0, "Three.", 1.0, "sentence"),
    ]
    remapped = calculator.remap_hints({0: 1.2, 1: 3.0, 2: 0.4, -1: 0.5}, alignment, expanded)
    assert remapped == {1: 1.2, 2: 0.4, -1: 0.5}
