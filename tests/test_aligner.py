"""
Tests for the fuzzy aligner and the similarity metric.
"""

import pytest

from vosync.aligner import FuzzyAligner
from vosync.fuzzy import normalize_text, similarity

from conftest import make_entries


@pytest.fixture
def aligner():
    return FuzzyAligner()


class TestSimilarity:

    def test_ignores_case_and_punctuation(self):
        assert similarity("Hello, World!", "hello world") == 1.0

    def test_partial(self):
        assert similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_empty(self):
        assert similarity("", "") == 1.0
        assert similarity("text", "") == 0.0

    def test_normalize_text(self):
        assert normalize_text("  «Halo»,   DUNIA… ") == "halo dunia"


class TestSentenceLevel:

    def test_exact_match_uses_minimal_window(self, aligner):
        source = make_entries((0.0, 1.0), (1.0, 2.5), (3.0, 4.0),
                              texts=["Hello world.", "This is it.", "Something else entirely."])
        target = make_entries((0.0, 1.0), texts=["Hello world."])
        window = aligner.align(target, source)[0]

        assert window.score == 1.0
        assert window.method == "sentence"
        assert (window.source_start_index, window.source_end_index) == (0, 0)
        assert (window.start_time, window.end_time) == (0.0, 1.0)

    def test_target_spanning_several_source_entries(self, aligner):
        source = make_entries((0.0, 1.0), (1.0, 2.5), (3.0, 4.0),
                              texts=["Hello world.", "This is it.", "Something else entirely."])
        target = make_entries((0.0, 1.0), texts=["Hello world. This is it."])
        window = aligner.align(target, source)[0]

        assert window.score == 1.0
        assert window.source_end_index == 1
        assert window.end_time == 2.5

    def test_cursor_never_reuses_source(self, aligner):
        source = make_entries((0.0, 1.0), (2.0, 3.0), texts=["Repeat me.", "Repeat me."])
        target = make_entries((0.0, 1.0), (1.0, 2.0), texts=["Repeat me.", "Repeat me."])
        windows = aligner.align(target, source)

        assert windows[0].start_time == 0.0
        assert windows[1].start_time == 2.0

    def test_unaligned_is_none_not_zero_window(self, aligner):
        source = make_entries((0.0, 1.0), texts=["Completely different words here."])
        target = make_entries((0.0, 1.0), texts=["Zebra xylophone quartz."])
        assert aligner.align(target, source) == [None]

    def test_tolerates_small_differences(self, aligner):
        source = make_entries((5.0, 7.0), texts=["Ini adalah contoh kalimat."])
        target = make_entries((0.0, 1.0), texts=["ini adalah contoh kalimat"])
        assert aligner.align(target, source)[0].start_time == 5.0


class TestWordLevel:

    def test_word_fallback_finds_span_inside_entry(self):
        aligner = FuzzyAligner()
        source = make_entries((0.0, 10.0), texts=["alpha beta gamma delta epsilon zeta eta theta iota kappa"])
        target = make_entries((0.0, 1.0), texts=["gamma delta epsilon"])
        window = aligner.align(target, source)[0]

        assert window is not None
        assert window.method == "word"
        assert 0.0 < window.start_time < window.end_time < 10.0

    def test_word_midpoints_with_pad(self):
        aligner = FuzzyAligner(word_pad=0.2)
        # 11 chars over 11s: "aaaaa" mid 2.5, "bbbbb" mid 8.5
        source = make_entries((0.0, 11.0), texts=["aaaaa bbbbb"])
        window = aligner.match_words("aaaaa bbbbb", source, 0)

        assert window.start_time == pytest.approx(2.3)
        assert window.end_time == pytest.approx(8.7)

    def test_word_fallback_requires_order(self):
        aligner = FuzzyAligner()
        source = make_entries((0.0, 4.0), texts=["second first"])
        assert aligner.match_words("first nothing second", source, 0) is None
