"""Tests for synthetic word timing and segment grouping."""

from __future__ import annotations

import pytest

from utterlens.refine.alignment import (
    MAX_SEGMENT_WORDS,
    MIN_WORD_DURATION,
    WORD_GAP,
    approximate_words,
    group_words_into_segments,
)


class TestApproximateWords:
    def test_empty_text(self):
        assert approximate_words("") == []
        assert approximate_words("   \n ") == []

    def test_short_words_use_minimum_duration(self):
        words = approximate_words("hi there")
        assert words[0].start == 0.0
        assert words[0].end == pytest.approx(MIN_WORD_DURATION)
        assert words[1].start == pytest.approx(MIN_WORD_DURATION + WORD_GAP)

    def test_long_words_scale_with_length(self):
        words = approximate_words("everyone")
        assert words[0].end == pytest.approx(8 * 0.06)

    def test_timings_are_monotonic(self):
        words = approximate_words("the quick brown fox jumps over the extraordinarily lazy dog")
        assert len(words) == 10
        for w in words:
            assert w.end > w.start
        for prev, cur in zip(words, words[1:]):
            assert cur.start >= prev.end

    def test_tokens_preserved(self):
        text = "Hello,   world!  How\tare you?"
        assert [w.text for w in approximate_words(text)] == text.split()


class TestGroupWordsIntoSegments:
    def test_empty(self):
        assert group_words_into_segments([]) == []

    def test_splits_on_terminal_punctuation(self):
        segments = group_words_into_segments(approximate_words("Good morning. How are you? Fine"))
        assert [s.text for s in segments] == ["Good morning.", "How are you?", "Fine"]

    def test_opening_word_never_closes_a_segment(self):
        segments = group_words_into_segments(approximate_words("Hello. How are you? Fine."))
        assert [s.text for s in segments] == ["Hello. How are you?", "Fine."]

    def test_single_word(self):
        segments = group_words_into_segments(approximate_words("Yes."))
        assert [s.text for s in segments] == ["Yes."]

    def test_splits_at_max_words(self):
        text = " ".join(f"w{i}" for i in range(40))
        segments = group_words_into_segments(approximate_words(text))
        assert [len(s.words) for s in segments] == [MAX_SEGMENT_WORDS, MAX_SEGMENT_WORDS, 4]

    def test_segment_texts_rebuild_the_text(self):
        text = "I slept well. Then I walked to the park and met an old friend there! " * 3
        segments = group_words_into_segments(approximate_words(text))
        assert " ".join(s.text for s in segments) == " ".join(text.split())

    def test_segment_bounds_follow_words(self):
        segments = group_words_into_segments(approximate_words("one two three. four five"))
        for s in segments:
            assert s.start == s.words[0].start
            assert s.end == s.words[-1].end
