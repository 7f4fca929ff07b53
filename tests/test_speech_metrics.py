"""Tests for speech metrics computed from word timestamps."""

from __future__ import annotations

import math

import pytest

from utterlens.analysis.speech_metrics import (
    SpeechMetrics,
    _round,
    calculate_speech_metrics,
    sanitize_token,
)
from utterlens.transcription.base import DetailedTranscript, Word


def _transcript(*words: tuple[str, float, float]) -> DetailedTranscript:
    return DetailedTranscript(
        text=" ".join(w[0] for w in words),
        words=[Word(text=t, start=s, end=e) for t, s, e in words],
    )


class TestZeroRecord:
    def test_none_transcript(self):
        assert calculate_speech_metrics(None) == SpeechMetrics.zero()

    def test_no_words(self):
        assert calculate_speech_metrics(DetailedTranscript(text="hello")) == SpeechMetrics.zero()

    def test_punctuation_only_tokens(self):
        m = calculate_speech_metrics(_transcript(("...", 0.0, 0.3), ("?!", 0.4, 0.6)))
        assert m == SpeechMetrics.zero()

    def test_nan_timings_are_ignored(self):
        m = calculate_speech_metrics(_transcript(("hello", math.nan, 0.5)))
        assert m.total_words == 0

    def test_zero_values(self):
        z = SpeechMetrics.zero()
        assert z.speech_rate_wpm == 0
        assert z.utterance_count == 0
        assert z.pause_count == 0


class TestPausesAndUtterances:
    def test_short_gap_is_one_pause_one_utterance(self):
        m = calculate_speech_metrics(_transcript(("hello", 0.0, 0.5), ("world", 1.1, 1.6)))
        assert m.pause_count == 1
        assert m.mean_pause_duration_sec == 0.6
        assert m.utterance_count == 1
        assert m.total_words == 2
        assert m.mlu == 2.0
        assert m.speaking_duration_sec == 1.6
        assert m.speech_rate_wpm == 75.0
        assert m.pauses_per_minute == 37.5

    def test_long_gap_starts_new_utterance(self):
        m = calculate_speech_metrics(_transcript(("hello", 0.0, 0.5), ("world", 1.7, 2.2)))
        assert m.pause_count == 1
        assert m.mean_pause_duration_sec == 1.2
        assert m.utterance_count == 2
        assert m.mlu == 1.0

    @pytest.mark.parametrize("gap,utterances", [(0.6, 1), (1.2, 2)])
    def test_two_words_with_gap(self, gap, utterances):
        m = calculate_speech_metrics(_transcript(("a", 0.0, 1.0), ("b", 1.0 + gap, 1.4 + gap)))
        assert m.pause_count == 1
        assert m.mean_pause_duration_sec == gap
        assert m.utterance_count == utterances
        assert m.mlu == m.total_words / utterances

    def test_repeated_tokens_ttr(self):
        m = calculate_speech_metrics(_transcript(("go", 0.0, 0.2), ("Go!", 0.3, 0.5), ("stop", 0.6, 0.9)))
        assert m.ttr == 0.667

    def test_gap_below_threshold_is_not_a_pause(self):
        m = calculate_speech_metrics(_transcript(("a", 0.0, 0.5), ("b", 0.9, 1.2)))
        assert m.pause_count == 0
        assert m.mean_pause_duration_sec == 0.0
        assert m.utterance_count == 1

    def test_unsorted_words_are_ordered_by_start(self):
        m = calculate_speech_metrics(_transcript(("world", 1.1, 1.6), ("hello", 0.0, 0.5)))
        assert m.pause_count == 1
        assert m.speaking_duration_sec == 1.6

    def test_input_is_not_mutated(self):
        t = _transcript(("world", 1.1, 1.6), ("hello", 0.0, 0.5))
        calculate_speech_metrics(t)
        assert [w.text for w in t.words] == ["world", "hello"]


class TestLexicalMetrics:
    def test_type_token_ratio(self):
        m = calculate_speech_metrics(_transcript(("The", 0.0, 0.2), ("cat,", 0.3, 0.5), ("the.", 0.6, 0.8)))
        assert m.total_words == 3
        assert m.ttr == 0.667

    def test_sanitize_token(self):
        assert sanitize_token("  \"Hello!\" ") == "hello"
        assert sanitize_token("(world)") == "world"
        assert sanitize_token("...") == ""

    def test_round_half_up(self):
        assert _round(0.125) == 0.13
        assert _round(2 / 3, 3) == 0.667

    def test_single_word_has_tiny_floor_duration(self):
        m = calculate_speech_metrics(_transcript(("hi", 1.0, 1.0)))
        assert m.total_words == 1
        assert m.speech_rate_wpm > 0


class TestSerialization:
    def test_to_dict_uses_camel_case(self):
        d = calculate_speech_metrics(_transcript(("hello", 0.0, 0.5), ("world", 1.1, 1.6))).to_dict()
        assert set(d) == {
            "speechRateWpm", "meanPauseDurationSec", "pausesPerMinute", "mlu", "ttr",
            "totalWords", "speakingDurationSec", "utteranceCount", "pauseCount",
        }
        assert d["pauseCount"] == 1

    def test_snake_dict(self):
        d = SpeechMetrics.zero().as_snake_dict()
        assert d["speech_rate_wpm"] == 0.0
        assert "pause_count" in d

    @pytest.mark.parametrize("field", ["speech_rate_wpm", "ttr", "mlu"])
    def test_frozen(self, field):
        with pytest.raises(Exception):
            setattr(SpeechMetrics.zero(), field, 1.0)
