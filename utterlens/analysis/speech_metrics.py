"""Speech and language indicators from a word-timed transcript.

Computes, from word timestamps alone:
- speech rate (tokens per minute of speaking time)
- pause structure (gaps >= PAUSE_THRESHOLD_SEC between adjacent words)
- utterance segmentation (gaps >= LONG_PAUSE_THRESHOLD_SEC start a new one)
- mean utterance length (MLU) and type-token ratio (TTR)

``calculate_speech_metrics`` is pure: it never raises and never mutates its
input. Transcripts without usable words yield ``SpeechMetrics.zero()``.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass

from utterlens.transcription.base import DetailedTranscript, Word

PAUSE_THRESHOLD_SEC = 0.5
LONG_PAUSE_THRESHOLD_SEC = 1.0
MIN_SPEAKING_DURATION_SEC = 1e-6

_PUNCT_RE = re.compile(r"[.,!?\"'()\[\]{}:;]")


@dataclass(frozen=True)
class SpeechMetrics:
    speech_rate_wpm: float = 0.0
    mean_pause_duration_sec: float = 0.0
    pauses_per_minute: float = 0.0
    mlu: float = 0.0
    ttr: float = 0.0
    total_words: int = 0
    speaking_duration_sec: float = 0.0
    utterance_count: int = 0
    pause_count: int = 0

    @classmethod
    def zero(cls) -> SpeechMetrics:
        return cls()

    def to_dict(self) -> dict[str, float | int]:
        """Wire form with camelCase keys."""
        return {
            "speechRateWpm": self.speech_rate_wpm,
            "meanPauseDurationSec": self.mean_pause_duration_sec,
            "pausesPerMinute": self.pauses_per_minute,
            "mlu": self.mlu,
            "ttr": self.ttr,
            "totalWords": self.total_words,
            "speakingDurationSec": self.speaking_duration_sec,
            "utteranceCount": self.utterance_count,
            "pauseCount": self.pause_count,
        }

    def as_snake_dict(self) -> dict[str, float | int]:
        return asdict(self)


def sanitize_token(text: str) -> str:
    return _PUNCT_RE.sub("", text.strip().lower())


def _round(value: float, digits: int = 2) -> float:
    # half-up, so 0.125 -> 0.13 regardless of float banker's rounding
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _timed_words(transcript: DetailedTranscript | None) -> list[Word]:
    if transcript is None:
        return []
    return [
        w for w in transcript.words or []
        if isinstance(w.start, (int, float)) and isinstance(w.end, (int, float))
        and not (math.isnan(w.start) or math.isnan(w.end))
    ]


def calculate_speech_metrics(transcript: DetailedTranscript | None) -> SpeechMetrics:
    words = sorted(_timed_words(transcript), key=lambda w: w.start)
    if not words:
        return SpeechMetrics.zero()

    tokens = [t for t in (sanitize_token(w.text) for w in words) if t]
    if not tokens:
        return SpeechMetrics.zero()

    speaking_duration_sec = max(words[-1].end - words[0].start, MIN_SPEAKING_DURATION_SEC)
    speaking_duration_min = speaking_duration_sec / 60

    pauses: list[float] = []
    utterance_count = 1
    for prev, cur in zip(words, words[1:]):
        gap = cur.start - prev.end
        if gap >= PAUSE_THRESHOLD_SEC:
            pauses.append(gap)
        if gap >= LONG_PAUSE_THRESHOLD_SEC:
            utterance_count += 1

    pause_count = len(pauses)
    mean_pause = sum(pauses) / pause_count if pause_count else 0.0

    return SpeechMetrics(
        speech_rate_wpm=_round(len(tokens) / speaking_duration_min),
        mean_pause_duration_sec=_round(mean_pause),
        pauses_per_minute=_round(pause_count / speaking_duration_min),
        mlu=_round(len(tokens) / utterance_count),
        ttr=_round(len(set(tokens)) / len(tokens), 3),
        total_words=len(tokens),
        speaking_duration_sec=_round(speaking_duration_sec),
        utterance_count=utterance_count,
        pause_count=pause_count,
    )
