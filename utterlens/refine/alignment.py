"""Word timing approximation for providers that return plain text only."""

from __future__ import annotations

import re

from utterlens.transcription.base import TranscriptSegment, Word

SECONDS_PER_CHAR = 0.06
MIN_WORD_DURATION = 0.42
WORD_GAP = 0.08
MAX_SEGMENT_WORDS = 18

_TERMINAL_RE = re.compile(r"[.!?]$")


def approximate_words(text: str) -> list[Word]:
    """Lay whitespace tokens end to end on a synthetic clock starting at 0.

    Each word lasts ``max(len * SECONDS_PER_CHAR, MIN_WORD_DURATION)`` and is
    followed by a fixed WORD_GAP, so the result is never a measurement.
    """
    words: list[Word] = []
    cursor = 0.0
    for token in text.split():
        start = cursor
        end = start + max(len(token) * SECONDS_PER_CHAR, MIN_WORD_DURATION)
        words.append(Word(text=token, start=start, end=end))
        cursor = end + WORD_GAP
    return words


def group_words_into_segments(words: list[Word],
                              max_words: int = MAX_SEGMENT_WORDS) -> list[TranscriptSegment]:
    """Close a segment after max_words words or on terminal punctuation.

    The word that opens a segment never closes it, so a one-word sentence
    such as "Hello." is joined with the words that follow.
    """
    segments: list[TranscriptSegment] = []
    current: TranscriptSegment | None = None

    for word in words:
        if current is None:
            current = TranscriptSegment(text=word.text, start=word.start, end=word.end, words=[word])
            continue

        current.text = f"{current.text} {word.text}".strip()
        current.end = word.end
        current.words.append(word)

        if len(current.words) >= max_words or _TERMINAL_RE.search(word.text):
            segments.append(current)
            current = None

    if current is not None:
        segments.append(current)

    return segments
