"""Transcript data model and the backend contract every provider implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class Word:
    text: str
    start: float
    end: float

    def to_dict(self) -> dict[str, Any]:
        return {"word": self.text, "start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Word:
        return cls(
            text=d.get("word", d.get("text", "")),
            start=float(d["start"]),
            end=float(d["end"]),
        )


@dataclass
class TranscriptSegment:
    text: str
    start: float | None = None
    end: float | None = None
    words: list[Word] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "words": [w.to_dict() for w in self.words],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TranscriptSegment:
        return cls(
            text=d.get("text", ""),
            start=d.get("start"),
            end=d.get("end"),
            words=[Word.from_dict(w) for w in d.get("words") or []],
        )


@dataclass
class DetailedTranscript:
    """Transcript text plus word and segment timing.

    ``estimated_timing`` is True when the provider returned plain text and the
    word timings were synthesized; metrics derived from such a transcript do
    not reflect measured speech timing.
    """
    text: str
    words: list[Word] = field(default_factory=list)
    segments: list[TranscriptSegment] = field(default_factory=list)
    estimated_timing: bool = False
    provider: str = "unknown"
    language: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "provider": self.provider,
            "language": self.language,
            "estimated_timing": self.estimated_timing,
            "words": [w.to_dict() for w in self.words],
            "segments": [s.to_dict() for s in self.segments],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DetailedTranscript:
        return cls(
            text=d.get("text", ""),
            words=[Word.from_dict(w) for w in d.get("words") or []],
            segments=[TranscriptSegment.from_dict(s) for s in d.get("segments") or []],
            estimated_timing=bool(d.get("estimated_timing", False)),
            provider=d.get("provider", "unknown"),
            language=d.get("language", ""),
        )


class TranscriptionBackend(ABC):
    name: str = "base"

    @abstractmethod
    async def transcribe_text(self, audio_path: Path, language: str | None = None) -> str:
        """Plain transcription. Raises TranscriptionRequestError on failure."""

    @abstractmethod
    async def transcribe_detailed(self, audio_path: Path,
                                  language: str | None = None) -> DetailedTranscript:
        """Word-timed transcription. Raises TranscriptionRequestError on failure."""

    def check_available(self) -> tuple[bool, str]:
        return True, "OK"
