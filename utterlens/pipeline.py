"""End-to-end entry points for the app layer.

``analyze_recording`` turns an audio file into a transcript plus speech
metrics; ``summarize_conversation`` runs the local keyword and summary tasks
over a message list. Transcription and asset errors propagate; local
inference degrades to ``None`` fields.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from utterlens.analysis.speech_metrics import SpeechMetrics, calculate_speech_metrics
from utterlens.llm.engine import CompletionEngine
from utterlens.llm.keywords import extract_keywords
from utterlens.llm.messages import ChatMessage
from utterlens.llm.summary import summarize
from utterlens.transcription.base import DetailedTranscript, TranscriptionBackend
from utterlens.transcription.service import transcribe_audio_detailed
from utterlens.utils.config import AppConfig, get_config
from utterlens.utils.logging import info, set_job_id, success, warn


@dataclass
class RecordingAnalysis:
    transcript: DetailedTranscript
    metrics: SpeechMetrics

    @property
    def estimated_timing(self) -> bool:
        return self.transcript.estimated_timing

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.transcript.text,
            "provider": self.transcript.provider,
            "estimated_timing": self.estimated_timing,
            "metrics": self.metrics.to_dict(),
        }


@dataclass
class ConversationSummary:
    keywords: list[str] | None
    summary: str | None
    keyword_reason: str | None = None
    summary_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "keywords": self.keywords,
            "summary": self.summary,
            "keyword_reason": self.keyword_reason,
            "summary_reason": self.summary_reason,
        }


async def analyze_recording(audio_path: str | Path, language: str | None = None,
                            cfg: AppConfig | None = None,
                            backend: TranscriptionBackend | None = None) -> RecordingAnalysis:
    cfg = cfg or get_config()
    set_job_id(uuid.uuid4().hex[:12])
    transcript = await transcribe_audio_detailed(audio_path, language, cfg=cfg, backend=backend)
    metrics = calculate_speech_metrics(transcript)
    if transcript.estimated_timing:
        warn("Speech metrics are based on estimated word timing, not measured speech")
    success(f"Analyzed {Path(str(audio_path)).name}: {metrics.total_words} words, "
            f"{metrics.speech_rate_wpm} wpm, {metrics.pause_count} pauses")
    return RecordingAnalysis(transcript=transcript, metrics=metrics)


async def summarize_conversation(messages: list[ChatMessage],
                                 engine: CompletionEngine | None = None,
                                 cfg: AppConfig | None = None) -> ConversationSummary:
    """Keywords first, then a summary prompted with them."""
    cfg = cfg or get_config()
    keywords = await extract_keywords(messages, engine=engine, cfg=cfg)
    summary = await summarize(messages, keywords.value or [], engine=engine, cfg=cfg)
    if not keywords.ok or not summary.ok:
        info(f"Local inference incomplete (keywords: {keywords.reason or 'ok'}, "
             f"summary: {summary.reason or 'ok'}); caller should fall back")
    return ConversationSummary(
        keywords=keywords.value,
        summary=summary.value,
        keyword_reason=keywords.reason,
        summary_reason=summary.reason,
    )
