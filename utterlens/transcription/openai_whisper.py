"""OpenAI Whisper API transcription backend (word-timestamped provider)."""

from __future__ import annotations

import math
import os
import time
from pathlib import Path
from typing import Any

from utterlens.errors import TranscriptionRequestError
from utterlens.transcription.base import (
    DetailedTranscript,
    TranscriptionBackend,
    TranscriptSegment,
    Word,
)
from utterlens.utils.logging import debug, error, info

QUOTA_MESSAGE = (
    "OpenAI speech recognition quota exceeded. "
    "Check the billing and usage limits of the API account."
)


def _safe_get(obj: Any, key: str, default: Any = None) -> Any:
    """Safely get attribute from dict or object (SDK may return either)."""
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _normalize_word(raw: Any) -> Word | None:
    text = _safe_get(raw, "word")
    if not isinstance(text, str) or not text:
        return None
    start = _as_float(_safe_get(raw, "start"))
    end = _as_float(_safe_get(raw, "end"))
    if start is None or end is None:
        return None
    return Word(text=text, start=start, end=end)


def normalize_words(payload: dict[str, Any]) -> list[Word]:
    """Top-level ``words`` if present, otherwise the flattened segment words."""
    words = [w for w in map(_normalize_word, payload.get("words") or []) if w]
    if not words:
        for seg in payload.get("segments") or []:
            words.extend(w for w in map(_normalize_word, _safe_get(seg, "words") or []) if w)
    return sorted(words, key=lambda w: w.start)


def normalize_segments(payload: dict[str, Any]) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for seg in payload.get("segments") or []:
        text = _safe_get(seg, "text")
        if not isinstance(text, str) or not text:
            continue
        start = _safe_get(seg, "start")
        end = _safe_get(seg, "end")
        segments.append(TranscriptSegment(
            text=text,
            start=float(start) if isinstance(start, (int, float)) else None,
            end=float(end) if isinstance(end, (int, float)) else None,
            words=[w for w in map(_normalize_word, _safe_get(seg, "words") or []) if w],
        ))
    return segments


class OpenAIWhisperBackend(TranscriptionBackend):
    name = "openai"

    def __init__(self, api_key: str | None = None, model: str = "whisper-1",
                 base_url: str = "", default_language: str = "ko", client: Any = None):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self.model = model
        self.base_url = base_url
        self.default_language = default_language
        self._client = client

    def check_available(self) -> tuple[bool, str]:
        if not self.api_key and self._client is None:
            return False, "OPENAI_API_KEY not set"
        return True, "OK"

    def _get_client(self) -> Any:
        if self._client is None:
            ok, msg = self.check_available()
            if not ok:
                raise TranscriptionRequestError(
                    f"OpenAI API key is not configured ({msg})", provider=self.name,
                )
            from openai import AsyncOpenAI
            kwargs: dict[str, Any] = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def _request(self, audio_path: Path, language: str | None,
                       detailed: bool) -> dict[str, Any]:
        client = self._get_client()
        params: dict[str, Any] = {
            "model": self.model,
            "language": language or self.default_language,
            "temperature": 0,
        }
        if detailed:
            params["response_format"] = "verbose_json"
            params["timestamp_granularities"] = ["word"]
        else:
            params["response_format"] = "json"

        info(f"Transcribing with OpenAI Whisper: {audio_path.name}")
        start_time = time.time()
        try:
            with open(audio_path, "rb") as f:
                response = await client.audio.transcriptions.create(file=f, **params)
        except Exception as e:
            raise self._translate_error(e) from e

        debug(f"OpenAI Whisper response in {time.time() - start_time:.1f}s")
        if hasattr(response, "model_dump"):
            return response.model_dump()
        if isinstance(response, dict):
            return response
        return {"text": _safe_get(response, "text")}

    def _translate_error(self, exc: Exception) -> TranscriptionRequestError:
        upstream = _safe_get(exc, "message") or str(exc)
        code = _safe_get(exc, "code")
        status = _safe_get(exc, "status_code")
        if code == "insufficient_quota" or "insufficient_quota" in str(upstream):
            error(f"OpenAI quota exceeded: {upstream}")
            return TranscriptionRequestError(
                QUOTA_MESSAGE, provider=self.name, upstream_message=upstream,
                status_code=status, quota_exceeded=True,
            )
        error(f"OpenAI transcription failed: {upstream}")
        return TranscriptionRequestError(
            f"Speech recognition request failed: {upstream}",
            provider=self.name, upstream_message=upstream, status_code=status,
        )

    def _require_text(self, data: dict[str, Any]) -> str:
        text = data.get("text")
        if not isinstance(text, str) or not text.strip():
            raise TranscriptionRequestError(
                "Speech recognition returned an empty result", provider=self.name,
            )
        return text.strip()

    async def transcribe_text(self, audio_path: Path, language: str | None = None) -> str:
        data = await self._request(audio_path, language, detailed=False)
        return self._require_text(data)

    async def transcribe_detailed(self, audio_path: Path,
                                  language: str | None = None) -> DetailedTranscript:
        data = await self._request(audio_path, language, detailed=True)
        text = self._require_text(data)
        words = normalize_words(data)
        segments = normalize_segments(data)
        debug(f"OpenAI Whisper: {len(words)} words, {len(segments)} segments")
        return DetailedTranscript(
            text=text,
            words=words,
            segments=segments,
            provider=self.name,
            language=data.get("language") or language or self.default_language,
        )
