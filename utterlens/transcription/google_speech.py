"""Google Cloud Speech-to-Text backend (plain-text provider).

The recognize endpoint returns no word timing, so the detailed variant lays
synthetic timings over the recognized text (see ``refine.alignment``).
"""

from __future__ import annotations

import base64
import os
import time
from pathlib import Path
from typing import Any

import httpx

from utterlens.errors import TranscriptionRequestError
from utterlens.refine.alignment import approximate_words, group_words_into_segments
from utterlens.transcription.base import DetailedTranscript, TranscriptionBackend
from utterlens.utils.logging import debug, error, info, warn

DEFAULT_ENDPOINT = "https://speech.googleapis.com/v1p1beta1/speech:recognize"


def extract_transcript(data: Any) -> str | None:
    """Join the first alternative of every result with single spaces."""
    results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(results, list):
        return None
    phrases: list[str] = []
    for result in results:
        alternatives = result.get("alternatives") if isinstance(result, dict) else None
        if not alternatives:
            continue
        transcript = alternatives[0].get("transcript") if isinstance(alternatives[0], dict) else None
        if transcript:
            phrases.append(transcript)
    return " ".join(phrases).strip() or None


class GoogleSpeechBackend(TranscriptionBackend):
    name = "google"

    def __init__(self, api_key: str | None = None, endpoint: str = DEFAULT_ENDPOINT,
                 model: str = "", sample_rate_hz: int = 44100,
                 default_language: str = "ko-KR",
                 transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key or os.environ.get("GOOGLE_SPEECH_API_KEY", "")
        self.endpoint = endpoint or DEFAULT_ENDPOINT
        self.model = model
        self.sample_rate_hz = sample_rate_hz
        self.default_language = default_language
        self._transport = transport

    def check_available(self) -> tuple[bool, str]:
        if not self.api_key:
            return False, "GOOGLE_SPEECH_API_KEY not set"
        return True, "OK"

    def _build_body(self, audio_path: Path, language: str | None) -> dict[str, Any]:
        config: dict[str, Any] = {
            "encoding": "ENCODING_UNSPECIFIED",
            "sampleRateHertz": self.sample_rate_hz,
            "languageCode": language or self.default_language,
            "enableAutomaticPunctuation": True,
        }
        if self.model:
            config["model"] = self.model
        content = base64.b64encode(audio_path.read_bytes()).decode("ascii")
        return {"config": config, "audio": {"content": content}}

    async def transcribe_text(self, audio_path: Path, language: str | None = None) -> str:
        ok, msg = self.check_available()
        if not ok:
            raise TranscriptionRequestError(
                f"Google Speech API key is not configured ({msg})", provider=self.name,
            )

        info(f"Transcribing with Google Speech: {audio_path.name}")
        body = self._build_body(audio_path, language)
        start_time = time.time()
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                r = await client.post(self.endpoint, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            error(f"Google Speech request failed: {e}")
            raise TranscriptionRequestError(
                f"Google speech recognition request failed: {e}",
                provider=self.name, upstream_message=str(e),
            ) from e
        debug(f"Google Speech response in {time.time() - start_time:.1f}s")

        try:
            data = r.json()
        except ValueError:
            data = {}

        if r.is_error:
            upstream = None
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                upstream = data["error"].get("message")
            error(f"Google Speech returned HTTP {r.status_code}: {upstream}")
            raise TranscriptionRequestError(
                f"Google speech recognition request failed: {upstream or 'unknown error'}",
                provider=self.name, upstream_message=upstream, status_code=r.status_code,
            )

        transcript = extract_transcript(data)
        if not transcript:
            raise TranscriptionRequestError(
                "Google speech recognition returned an empty result",
                provider=self.name, status_code=r.status_code,
            )
        return transcript

    async def transcribe_detailed(self, audio_path: Path,
                                  language: str | None = None) -> DetailedTranscript:
        text = await self.transcribe_text(audio_path, language)
        words = approximate_words(text)
        segments = group_words_into_segments(words)
        warn(f"Google Speech returns no word timing; approximated {len(words)} word timestamps")
        return DetailedTranscript(
            text=text,
            words=words,
            segments=segments,
            estimated_timing=True,
            provider=self.name,
            language=language or self.default_language,
        )
