"""Provider selection and the public transcription entry points.

Exactly one provider serves each call. There is no fallback to the other
provider when the selected one fails; the error goes to the caller.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from utterlens.errors import RecordingNotFoundError
from utterlens.transcription.base import DetailedTranscript, TranscriptionBackend
from utterlens.utils import cache as cache_module
from utterlens.utils.config import AppConfig, get_config
from utterlens.utils.logging import debug, info


class Provider(str, Enum):
    openai = "openai"
    google = "google"


def resolve_provider(cfg: AppConfig, override: str | None = None) -> Provider:
    """Explicit choice wins, then a Google credential, then OpenAI."""
    explicit = (override or cfg.transcription.provider or "").strip().lower()
    if explicit in (Provider.openai.value, Provider.google.value):
        return Provider(explicit)
    if cfg.google.api_key:
        return Provider.google
    return Provider.openai


def get_backend(provider: Provider, cfg: AppConfig) -> TranscriptionBackend:
    if provider == Provider.google:
        from utterlens.transcription.google_speech import GoogleSpeechBackend
        return GoogleSpeechBackend(
            api_key=cfg.google.api_key,
            endpoint=cfg.google.endpoint,
            model=cfg.google.model,
            sample_rate_hz=cfg.google.sample_rate_hz,
            default_language=cfg.google.default_language,
        )
    from utterlens.transcription.openai_whisper import OpenAIWhisperBackend
    return OpenAIWhisperBackend(
        api_key=cfg.openai.api_key,
        model=cfg.openai.model,
        base_url=cfg.openai.base_url,
        default_language=cfg.openai.default_language,
    )


def ensure_recording_exists(file_uri: str | Path) -> Path:
    path = Path(str(file_uri).removeprefix("file://"))
    if not path.is_file():
        raise RecordingNotFoundError(str(file_uri))
    return path


async def transcribe_audio(file_uri: str | Path, language: str | None = None,
                           cfg: AppConfig | None = None,
                           backend: TranscriptionBackend | None = None) -> str:
    """Transcribe a recording and return only the text."""
    audio_path = ensure_recording_exists(file_uri)
    cfg = cfg or get_config()
    backend = backend or get_backend(resolve_provider(cfg), cfg)
    return await backend.transcribe_text(audio_path, language or cfg.transcription.language or None)


async def transcribe_audio_detailed(file_uri: str | Path, language: str | None = None,
                                    cfg: AppConfig | None = None,
                                    backend: TranscriptionBackend | None = None) -> DetailedTranscript:
    """Transcribe a recording into text with word and segment timing."""
    audio_path = ensure_recording_exists(file_uri)
    cfg = cfg or get_config()
    backend = backend or get_backend(resolve_provider(cfg), cfg)
    language = language or cfg.transcription.language or None

    stage = f"transcript_{backend.name}_{language or 'default'}"
    if cfg.cache.enabled:
        cached = cache_module.load_cached(audio_path, stage, cfg.cache.id_method)
        if cached:
            info(f"Using cached transcript for {audio_path.name}")
            return DetailedTranscript.from_dict(cached)

    transcript = await backend.transcribe_detailed(audio_path, language)
    debug(f"Transcript from {backend.name}: {len(transcript.words)} words, "
          f"estimated_timing={transcript.estimated_timing}")

    if cfg.cache.enabled:
        cache_module.save_cache(audio_path, stage, transcript.to_dict(), cfg.cache.id_method)
    return transcript
