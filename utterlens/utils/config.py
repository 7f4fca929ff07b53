"""Configuration management with YAML support and pydantic models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

DEFAULT_LOCAL_MODEL_ID = "gemma-3-270m-it-Q4_K_S"


class TranscriptionConfig(BaseModel):
    provider: str = ""          # openai | google | "" = pick by credentials
    language: str = ""          # "" = provider default


class OpenAIConfig(BaseModel):
    api_key: str = ""
    base_url: str = ""          # "" = SDK default
    model: str = "whisper-1"
    default_language: str = "ko"


class GoogleSpeechConfig(BaseModel):
    api_key: str = ""
    endpoint: str = "https://speech.googleapis.com/v1p1beta1/speech:recognize"
    model: str = ""
    sample_rate_hz: int = Field(default=44100, gt=0)
    default_language: str = "ko-KR"


class StorageConfig(BaseModel):
    documents_dir: str = "data"
    bundle_dir: str = "bundle"


class LocalModelConfig(BaseModel):
    model_id: str = DEFAULT_LOCAL_MODEL_ID
    bundle_path: str = ""       # "" = models/<model_id>.gguf
    filename: str = ""          # "" = <model_id>.gguf
    temperature: float = Field(default=0.2, ge=0.0)
    max_tokens: int = Field(default=120, gt=0)
    n_ctx: int = Field(default=2048, gt=0)
    n_threads: int = Field(default=4, gt=0)

    def resolved_bundle_path(self) -> str:
        return self.bundle_path or f"models/{self.model_id}.gguf"


class RuntimeConfig(BaseModel):
    platform: str = "desktop"   # android | ios | web | desktop


class CacheConfig(BaseModel):
    enabled: bool = False
    id_method: str = "hash"


class AppConfig(BaseModel):
    transcription: TranscriptionConfig = TranscriptionConfig()
    openai: OpenAIConfig = OpenAIConfig()
    google: GoogleSpeechConfig = GoogleSpeechConfig()
    storage: StorageConfig = StorageConfig()
    keyword_model: LocalModelConfig = LocalModelConfig()
    summary_model: LocalModelConfig = LocalModelConfig(temperature=0.3, max_tokens=220)
    runtime: RuntimeConfig = RuntimeConfig()
    cache: CacheConfig = CacheConfig()


# env var -> (dotted config key, type)
ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "STT_PROVIDER": ("transcription.provider", str),
    "OPENAI_API_KEY": ("openai.api_key", str),
    "TRANSCRIBE_ENDPOINT": ("openai.base_url", str),
    "TRANSCRIBE_MODEL": ("openai.model", str),
    "GOOGLE_SPEECH_API_KEY": ("google.api_key", str),
    "GOOGLE_SPEECH_ENDPOINT": ("google.endpoint", str),
    "GOOGLE_SPEECH_MODEL": ("google.model", str),
    "GOOGLE_SPEECH_SAMPLE_RATE": ("google.sample_rate_hz", int),
    "LOCAL_KEYWORD_MODEL_ID": ("keyword_model.model_id", str),
    "LOCAL_KEYWORD_MODEL_PATH": ("keyword_model.bundle_path", str),
    "LOCAL_KEYWORD_MODEL_FILENAME": ("keyword_model.filename", str),
    "LOCAL_KEYWORD_TEMPERATURE": ("keyword_model.temperature", float),
    "LOCAL_KEYWORD_MAX_TOKENS": ("keyword_model.max_tokens", int),
    "LOCAL_KEYWORD_CTX": ("keyword_model.n_ctx", int),
    "LOCAL_KEYWORD_THREADS": ("keyword_model.n_threads", int),
    "LOCAL_SUMMARY_MODEL_ID": ("summary_model.model_id", str),
    "LOCAL_SUMMARY_MODEL_PATH": ("summary_model.bundle_path", str),
    "LOCAL_SUMMARY_MODEL_FILENAME": ("summary_model.filename", str),
    "LOCAL_SUMMARY_TEMPERATURE": ("summary_model.temperature", float),
    "LOCAL_SUMMARY_MAX_TOKENS": ("summary_model.max_tokens", int),
    "LOCAL_SUMMARY_CTX": ("summary_model.n_ctx", int),
    "LOCAL_SUMMARY_THREADS": ("summary_model.n_threads", int),
    "UTTERLENS_PLATFORM": ("runtime.platform", str),
    "UTTERLENS_DOCUMENTS_DIR": ("storage.documents_dir", str),
    "UTTERLENS_BUNDLE_DIR": ("storage.bundle_dir", str),
}


def load_config(path: str | Path | None = None) -> AppConfig:
    if path is None:
        candidates = [Path("utterlens.yaml"), Path("utterlens.yml"), Path("config.yaml")]
        for c in candidates:
            if c.exists():
                path = c
                break
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return AppConfig(**data)
    return AppConfig()


def merge_cli_overrides(cfg: AppConfig, overrides: dict[str, Any]) -> AppConfig:
    data = cfg.model_dump()
    for key, val in overrides.items():
        if val is None:
            continue
        parts = key.split(".")
        d = data
        for p in parts[:-1]:
            d = d.setdefault(p, {})
        d[parts[-1]] = val
    return AppConfig(**data)


def apply_env_overrides(cfg: AppConfig, environ: dict[str, str] | None = None) -> AppConfig:
    """Overlay non-empty environment variables from ENV_OVERRIDES onto cfg."""
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for var, (key, cast) in ENV_OVERRIDES.items():
        raw = env.get(var, "")
        if raw == "":
            continue
        try:
            overrides[key] = cast(raw)
        except ValueError:
            continue
    return merge_cli_overrides(cfg, overrides)


def get_config(path: str | Path | None = None) -> AppConfig:
    """Config file merged with environment overrides."""
    return apply_env_overrides(load_config(path))


DEFAULT_CONFIG_YAML = """\
# utterlens configuration

transcription:
  provider: ""               # openai | google | "" = google if GOOGLE_SPEECH_API_KEY is set
  language: ""               # "" = provider default (openai: ko, google: ko-KR)

openai:
  api_key: ""                # or OPENAI_API_KEY
  base_url: ""
  model: whisper-1
  default_language: ko

google:
  api_key: ""                # or GOOGLE_SPEECH_API_KEY
  endpoint: "https://speech.googleapis.com/v1p1beta1/speech:recognize"
  model: ""
  sample_rate_hz: 44100
  default_language: ko-KR

storage:
  documents_dir: data        # models live in <documents_dir>/models
  bundle_dir: bundle

keyword_model:
  model_id: gemma-3-270m-it-Q4_K_S
  bundle_path: ""            # "" = models/<model_id>.gguf
  filename: ""
  temperature: 0.2
  max_tokens: 120
  n_ctx: 2048
  n_threads: 4

summary_model:
  model_id: gemma-3-270m-it-Q4_K_S
  bundle_path: ""
  filename: ""
  temperature: 0.3
  max_tokens: 220
  n_ctx: 2048
  n_threads: 4

runtime:
  platform: desktop          # android | ios | web | desktop

cache:
  enabled: false             # cache detailed transcripts next to the audio file
  id_method: hash            # hash | mtime
"""
