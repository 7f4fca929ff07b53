"""Shared test fixtures.

Provides:
- a dummy recording on disk
- an isolated AppConfig rooted in tmp_path (no env leakage)
- a bundled fake GGUF file
- a counting stub loader and a fake llama context for the completion engine
"""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from utterlens.utils.config import ENV_OVERRIDES, AppConfig


# ── Audio / transcript seed data ─────────────────────────────────────────────

@pytest.fixture
def audio_file(tmp_path: Path) -> Path:
    p = tmp_path / "recording.m4a"
    p.write_bytes(b"\x00\x01fake-audio\x02\x03")
    return p


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer credentials and overrides out of every test."""
    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(**{
        "storage": {
            "documents_dir": str(tmp_path / "documents"),
            "bundle_dir": str(tmp_path / "bundle"),
        },
    })


@pytest.fixture
def bundled_model(app_config: AppConfig) -> Path:
    """Place a fake GGUF where the default keyword/summary models expect it."""
    rel = app_config.keyword_model.resolved_bundle_path()
    p = Path(app_config.storage.bundle_dir) / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(b"GGUF" + b"\x00" * 64)
    return p


# ── Fake llama.cpp context ───────────────────────────────────────────────────

def stream_chunks(*fragments: str) -> list[dict]:
    return [{"choices": [{"delta": {"content": f}}]} for f in fragments]


class FakeLlama:
    """Stands in for llama_cpp.Llama.create_chat_completion.

    ``delay`` sleeps before each chunk; ``max_active`` records how many
    generations were ever running at once.
    """

    def __init__(self, fragments: list[str] | None = None, result: dict | None = None,
                 error: Exception | None = None, delay: float = 0.0):
        self.fragments = fragments or []
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []
        self.closed = False
        self.iterator_closed = False
        self.active = 0
        self.max_active = 0

    def create_chat_completion(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return self._generate()

    def _generate(self):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            for chunk in stream_chunks(*self.fragments):
                if self.delay:
                    time.sleep(self.delay)
                yield chunk
        finally:
            self.active -= 1
            self.iterator_closed = True

    def close(self):
        self.closed = True


class CountingLoader:
    """Context loader that records calls and hands out FakeLlama instances."""

    def __init__(self, context: FakeLlama | None = None, delay: float = 0.0,
                 fail_times: int = 0):
        self.context = context or FakeLlama(fragments=["ok"])
        self.delay = delay
        self.fail_times = fail_times
        self.calls: list[tuple[Path, str]] = []

    def __call__(self, model_path: Path, profile):
        # runs in a worker thread via asyncio.to_thread
        self.calls.append((model_path, profile.name))
        if self.delay:
            time.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("failed to load model")
        return self.context


@pytest.fixture
def fake_llama() -> FakeLlama:
    return FakeLlama(fragments=["health, ", "sleep, ", "walk"])


@pytest.fixture
def counting_loader(fake_llama: FakeLlama) -> CountingLoader:
    return CountingLoader(fake_llama)


@pytest.fixture
def engine(app_config: AppConfig, bundled_model: Path, counting_loader: CountingLoader):
    from utterlens.llm.engine import CompletionEngine
    eng = CompletionEngine.from_config(app_config, loader=counting_loader)
    return eng
