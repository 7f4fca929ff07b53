"""On-device completion engine backed by llama.cpp.

An engine owns at most one loaded model context per task. Callers that ask
for a context while it is still loading await the same in-flight load; a
failed load is forgotten so the next call can retry. Contexts are leased:
``release_all()`` frees idle contexts immediately and busy ones as soon as
their last lease ends. Generations on one context run one at a time.

Local inference is best effort. ``infer()`` never raises; it returns an
``InferenceResult`` whose ``reason`` tells the caller why there is no value,
so an empty answer cannot be mistaken for "no local answer".
"""

from __future__ import annotations

import asyncio
import importlib.util
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

from utterlens.errors import AssetResolutionError
from utterlens.llm.model_assets import ModelAssetConfig, ModelAssetResolver
from utterlens.utils.config import AppConfig, LocalModelConfig
from utterlens.utils.logging import debug, error, info

T = TypeVar("T")

UNSUPPORTED_RUNTIME = "unsupported_runtime"
EMPTY_INPUT = "empty_input"
EMPTY_OUTPUT = "empty_output"
MODEL_UNAVAILABLE = "model_unavailable"
INFERENCE_FAILED = "inference_failed"


@dataclass(frozen=True, eq=False)
class TaskProfile:
    """Model asset plus fixed sampling parameters for one completion task."""
    name: str
    asset: ModelAssetConfig
    temperature: float
    max_tokens: int
    n_ctx: int = 2048
    n_threads: int = 4
    stop: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, name: str, model: LocalModelConfig,
                    stop: tuple[str, ...] = ()) -> TaskProfile:
        return cls(
            name=name,
            asset=ModelAssetConfig(
                id=model.model_id,
                bundle_relative_path=model.resolved_bundle_path(),
                filename=model.filename or None,
            ),
            temperature=model.temperature,
            max_tokens=model.max_tokens,
            n_ctx=model.n_ctx,
            n_threads=model.n_threads,
            stop=stop,
        )


@dataclass
class InferenceResult(Generic[T]):
    value: T | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None

    @classmethod
    def unavailable(cls, reason: str) -> InferenceResult[T]:
        return cls(value=None, reason=reason)


ContextLoader = Callable[[Path, TaskProfile], Any]


def load_llama_context(model_path: Path, profile: TaskProfile) -> Any:
    from llama_cpp import Llama
    return Llama(
        model_path=str(model_path),
        n_ctx=profile.n_ctx,
        n_threads=profile.n_threads,
        verbose=False,
    )


def _first_choice(chunk: Any) -> dict:
    if not isinstance(chunk, dict):
        return {}
    choices = chunk.get("choices") or []
    return choices[0] if choices and isinstance(choices[0], dict) else {}


def _chunk_fragment(chunk: Any) -> str:
    choice = _first_choice(chunk)
    delta = choice.get("delta") or {}
    return delta.get("content") or choice.get("text") or ""


def _result_text(result: Any) -> str:
    choice = _first_choice(result)
    message = choice.get("message") or {}
    return message.get("content") or choice.get("text") or ""


_DONE = object()


class CompletionStream:
    """Text fragments of one completion, in generation order.

    Iterate with ``async for`` inside ``async with``; ``stop()`` ends the
    generation after the fragment in flight. The model lease is returned on
    every exit path, after the underlying generator has been closed. A
    cancelled consumer first waits for the worker thread that is still
    producing a fragment.
    """

    def __init__(self, engine: CompletionEngine, profile: TaskProfile,
                 messages: list[dict[str, str]]):
        self._engine = engine
        self._profile = profile
        self._messages = messages
        self._stop_requested = False
        self._agen: Any = None
        self._pending: asyncio.Future | None = None
        self.fragments: list[str] = []
        self.fallback_text = ""
        self.cancelled = False

    def stop(self) -> None:
        self._stop_requested = True

    @property
    def text(self) -> str:
        return "".join(self.fragments) or self.fallback_text

    def __aiter__(self):
        if self._agen is None:
            self._agen = self._run()
        return self._agen

    async def __aenter__(self) -> CompletionStream:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._agen is not None:
            await self._agen.aclose()

    async def _in_worker(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        # the thread outlives a cancel; _settle_worker waits for it
        self._pending = asyncio.ensure_future(asyncio.to_thread(fn, *args, **kwargs))
        result = await asyncio.shield(self._pending)
        self._pending = None
        return result

    async def _settle_worker(self) -> Any:
        """Wait for a worker call abandoned by cancellation; return its result, if any."""
        pending, self._pending = self._pending, None
        if pending is None:
            return None
        await asyncio.wait({pending})
        if pending.cancelled() or pending.exception() is not None:
            return None
        return pending.result()

    async def _run(self):
        context = await self._engine.acquire(self._profile)
        try:
            async with self._engine.generation_lock(self._profile.name):
                iterator = None
                try:
                    result = await self._in_worker(
                        context.create_chat_completion,
                        messages=self._messages,
                        stream=True,
                        temperature=self._profile.temperature,
                        max_tokens=self._profile.max_tokens,
                        stop=list(self._profile.stop) or None,
                    )
                    if isinstance(result, dict):
                        # runtime ignored stream=True and returned the whole answer
                        self.fallback_text = _result_text(result)
                        return
                    iterator = iter(result)
                    while True:
                        if self._stop_requested:
                            self.cancelled = True
                            break
                        chunk = await self._in_worker(next, iterator, _DONE)
                        if chunk is _DONE:
                            break
                        fragment = _chunk_fragment(chunk)
                        if fragment:
                            self.fragments.append(fragment)
                            yield fragment
                        elif not self.fallback_text:
                            self.fallback_text = _result_text(chunk)
                finally:
                    late = await self._settle_worker()
                    if iterator is None and late is not None and not isinstance(late, dict):
                        iterator = late
                    close = getattr(iterator, "close", None)
                    if close is not None:
                        close()
        finally:
            await self._engine.release(self._profile.name)

    async def collect(self) -> str:
        async with self:
            async for _ in self:
                pass
        return self.text


@dataclass
class _Slot:
    context: Any = None
    loading: asyncio.Task | None = None
    leases: int = 0
    close_requested: bool = False
    generation: asyncio.Lock = field(default_factory=asyncio.Lock)


class CompletionEngine:
    def __init__(self, resolver: ModelAssetResolver | None = None,
                 loader: ContextLoader = load_llama_context,
                 platform: str = "desktop"):
        self.resolver = resolver or ModelAssetResolver()
        self.platform = platform
        self._loader = loader
        self._slots: dict[str, _Slot] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, cfg: AppConfig, loader: ContextLoader = load_llama_context) -> CompletionEngine:
        return cls(
            resolver=ModelAssetResolver.from_config(cfg),
            loader=loader,
            platform=cfg.runtime.platform,
        )

    def is_supported(self) -> bool:
        if self.platform == "web":
            return False
        if self._loader is load_llama_context:
            return importlib.util.find_spec("llama_cpp") is not None
        return True

    def is_loaded(self, name: str) -> bool:
        slot = self._slots.get(name)
        return slot is not None and slot.context is not None

    def lease_count(self, name: str) -> int:
        slot = self._slots.get(name)
        return slot.leases if slot else 0

    def generation_lock(self, name: str) -> asyncio.Lock:
        """Held by a stream for the whole of its generation on the named context."""
        return self._slots.setdefault(name, _Slot()).generation

    async def _load(self, profile: TaskProfile) -> Any:
        info(f"Loading local model '{profile.asset.id}' for {profile.name}")
        model_path = await self.resolver.ensure(profile.asset)
        context = await asyncio.to_thread(self._loader, model_path, profile)
        debug(f"Local model for {profile.name} loaded from {model_path}")
        return context

    async def acquire(self, profile: TaskProfile) -> Any:
        """Lease the context for profile.name, loading it on first use."""
        async with self._lock:
            slot = self._slots.setdefault(profile.name, _Slot())
            if slot.context is not None:
                slot.leases += 1
                return slot.context
            if slot.loading is None:
                slot.loading = asyncio.ensure_future(self._load(profile))
            task = slot.loading

        try:
            context = await asyncio.shield(task)
        except Exception:
            async with self._lock:
                if slot.loading is task:
                    slot.loading = None
            raise

        async with self._lock:
            if slot.loading is task:
                slot.loading = None
                slot.context = context
            slot.leases += 1
        return context

    async def release(self, name: str) -> None:
        async with self._lock:
            slot = self._slots.get(name)
            if slot is None or slot.leases == 0:
                return
            slot.leases -= 1
            if slot.leases == 0 and slot.close_requested:
                self._close_slot(name, slot)

    async def release_all(self) -> None:
        pending = [s.loading for s in self._slots.values() if s.loading is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        async with self._lock:
            for name, slot in self._slots.items():
                if slot.leases == 0:
                    self._close_slot(name, slot)
                else:
                    slot.close_requested = True

    aclose = release_all

    def _close_slot(self, name: str, slot: _Slot) -> None:
        context, slot.context = slot.context, None
        slot.close_requested = False
        if context is None:
            return
        close = getattr(context, "close", None)
        if close is not None:
            close()
        info(f"Released local model context for {name}")

    def stream(self, profile: TaskProfile, messages: list[dict[str, str]]) -> CompletionStream:
        return CompletionStream(self, profile, messages)

    async def run_completion(self, profile: TaskProfile, messages: list[dict[str, str]]) -> str:
        return await self.stream(profile, messages).collect()

    async def infer(self, profile: TaskProfile, messages: list[dict[str, str]],
                    parse: Callable[[str], T | None]) -> InferenceResult[T]:
        if not self.is_supported():
            return InferenceResult.unavailable(UNSUPPORTED_RUNTIME)
        try:
            output = (await self.run_completion(profile, messages)).strip()
            value = parse(output) if output else None
        except AssetResolutionError as e:
            error(f"Local {profile.name} model unavailable: {e}")
            return InferenceResult.unavailable(MODEL_UNAVAILABLE)
        except Exception as e:
            error(f"Local {profile.name} inference failed: {e}")
            return InferenceResult.unavailable(INFERENCE_FAILED)
        if not value:
            return InferenceResult.unavailable(EMPTY_OUTPUT)
        return InferenceResult(value=value)


# ── Process-wide default engine ──────────────────────────────────────────────

_default_engine: CompletionEngine | None = None


def get_default_engine(cfg: AppConfig | None = None) -> CompletionEngine:
    global _default_engine
    if _default_engine is None:
        _default_engine = CompletionEngine.from_config(cfg or AppConfig())
    return _default_engine


def set_default_engine(engine: CompletionEngine | None) -> None:
    global _default_engine
    _default_engine = engine


async def shutdown_default_engine() -> None:
    global _default_engine
    if _default_engine is not None:
        await _default_engine.release_all()
        _default_engine = None
