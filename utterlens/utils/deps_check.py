"""Dependency self-check with helpful installation hints.

Never import llama_cpp at check time; importlib.util.find_spec() is enough
and does not load the native library.
"""

from __future__ import annotations

import importlib.util
from dataclasses import dataclass
from pathlib import Path

from utterlens.utils.config import AppConfig
from utterlens.utils.logging import error, info, warn


@dataclass
class DepStatus:
    name: str
    available: bool
    version: str = ""
    hint: str = ""


def check_openai_key(cfg: AppConfig) -> DepStatus:
    key = cfg.openai.api_key
    if key:
        return DepStatus("OPENAI_API_KEY", True, version=f"...{key[-4:]}")
    return DepStatus(
        "OPENAI_API_KEY", False,
        hint="Set via: export OPENAI_API_KEY=sk-... or in .env file"
    )


def check_google_key(cfg: AppConfig) -> DepStatus:
    key = cfg.google.api_key
    if key:
        return DepStatus("GOOGLE_SPEECH_API_KEY", True, version=f"...{key[-4:]}")
    return DepStatus(
        "GOOGLE_SPEECH_API_KEY", False,
        hint="Set via: export GOOGLE_SPEECH_API_KEY=... or in .env file"
    )


def check_llama_cpp() -> DepStatus:
    if importlib.util.find_spec("llama_cpp") is not None:
        return DepStatus("llama-cpp-python", True)
    return DepStatus(
        "llama-cpp-python", False,
        hint="Install: pip install llama-cpp-python  (local keywords/summary)"
    )


def check_model_file(label: str, path: Path) -> DepStatus:
    if path.is_file():
        size_mb = path.stat().st_size / (1024 * 1024)
        return DepStatus(label, True, version=f"{path} ({size_mb:.0f} MB)")
    return DepStatus(label, False, hint=f"Run: utterlens model ensure  (expected at {path})")


def check_all(cfg: AppConfig) -> list[DepStatus]:
    from utterlens.llm.model_assets import get_model_path
    from utterlens.transcription.service import Provider, resolve_provider

    provider = resolve_provider(cfg)
    results = [check_google_key(cfg) if provider == Provider.google else check_openai_key(cfg)]
    results.append(check_llama_cpp())
    for label, model in (("keyword model", cfg.keyword_model), ("summary model", cfg.summary_model)):
        results.append(check_model_file(label, get_model_path(model.model_id, model.filename or None, cfg=cfg)))
    return results


def print_dep_status(deps: list[DepStatus], strict: bool = False) -> bool:
    all_ok = True
    for d in deps:
        if d.available:
            info(f"[green]✓[/green] {d.name}: {d.version or 'OK'}")
        else:
            if strict:
                error(f"{d.name}: NOT FOUND ({d.hint})")
                all_ok = False
            else:
                warn(f"{d.name}: not found ({d.hint})")
    return all_ok
