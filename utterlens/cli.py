"""Main CLI application with typer subcommands."""

from __future__ import annotations

import asyncio
import json
from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.prompt import Confirm
from rich.table import Table

from utterlens.errors import UtterlensError
from utterlens.utils.config import DEFAULT_CONFIG_YAML, AppConfig, get_config, merge_cli_overrides
from utterlens.utils.deps_check import check_all, print_dep_status
from utterlens.utils.logging import Verbosity, console, error, info, setup_logging, success, warn

load_dotenv()

app = typer.Typer(
    name="utterlens",
    help="Speech metrics, transcripts and on-device summaries from recorded conversations.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)
model_app = typer.Typer(help="Manage on-device GGUF model files.", no_args_is_help=True)
app.add_typer(model_app, name="model")


# ── Enums ─────────────────────────────────────────────────────────────────────

class ProviderChoice(str, Enum):
    auto = "auto"
    openai = "openai"
    google = "google"


class ModelTask(str, Enum):
    keywords = "keywords"
    summary = "summary"
    all = "all"


# ── Helper functions ──────────────────────────────────────────────────────────

def _setup(silent: bool, verbose: bool, config: Optional[Path],
           overrides: dict | None = None) -> AppConfig:
    verbosity = Verbosity.SILENT if silent else (Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    setup_logging(verbosity)
    cfg = get_config(config)
    if overrides:
        cfg = merge_cli_overrides(cfg, overrides)
    return cfg


def _run(coro):
    try:
        return asyncio.run(coro)
    except UtterlensError as e:
        error(str(e))
        raise typer.Exit(1)


def _print_metrics_table(metrics_dict: dict, estimated: bool) -> None:
    table = Table(title="Speech metrics" + (" (estimated timing)" if estimated else ""))
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in metrics_dict.items():
        table.add_row(key, str(value))
    console.print(table)


def _load_messages(path: Path):
    from utterlens.llm.messages import load_messages
    if not path.is_file():
        error(f"Messages file not found: {path}")
        raise typer.Exit(1)
    return load_messages(path)


def _selected_tasks(task: ModelTask) -> list[str]:
    return ["keywords", "summary"] if task == ModelTask.all else [task.value]


def _profile_for(name: str, cfg: AppConfig):
    from utterlens.llm.keywords import keyword_profile
    from utterlens.llm.summary import summary_profile
    return keyword_profile(cfg) if name == "keywords" else summary_profile(cfg)


# ── TRANSCRIBE ────────────────────────────────────────────────────────────────

@app.command()
def transcribe(
    input: Annotated[Path, typer.Option("--input", "-i", help="Recorded audio file")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write transcript JSON here")] = None,
    language: Annotated[Optional[str], typer.Option(help="Language hint (e.g. ko, en, ko-KR)")] = None,
    provider: Annotated[ProviderChoice, typer.Option(help="Speech recognition provider")] = ProviderChoice.auto,
    detailed: Annotated[bool, typer.Option("--detailed/--plain", help="Word timing or text only")] = True,
    silent: Annotated[bool, typer.Option("--silent")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Transcribe a recording."""
    from utterlens.transcription.service import transcribe_audio, transcribe_audio_detailed

    overrides = {"transcription.provider": provider.value} if provider != ProviderChoice.auto else None
    cfg = _setup(silent, verbose, config, overrides)

    if not detailed:
        text = _run(transcribe_audio(input, language, cfg=cfg))
        console.print(text)
        return

    transcript = _run(transcribe_audio_detailed(input, language, cfg=cfg))
    console.print(transcript.text)
    info(f"{len(transcript.words)} words, {len(transcript.segments)} segments "
         f"via {transcript.provider}")
    if transcript.estimated_timing:
        warn("Word timings are estimated from text, not measured")
    if output:
        output.write_text(json.dumps(transcript.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        success(f"Transcript written to {output}")


# ── METRICS ───────────────────────────────────────────────────────────────────

@app.command()
def metrics(
    input: Annotated[Path, typer.Option("--input", "-i", help="Audio file or transcript JSON")],
    language: Annotated[Optional[str], typer.Option(help="Language hint for transcription")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print metrics as JSON")] = False,
    silent: Annotated[bool, typer.Option("--silent")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Compute speech rate, pauses, MLU and TTR for a recording or saved transcript."""
    from utterlens.analysis.speech_metrics import calculate_speech_metrics
    from utterlens.pipeline import analyze_recording
    from utterlens.transcription.base import DetailedTranscript

    cfg = _setup(silent or as_json, verbose, config)

    if input.suffix.lower() == ".json":
        if not input.is_file():
            error(f"Transcript not found: {input}")
            raise typer.Exit(1)
        transcript = DetailedTranscript.from_dict(json.loads(input.read_text(encoding="utf-8")))
        result = calculate_speech_metrics(transcript)
        estimated = transcript.estimated_timing
    else:
        analysis = _run(analyze_recording(input, language, cfg=cfg))
        result = analysis.metrics
        estimated = analysis.estimated_timing

    if as_json:
        typer.echo(json.dumps({"estimated_timing": estimated, **result.to_dict()}, ensure_ascii=False))
    else:
        _print_metrics_table(result.to_dict(), estimated)


# ── KEYWORDS / SUMMARY ────────────────────────────────────────────────────────

async def _keywords(messages, cfg: AppConfig):
    from utterlens.llm.engine import CompletionEngine
    from utterlens.llm.keywords import extract_keywords
    engine = CompletionEngine.from_config(cfg)
    try:
        return await extract_keywords(messages, engine=engine, cfg=cfg)
    finally:
        await engine.release_all()


async def _summary(messages, keywords: list[str], cfg: AppConfig):
    from utterlens.llm.engine import CompletionEngine
    from utterlens.llm.summary import summarize
    engine = CompletionEngine.from_config(cfg)
    try:
        return await summarize(messages, keywords, engine=engine, cfg=cfg)
    finally:
        await engine.release_all()


@app.command()
def keywords(
    input: Annotated[Path, typer.Option("--input", "-i", help="Messages JSON file")],
    silent: Annotated[bool, typer.Option("--silent")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Extract up to five keywords with the on-device model."""
    cfg = _setup(silent, verbose, config)
    result = _run(_keywords(_load_messages(input), cfg))
    if not result.ok:
        warn(f"No local keywords ({result.reason}); use the remote path instead")
        raise typer.Exit(2)
    console.print(", ".join(result.value))


@app.command()
def summary(
    input: Annotated[Path, typer.Option("--input", "-i", help="Messages JSON file")],
    keywords: Annotated[Optional[str], typer.Option(help="Comma-separated keywords")] = None,
    silent: Annotated[bool, typer.Option("--silent")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Summarize a conversation with the on-device model."""
    cfg = _setup(silent, verbose, config)
    keyword_list = [k.strip() for k in (keywords or "").split(",") if k.strip()]
    result = _run(_summary(_load_messages(input), keyword_list, cfg))
    if not result.ok:
        warn(f"No local summary ({result.reason}); use the remote path instead")
        raise typer.Exit(2)
    console.print(result.value)


# ── MODEL FILES ───────────────────────────────────────────────────────────────

@model_app.command("ensure")
def model_ensure(
    task: Annotated[ModelTask, typer.Option(help="Which task's model")] = ModelTask.all,
    force: Annotated[bool, typer.Option("--force", help="Copy again even if present")] = False,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Copy the model file(s) from the bundle into the models directory."""
    from utterlens.llm.model_assets import ModelAssetResolver

    cfg = _setup(False, False, config)
    resolver = ModelAssetResolver.from_config(cfg)
    for name in _selected_tasks(task):
        path = _run(resolver.ensure(_profile_for(name, cfg).asset, force_refresh=force))
        success(f"{name}: {path}")


@model_app.command("remove")
def model_remove(
    task: Annotated[ModelTask, typer.Option(help="Which task's model")] = ModelTask.all,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Delete the local model file(s), if present."""
    from utterlens.llm.model_assets import ModelAssetResolver

    cfg = _setup(False, False, config)
    resolver = ModelAssetResolver.from_config(cfg)
    for name in _selected_tasks(task):
        asset = _profile_for(name, cfg).asset
        resolver.remove(asset.id, asset.filename)


@model_app.command("path")
def model_path(
    task: Annotated[ModelTask, typer.Option(help="Which task's model")] = ModelTask.all,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Print where the model file(s) live, without touching the filesystem."""
    from utterlens.llm.model_assets import ModelAssetResolver

    cfg = _setup(True, False, config)
    resolver = ModelAssetResolver.from_config(cfg)
    for name in _selected_tasks(task):
        asset = _profile_for(name, cfg).asset
        typer.echo(f"{name}\t{resolver.model_path(asset.id, asset.filename)}")


# ── CHECK / INIT ──────────────────────────────────────────────────────────────

@app.command()
def check(
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Check credentials, the llama.cpp runtime and local model files."""
    cfg = _setup(False, False, config)
    if not print_dep_status(check_all(cfg), strict=True):
        raise typer.Exit(1)
    success("All dependencies available")


@app.command(name="init")
def init_config():
    """Generate a default utterlens.yaml in the current directory."""
    setup_logging(Verbosity.NORMAL)
    p = Path("utterlens.yaml")
    if p.exists():
        if not Confirm.ask("utterlens.yaml exists. Overwrite?", default=False):
            raise typer.Exit(0)
    p.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    success(f"Created {p}")


# ── ENTRY POINT ───────────────────────────────────────────────────────────────

def app_entry():
    app()


if __name__ == "__main__":
    app_entry()
