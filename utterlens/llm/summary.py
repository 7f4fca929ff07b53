"""Local conversation summary, guided by previously extracted keywords."""

from __future__ import annotations

import re

from utterlens.llm.engine import (
    EMPTY_INPUT,
    CompletionEngine,
    InferenceResult,
    TaskProfile,
    get_default_engine,
)
from utterlens.llm.messages import ChatMessage, build_transcript, recent_window
from utterlens.utils.config import AppConfig, get_config

TASK_NAME = "summary"
MAX_PROMPT_KEYWORDS = 5

STOP_SEQUENCES = (
    "</s>",
    "<|end|>",
    "<|eot_id|>",
    "<|end_of_text|>",
    "<|im_end|>",
    "<|EOT|>",
    "<|END_OF_TURN_TOKEN|>",
    "<|end_of_turn|>",
    "<|endoftext|>",
)

SYSTEM_PROMPT = (
    "You help write care records for older adults with early dementia or mild "
    "cognitive impairment. Use a kind, warm tone, and never leave out concrete "
    "follow-up actions or warning signs."
)

_EDGE_QUOTE_RE = re.compile(r"^[\"']|[\"']$")


def summary_profile(cfg: AppConfig) -> TaskProfile:
    return TaskProfile.from_config(TASK_NAME, cfg.summary_model, stop=STOP_SEQUENCES)


def build_summary_prompt(messages: list[ChatMessage], keywords: list[str]) -> str:
    if keywords:
        keyword_line = f"Key keywords: {', '.join(keywords[:MAX_PROMPT_KEYWORDS])}"
    else:
        keyword_line = "No key keywords"
    return (
        "Below is a conversation between the care companion and the user.\n"
        "Summarize it in 2 to 3 sentences with a concise, warm tone.\n"
        "- Always include warning signs or follow-up actions if there are any.\n"
        "- Do not use meta information or numbering.\n"
        "\n"
        f"{keyword_line}\n"
        "\n"
        "Conversation:\n"
        f"{build_transcript(messages)}\n"
        "\n"
        "Summary:"
    )


def clean_summary(raw: str) -> str | None:
    cleaned = raw.strip()
    if not cleaned:
        return None
    return _EDGE_QUOTE_RE.sub("", cleaned) or None


async def summarize(messages: list[ChatMessage], keywords: list[str] | None = None,
                    engine: CompletionEngine | None = None,
                    cfg: AppConfig | None = None) -> InferenceResult[str]:
    cfg = cfg or get_config()
    engine = engine or get_default_engine(cfg)
    if not messages:
        return InferenceResult.unavailable(EMPTY_INPUT)
    chat = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_summary_prompt(recent_window(messages), keywords or [])},
    ]
    return await engine.infer(summary_profile(cfg), chat, clean_summary)


async def generate_local_summary(messages: list[ChatMessage], keywords: list[str] | None = None,
                                 engine: CompletionEngine | None = None,
                                 cfg: AppConfig | None = None) -> str | None:
    """Summary text, or None when the caller should fall back to a remote path."""
    return (await summarize(messages, keywords, engine, cfg)).value
