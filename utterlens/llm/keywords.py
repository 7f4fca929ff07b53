"""Local keyword extraction from a care-companion conversation."""

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

TASK_NAME = "keywords"
MAX_KEYWORDS = 5
MAX_KEYWORD_LENGTH = 20

SYSTEM_PROMPT = (
    "You are a note-taking assistant supporting older adults with early dementia "
    "or mild cognitive impairment. Extract the key keywords of the conversation concisely."
)

_SPLIT_RE = re.compile(r"[,|\n]")
_STRIP_RE = re.compile(r"[#*\"']")


def keyword_profile(cfg: AppConfig) -> TaskProfile:
    return TaskProfile.from_config(TASK_NAME, cfg.keyword_model)


def build_keyword_prompt(messages: list[ChatMessage]) -> str:
    return (
        "Below is a conversation between the care companion and the user.\n"
        "Extract 3 to 5 key keywords.\n"
        "- Each keyword is 1 to 3 words long.\n"
        "- Output a comma-separated list without numbers, symbols or quotes.\n"
        "- Do not write summary sentences, output keywords only.\n"
        "\n"
        "Conversation:\n"
        f"{build_transcript(messages)}\n"
        "\n"
        "Keywords:"
    )


def parse_keywords(raw: str) -> list[str]:
    """Split, clean, truncate and dedupe model output; at most MAX_KEYWORDS."""
    keywords: list[str] = []
    for token in _SPLIT_RE.split(raw):
        token = _STRIP_RE.sub("", token).strip()[:MAX_KEYWORD_LENGTH]
        if token and token not in keywords:
            keywords.append(token)
        if len(keywords) >= MAX_KEYWORDS:
            break
    return keywords


async def extract_keywords(messages: list[ChatMessage],
                           engine: CompletionEngine | None = None,
                           cfg: AppConfig | None = None) -> InferenceResult[list[str]]:
    cfg = cfg or get_config()
    engine = engine or get_default_engine(cfg)
    if not messages:
        return InferenceResult.unavailable(EMPTY_INPUT)
    chat = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_keyword_prompt(recent_window(messages))},
    ]
    return await engine.infer(keyword_profile(cfg), chat, parse_keywords)


async def generate_local_keywords(messages: list[ChatMessage],
                                  engine: CompletionEngine | None = None,
                                  cfg: AppConfig | None = None) -> list[str] | None:
    """Keywords, or None when the caller should fall back to a remote path."""
    return (await extract_keywords(messages, engine, cfg)).value
