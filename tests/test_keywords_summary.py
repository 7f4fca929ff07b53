"""Tests for local keyword extraction, summaries and the conversation pipeline."""

from __future__ import annotations

import json
from pathlib import Path

from conftest import CountingLoader, FakeLlama
from utterlens.llm.engine import EMPTY_INPUT, UNSUPPORTED_RUNTIME, CompletionEngine
from utterlens.llm.keywords import (
    MAX_KEYWORDS,
    build_keyword_prompt,
    extract_keywords,
    generate_local_keywords,
    parse_keywords,
)
from utterlens.llm.messages import (
    MESSAGE_WINDOW,
    ChatMessage,
    build_transcript,
    load_messages,
    recent_window,
)
from utterlens.llm.summary import (
    STOP_SEQUENCES,
    build_summary_prompt,
    clean_summary,
    generate_local_summary,
    summarize,
)
from utterlens.pipeline import analyze_recording, summarize_conversation
from utterlens.transcription.base import DetailedTranscript, TranscriptionBackend, Word

CONVERSATION = [
    ChatMessage("assistant", "How did you sleep last night?"),
    ChatMessage("user", "Not well, I woke up twice."),
    ChatMessage("assistant", "Did you take a walk today?"),
    ChatMessage("user", "Yes, in the park with my daughter."),
]


class TestMessages:
    def test_build_transcript_labels(self):
        text = build_transcript(CONVERSATION[:2])
        assert text == "Assistant: How did you sleep last night?\nUser: Not well, I woke up twice."

    def test_recent_window(self):
        msgs = [ChatMessage("user", str(i)) for i in range(30)]
        window = recent_window(msgs)
        assert len(window) == MESSAGE_WINDOW
        assert window[0].text == "6"

    def test_load_messages(self, tmp_path: Path):
        p = tmp_path / "m.json"
        p.write_text(json.dumps({"messages": [{"role": "user", "content": "hi"}]}), encoding="utf-8")
        assert load_messages(p) == [ChatMessage("user", "hi")]
        p.write_text(json.dumps([{"role": "assistant", "text": "hello"}]), encoding="utf-8")
        assert load_messages(p) == [ChatMessage("assistant", "hello")]


class TestParseKeywords:
    def test_cleans_dedupes_and_truncates(self):
        raw = '#health, "sleep" | walk\nhealth, a-very-long-keyword-exceeding-twenty, diet, extra'
        assert parse_keywords(raw) == ["health", "sleep", "walk", "a-very-long-keyword-", "diet"]

    def test_caps_at_max(self):
        assert len(parse_keywords(",".join(f"k{i}" for i in range(10)))) == MAX_KEYWORDS

    def test_empty(self):
        assert parse_keywords(" , ,\n") == []


class TestExtractKeywords:
    async def test_prompt_and_sampling(self, engine, fake_llama, app_config):
        result = await extract_keywords(CONVERSATION, engine=engine, cfg=app_config)

        assert result.value == ["health", "sleep", "walk"]
        call = fake_llama.calls[0]
        assert call["temperature"] == 0.2
        assert call["max_tokens"] == 120
        system, user = call["messages"]
        assert system["role"] == "system"
        assert user["content"].endswith("Keywords:")
        assert "User: Not well, I woke up twice." in user["content"]

    async def test_only_recent_messages_are_sent(self, engine, fake_llama, app_config):
        msgs = [ChatMessage("user", f"message-{i:02d}") for i in range(30)]
        await extract_keywords(msgs, engine=engine, cfg=app_config)
        prompt = fake_llama.calls[0]["messages"][1]["content"]
        assert "message-05" not in prompt
        assert "message-06" in prompt and "message-29" in prompt

    async def test_empty_input(self, engine, counting_loader, app_config):
        result = await extract_keywords([], engine=engine, cfg=app_config)
        assert result.reason == EMPTY_INPUT
        assert counting_loader.calls == []

    async def test_none_on_unsupported_runtime(self, app_config, bundled_model, counting_loader):
        app_config.runtime.platform = "web"
        eng = CompletionEngine.from_config(app_config, loader=counting_loader)
        assert await generate_local_keywords(CONVERSATION, engine=eng, cfg=app_config) is None
        result = await extract_keywords(CONVERSATION, engine=eng, cfg=app_config)
        assert result.reason == UNSUPPORTED_RUNTIME

    def test_prompt_text(self):
        prompt = build_keyword_prompt(CONVERSATION)
        assert "3 to 5" in prompt
        assert prompt.endswith("Keywords:")


class TestSummary:
    def test_prompt_keywords_line(self):
        prompt = build_summary_prompt(CONVERSATION, ["a", "b", "c", "d", "e", "f"])
        assert "Key keywords: a, b, c, d, e\n" in prompt
        assert prompt.endswith("Summary:")
        assert "No key keywords" in build_summary_prompt(CONVERSATION, [])

    def test_clean_summary(self):
        assert clean_summary('  "She slept badly."  ') == "She slept badly."
        assert clean_summary("'ok'") == "ok"
        assert clean_summary("   ") is None
        assert clean_summary('""') is None

    async def test_summarize(self, app_config, bundled_model):
        llama = FakeLlama(fragments=['"She slept ', 'badly but walked."'])
        eng = CompletionEngine.from_config(app_config, loader=CountingLoader(llama))

        result = await summarize(CONVERSATION, ["sleep"], engine=eng, cfg=app_config)

        assert result.value == "She slept badly but walked."
        call = llama.calls[0]
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 220
        assert call["stop"] == list(STOP_SEQUENCES)
        assert "Key keywords: sleep" in call["messages"][1]["content"]

    async def test_empty_input(self, engine, app_config):
        assert await generate_local_summary([], engine=engine, cfg=app_config) is None


class TestPipeline:
    async def test_summarize_conversation(self, engine, counting_loader, app_config):
        result = await summarize_conversation(CONVERSATION, engine=engine, cfg=app_config)

        assert result.keywords == ["health", "sleep", "walk"]
        assert result.summary == "health, sleep, walk"
        assert result.keyword_reason is None
        assert [name for _, name in counting_loader.calls] == ["keywords", "summary"]
        assert result.to_dict()["summary_reason"] is None

    async def test_summarize_conversation_unavailable(self, app_config, counting_loader):
        eng = CompletionEngine.from_config(app_config, loader=counting_loader)
        result = await summarize_conversation(CONVERSATION, engine=eng, cfg=app_config)
        assert result.keywords is None and result.summary is None
        assert result.keyword_reason == "model_unavailable"

    async def test_analyze_recording(self, audio_file, app_config):
        class Backend(TranscriptionBackend):
            name = "stub"

            async def transcribe_text(self, audio_path, language=None):
                return "hello world"

            async def transcribe_detailed(self, audio_path, language=None):
                return DetailedTranscript(
                    text="hello world",
                    words=[Word("hello", 0.0, 0.5), Word("world", 1.7, 2.2)],
                    estimated_timing=True,
                    provider="stub",
                )

        analysis = await analyze_recording(audio_file, cfg=app_config, backend=Backend())

        assert analysis.estimated_timing is True
        assert analysis.metrics.utterance_count == 2
        d = analysis.to_dict()
        assert d["provider"] == "stub"
        assert d["metrics"]["pauseCount"] == 1
