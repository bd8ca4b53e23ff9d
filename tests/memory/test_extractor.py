"""Tests for MemoryExtractor."""

from unittest.mock import AsyncMock

import pytest

from souschef.errors import UpstreamModelError
from souschef.llm_client import Completion
from souschef.memory import MemoryCategory, MemoryExtractor
from souschef.memory.extractor import format_conversation, parse_memories


def make_llm(content: str) -> AsyncMock:
    llm = AsyncMock()
    llm.complete = AsyncMock(return_value=Completion(content=content))
    return llm


class TestFormatConversation:
    """Tests for the transcript format."""

    def test_user_and_assistant(self):
        text = format_conversation([
            {"role": "system", "content": "ignored"},
            {"role": "user", "content": "I'm vegan"},
            {"role": "assistant", "content": "Noted!"},
            {"role": "tool", "content": "{}"},
        ])
        assert text == "USER: I'm vegan\nASSISTANT: Noted!"


class TestParseMemories:
    """Tests for permissive response parsing."""

    def test_fenced_json(self):
        content = """Here you go:
```json
{"memories": [{"fact": "User is vegan", "category": "restriction", "confidence": "high"}]}
```"""
        memories = parse_memories(content)
        assert len(memories) == 1
        assert memories[0].fact == "User is vegan"
        assert memories[0].category is MemoryCategory.RESTRICTION

    def test_bare_object(self):
        content = 'Sure. {"memories": [{"fact": "User has a wok", "category": "equipment", "confidence": "high"}]}'
        assert [m.fact for m in parse_memories(content)] == ["User has a wok"]

    def test_only_high_confidence(self):
        content = """{"memories": [
            {"fact": "User is allergic to shellfish", "category": "allergy", "confidence": "high"},
            {"fact": "User might like curry", "category": "preference", "confidence": "medium"}
        ]}"""
        memories = parse_memories(content)
        assert [m.fact for m in memories] == ["User is allergic to shellfish"]

    def test_unknown_category_skipped(self):
        content = '{"memories": [{"fact": "User is sleepy", "category": "mood", "confidence": "high"}]}'
        assert parse_memories(content) == []

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "no json here",
            "{not valid json}",
            '{"facts": []}',
            '{"memories": "nope"}',
            '{"memories": [42, {"fact": "", "category": "goal", "confidence": "high"}]}',
        ],
    )
    def test_garbage_yields_empty(self, content: str):
        assert parse_memories(content) == []


class TestMemoryExtractor:
    """Tests for the extraction call."""

    def test_prompt_lists_existing_facts(self):
        extractor = MemoryExtractor(make_llm(""))
        prompt = extractor.build_prompt(
            [{"role": "user", "content": "I have a wok"}],
            ["User is vegan", 'User calls it "sunday gravy"'],
        )
        assert "USER: I have a wok" in prompt
        assert "- User is vegan" in prompt
        assert '- User calls it \\"sunday gravy\\"' in prompt
        assert "{chat_histories}" not in prompt

    def test_placeholder_text_in_chat_is_kept(self):
        extractor = MemoryExtractor(make_llm(""))
        prompt = extractor.build_prompt(
            [{"role": "user", "content": "what does {existing_memories} mean?"}],
            ["User is vegan"],
        )
        assert "USER: what does {existing_memories} mean?" in prompt
        assert prompt.count("- User is vegan") == 1

    def test_prompt_without_existing_facts(self):
        extractor = MemoryExtractor(make_llm(""))
        prompt = extractor.build_prompt([{"role": "user", "content": "hi"}], [])
        assert "None yet" in prompt

    @pytest.mark.asyncio
    async def test_extract(self):
        llm = make_llm(
            '{"memories": [{"fact": "User keeps halal", "category": "restriction", "confidence": "high"}]}'
        )
        extractor = MemoryExtractor(llm)

        memories = await extractor.extract([{"role": "user", "content": "I keep halal"}], [])

        assert [m.fact for m in memories] == ["User keeps halal"]
        llm.complete.assert_awaited_once()
        assert llm.complete.call_args.kwargs["temperature"] == 0

    @pytest.mark.asyncio
    async def test_empty_history_skips_call(self):
        llm = make_llm("")
        assert await MemoryExtractor(llm).extract([], ["User is vegan"]) == []
        llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self):
        llm = AsyncMock()
        llm.complete = AsyncMock(side_effect=UpstreamModelError("down"))
        with pytest.raises(UpstreamModelError):
            await MemoryExtractor(llm).extract([{"role": "user", "content": "hi"}], [])
