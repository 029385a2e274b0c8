from __future__ import annotations

import json

import pytest

from conftest import FakeLLM
from agent_studio.agentic.classifier import ComplexityClassifier, hash_query
from agent_studio.agentic.llm import LLMCallError
from agent_studio.agentic.state import QueryComplexity


def _reply(complexity="complex", strategy="agentic_full"):
    return json.dumps({
        "complexity": complexity,
        "strategy": strategy,
        "reasoning": "needs comparison",
        "indicators": {"requires_multiple_sources": True},
    })


def test_hash_query_normalizes_case_and_whitespace():
    assert hash_query("  What Is X?  ") == hash_query("what is x?")
    assert len(hash_query("anything")) == 64


@pytest.mark.asyncio
async def test_classify_parses_model_reply():
    llm = FakeLLM(["Sure:\n```json\n" + _reply() + "\n```"])
    result = await ComplexityClassifier(llm).classify("Compare A and B", [])
    assert result.complexity is QueryComplexity.COMPLEX
    assert result.strategy == "agentic_full"
    assert result.reasoning == "needs comparison"
    assert not result.cached


@pytest.mark.asyncio
async def test_unknown_complexity_maps_to_moderate():
    llm = FakeLLM([_reply(complexity="galaxy-brained", strategy="")])
    result = await ComplexityClassifier(llm).classify("q", [])
    assert result.complexity is QueryComplexity.MODERATE
    assert result.strategy == "standard_rag"


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["no json here", "[1, 2]", LLMCallError("boom")])
async def test_failures_fall_back_to_default(reply):
    result = await ComplexityClassifier(FakeLLM([reply])).classify("q", [])
    assert result.complexity is QueryComplexity.MODERATE
    assert result.strategy == "standard_rag"
    assert not result.cached


@pytest.mark.asyncio
async def test_unconfigured_client_skips_llm():
    llm = FakeLLM(configured=False)
    result = await ComplexityClassifier(llm).classify("q", [])
    assert result.complexity is QueryComplexity.MODERATE
    assert llm.calls == []


@pytest.mark.asyncio
async def test_prompt_includes_recent_history():
    llm = FakeLLM([_reply()])
    history = [
        {"role": "user", "content": "first question"},
        {"role": "assistant", "content": "first answer"},
        {"role": "user", "content": "and the second?"},
    ]
    await ComplexityClassifier(llm).classify("and the second?", history)
    user_prompt = llm.calls[0]["messages"][1]["content"]
    assert "first answer | user: and the second?" in user_prompt
    assert "Conversation length: 3 messages" in user_prompt


@pytest.mark.asyncio
async def test_second_identical_query_is_served_from_cache(memory_store):
    llm = FakeLLM([_reply()])
    classifier = ComplexityClassifier(llm, store=memory_store)

    first = await classifier.classify("Compare A and B", [], user_id="7")
    second = await classifier.classify("  compare a and b ", [], user_id="7")

    assert not first.cached
    assert second.cached
    assert second.complexity is QueryComplexity.COMPLEX
    assert second.strategy == "agentic_full"
    assert len(llm.calls) == 1


class _BrokenStore:
    def __init__(self):
        self.writes = 0

    async def get_cached_complexity(self, query_hash):
        raise RuntimeError("database is locked")

    async def cache_complexity(self, **kwargs):
        self.writes += 1


@pytest.mark.asyncio
async def test_cache_error_counts_as_miss():
    store = _BrokenStore()
    llm = FakeLLM([_reply(complexity="simple", strategy="simple_lookup")])
    result = await ComplexityClassifier(llm, store=store).classify("What is X?", [])
    assert result.complexity is QueryComplexity.SIMPLE
    assert store.writes == 1
