from __future__ import annotations

import pytest

from conftest import FakeLLM, FakeRetriever, make_chunks
from agent_studio.agentic.agent_config import AgentConfig
from agent_studio.agentic.agents.standard import (
    StandardResponder,
    NOT_CONFIGURED_RESPONSE,
    UPSTREAM_ERROR_RESPONSE,
    extract_citations,
)
from agent_studio.agentic.llm import LLMCallError
from agent_studio.agentic.tools import ToolExecutors


def _responder(llm, retriever=None):
    return StandardResponder(llm, ToolExecutors(retriever or FakeRetriever(make_chunks(3)), llm))


def test_extract_citations_dedupes_and_ignores_out_of_range():
    chunks = make_chunks(3)
    text = "A [Source 2]. B [Source 1]. C [Source 2]. D [Source 7]. E [Source 0]."
    citations = extract_citations(text, chunks)
    assert [c.chunk_id for c in citations] == ["chunk-2", "chunk-1"]
    assert citations[0].citation_text == chunks[1].content[:200]
    assert citations[0].confidence_score == pytest.approx(0.7)


def test_extract_citations_without_markers():
    assert extract_citations("No markers here.", make_chunks(2)) == []


@pytest.mark.asyncio
async def test_respond_builds_context_and_cites():
    llm = FakeLLM(["Refunds take 10 days [Source 1]."])
    retriever = FakeRetriever(make_chunks(3))
    messages = [{"role": "user", "content": f"m{i}"} for i in range(8)]
    config = AgentConfig.from_dict({"persona": "You are a refunds clerk."})

    result = await _responder(llm, retriever).respond("m7", messages, ["f1"], config)

    assert result.response == "Refunds take 10 days [Source 1]."
    assert [c.chunk_id for c in result.citations] == ["chunk-1"]
    assert len(result.chunks) == 3
    assert retriever.calls == [{"query": "m7", "folder_ids": ["f1"], "top_k": 5}]

    sent = llm.calls[0]["messages"]
    assert sent[0]["role"] == "system"
    assert sent[0]["content"] == result.system_prompt
    assert "You are a refunds clerk." in result.system_prompt
    assert "[Source 1: doc1.pdf]" in result.system_prompt
    # system prompt plus the last six messages
    assert [m["content"] for m in sent[1:]] == ["m2", "m3", "m4", "m5", "m6", "m7"]


@pytest.mark.asyncio
async def test_retrieval_failure_still_answers(failing_retriever):
    llm = FakeLLM(["General answer."])
    result = await _responder(llm, failing_retriever).respond("q", [{"role": "user", "content": "q"}])
    assert result.response == "General answer."
    assert result.chunks == []
    assert result.citations == []


@pytest.mark.asyncio
async def test_unconfigured_client_returns_fixed_message():
    result = await _responder(FakeLLM(configured=False)).respond("q", [{"role": "user", "content": "q"}])
    assert result.response == NOT_CONFIGURED_RESPONSE
    assert result.citations == []


@pytest.mark.asyncio
async def test_upstream_error_returns_fixed_message():
    llm = FakeLLM([LLMCallError("502 from provider")])
    result = await _responder(llm).respond("q", [{"role": "user", "content": "q"}])
    assert result.response == UPSTREAM_ERROR_RESPONSE
    assert len(result.chunks) == 3
