from __future__ import annotations

import json

import pytest

from conftest import FakeLLM, FakeRetriever, make_chunks
from agent_studio.agentic import AgenticRAGPipeline, QueryComplexity
from agent_studio.agentic.agents.standard import NOT_CONFIGURED_RESPONSE
from agent_studio.agentic.background import BackgroundTaskSet
from agent_studio.agentic.pipeline import compute_confidence
from agent_studio.agentic.state import Citation
from agent_studio.database import (
    AIProfileCRUD,
    AgentMemory,
    AgentReasoningLog,
    RAGCitation,
    RAGSelfEvaluation,
    RAGStrategyMetric,
    AgentExperienceArchive,
)
from agent_studio.models import RAGChatRequest


def _classification(complexity, strategy):
    return json.dumps({"complexity": complexity, "strategy": strategy, "reasoning": "test"})


def routed_llm(
    classify=_classification("moderate", "standard_rag"),
    answer="Refunds take 10 days [Source 1].",
    react_steps=(),
    reworks=(),
    hallucination='{"hallucination_detected": false, "unsupported_claims": [], "confidence": 0.9}',
    memory='{"memories": []}',
    configured=True,
):
    """FakeLLM answering each pipeline stage by its system prompt."""
    react_steps = list(react_steps)
    reworks = list(reworks)

    def route(messages):
        system = messages[0]["content"]
        if "query complexity analyzer" in system:
            return classify
        if "hallucination detector" in system:
            return hallucination
        if "learnable facts" in system:
            return memory
        if "correcting a previous response" in system:
            return reworks.pop(0)
        if "ReAct (Reasoning and Acting)" in system:
            return react_steps.pop(0)
        return answer

    return FakeLLM([route] * 50, configured=configured)


def _request(content="How long do refunds take?", **fields):
    return RAGChatRequest(messages=[{"role": "user", "content": content}], **fields)


def _rows(store, model):
    db = store.session_factory()
    try:
        return db.query(model).all()
    finally:
        db.close()


def _pipeline(llm, retriever, store, **config):
    return AgenticRAGPipeline(llm, retriever, store=store, background=BackgroundTaskSet(), config=config)


def test_compute_confidence():
    citation = Citation("c", "f", "t", 0.9)
    assert compute_confidence([]) == 0.4
    assert compute_confidence([citation]) == 0.6
    assert compute_confidence([citation] * 3) == 0.8
    assert compute_confidence([citation] * 10) == 0.95


@pytest.mark.asyncio
async def test_simple_query_with_no_chunks_still_succeeds(memory_store):
    llm = routed_llm(classify=_classification("simple", "simple_lookup"), answer="I could not find that.")
    retriever = FakeRetriever([])
    pipeline = _pipeline(llm, retriever, memory_store)

    result = await pipeline.run(_request(enable_agentic=False), user_id="7")
    body = result.to_response()

    assert body["success"] is True
    assert body["response"] == "I could not find that."
    assert body["citations"] == []
    assert body["metadata"]["chunks_used"] == 0
    assert body["metadata"]["strategy_used"] == "simple_lookup"
    assert body["metadata"]["query_complexity"] == "simple"
    assert body["metadata"]["hallucination_checked"] is False
    assert body["confidence"] == 0.4
    assert body["reasoning_trace"] == []
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_standard_path_cites_checks_and_persists(memory_store):
    llm = routed_llm()
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(3)), memory_store)

    result = await pipeline.run(_request(conversation_id="conv-1", workspace_id="ws-1"), user_id="7")

    assert result.response == "Refunds take 10 days [Source 1]."
    assert [c.chunk_id for c in result.citations] == ["chunk-1"]
    assert result.confidence == 0.6
    assert result.chunks_used == 3
    assert result.hallucination.checked
    assert not result.hallucination.detected
    assert result.validation.overall_score == 100
    assert result.rework_attempts == 0

    await pipeline.background.drain()
    assert [r.chunk_id for r in _rows(memory_store, RAGCitation)] == ["chunk-1"]
    evaluations = _rows(memory_store, RAGSelfEvaluation)
    assert len(evaluations) == 1
    assert evaluations[0].retrieval_decision == "retrieve"
    metrics = _rows(memory_store, RAGStrategyMetric)
    assert [(m.strategy_name, m.query_complexity, m.total_queries) for m in metrics] == [
        ("standard_rag", "moderate", 1)
    ]


@pytest.mark.asyncio
async def test_unconfigured_provider_completes_turn(memory_store):
    llm = routed_llm(configured=False)
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(2)), memory_store)
    request = _request(
        agentConfig={"response_rules": {"cite_if_possible": True}},
        rework_settings={"minimum_score_threshold": 95},
    )

    result = await pipeline.run(request, user_id="7")

    assert result.response == NOT_CONFIGURED_RESPONSE
    assert result.complexity is QueryComplexity.MODERATE
    assert result.citations == []
    assert not result.validation.passed
    assert result.rework_attempts == 0
    assert result.to_response()["success"] is True

    await pipeline.background.drain()
    assert len(_rows(memory_store, RAGSelfEvaluation)) == 1
    assert len(_rows(memory_store, RAGStrategyMetric)) == 1


@pytest.mark.asyncio
async def test_complex_query_uses_reasoning_loop(memory_store):
    llm = routed_llm(
        classify=_classification("complex", "agentic_full"),
        react_steps=[
            'THOUGHT: search first\nACTION: knowledge_search\nINPUT: {"query": "refunds"}',
            "ANSWER: Refunds take 10 days [Source 1].",
        ],
    )
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(2)), memory_store)

    result = await pipeline.run(_request(conversation_id="conv-2", max_reasoning_steps=3), user_id="7")

    assert result.strategy == "agentic_full"
    assert result.response == "Refunds take 10 days [Source 1]."
    assert len(result.citations) == 2
    trace = result.to_response()["reasoning_trace"]
    assert [t["type"] for t in trace] == ["thought", "action", "observation", "answer"]
    assert trace[1]["tool"] == "knowledge_search"

    await pipeline.background.drain()
    logs = _rows(memory_store, AgentReasoningLog)
    assert sorted(log.step_type for log in logs) == ["action", "answer", "observation", "thought"]
    assert {log.conversation_id for log in logs} == {"conv-2"}


@pytest.mark.asyncio
async def test_agentic_disabled_routes_complex_query_to_standard(memory_store):
    llm = routed_llm(classify=_classification("complex", "agentic_full"))
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(1)), memory_store)
    result = await pipeline.run(_request(enable_agentic=False))
    assert result.reasoning_steps == []
    assert result.response == "Refunds take 10 days [Source 1]."
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_awareness_settings_reach_the_system_prompt(memory_store):
    llm = routed_llm()
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(1)), memory_store)
    request = _request(agentConfig={"awareness_settings": {
        "awareness_level": 4, "self_role_enabled": True, "role_boundaries": "Refund policy only",
    }})

    await pipeline.run(request)

    answer_call = next(c for c in llm.calls if "=== CONTEXT ===" in c["messages"][0]["content"])
    system = answer_call["messages"][0]["content"]
    assert "## SELF-ROLE AWARENESS" in system
    assert "Refund policy only" in system
    assert "## ADVANCED AUTONOMY" in system
    assert "## STATE AWARENESS" not in system
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_standard_answer_sees_last_six_messages_beyond_the_window(memory_store):
    llm = routed_llm()
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(1)), memory_store)
    messages = [
        {"role": "user" if i % 2 == 0 else "assistant", "content": f"message {i}"}
        for i in range(8)
    ] + [{"role": "user", "content": "How long do refunds take?"}]
    request = RAGChatRequest(
        messages=messages, agentConfig={"memory_settings": {"context_window_size": 1}}, enable_agentic=False
    )

    await pipeline.run(request)

    answer_call = next(c for c in llm.calls if "=== CONTEXT ===" in c["messages"][0]["content"])
    assert [m["content"] for m in answer_call["messages"][1:]] == [m["content"] for m in messages[-6:]]
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_failing_response_is_reworked_and_recited(memory_store):
    compliant = (
        "Step 1: Check the receipt [Source 2].\n- Refunds take 20 days\n"
        "In summary, you are covered.\nConfidence: 85%"
    )
    llm = routed_llm(answer="Refunds take 10 days.", reworks=[compliant])
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(3)), memory_store)
    request = _request(
        agentConfig={"response_rules": {
            "step_by_step": True, "cite_if_possible": True, "include_confidence_scores": True,
            "use_bullet_points": True, "summarize_at_end": True,
        }},
        rework_settings={"max_retries": 2, "minimum_score_threshold": 90},
    )

    result = await pipeline.run(request)
    body = result.to_response()

    assert result.response == compliant
    assert body["validation"]["rework_attempts"] == 1
    assert body["validation"]["score"] == 100
    assert body["validation"]["passed"] is True
    assert body["metadata"]["rework_threshold"] == 90
    assert [c["chunk_id"] for c in body["citations"]] == ["chunk-2"]
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_rework_disabled_keeps_first_draft(memory_store):
    llm = routed_llm(answer="Refunds take 10 days.")
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(1)), memory_store)
    request = _request(
        agentConfig={"response_rules": {"cite_if_possible": True, "step_by_step": True}},
        rework_settings={"enabled": False, "minimum_score_threshold": 95},
    )
    result = await pipeline.run(request)
    assert result.response == "Refunds take 10 days."
    assert not result.validation.passed
    assert result.rework_attempts == 0
    assert result.to_response()["metadata"]["rework_enabled"] is False
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_oversized_budgets_are_clamped_to_the_configured_limit(memory_store, monkeypatch):
    cited = "Refunds take 10 days according to the policy document [Source 1]."
    llm = routed_llm(
        classify=_classification("complex", "agentic_full"),
        react_steps=["ANSWER: Refunds take 10 days."],
        reworks=[cited],
    )
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(1)), memory_store, max_reasoning_steps_limit=3)
    seen = {}
    react_run = pipeline.react_agent.run
    rework = pipeline.rework_agent.rework

    async def record_run(*args, **kwargs):
        seen["max_steps"] = kwargs["max_steps"]
        return await react_run(*args, **kwargs)

    async def record_rework(*args, **kwargs):
        seen["max_retries"] = kwargs["max_retries"]
        return await rework(*args, **kwargs)

    monkeypatch.setattr(pipeline.react_agent, "run", record_run)
    monkeypatch.setattr(pipeline.rework_agent, "rework", record_rework)
    request = _request(
        max_reasoning_steps=20,
        agentConfig={"response_rules": {"cite_if_possible": True}},
        rework_settings={"max_retries": 20, "minimum_score_threshold": 95},
    )

    result = await pipeline.run(request)

    assert seen == {"max_steps": 3, "max_retries": 3}
    assert result.response == cited
    assert result.rework_attempts == 1
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_non_positive_step_budget_still_runs_one_step(memory_store, monkeypatch):
    llm = routed_llm(
        classify=_classification("complex", "agentic_full"),
        react_steps=["ANSWER: Refunds take 10 days [Source 1]."],
    )
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(1)), memory_store)
    react_run = pipeline.react_agent.run
    budgets = []

    async def record_run(*args, **kwargs):
        budgets.append(kwargs["max_steps"])
        return await react_run(*args, **kwargs)

    monkeypatch.setattr(pipeline.react_agent, "run", record_run)
    result = await pipeline.run(_request(max_reasoning_steps=0))

    assert budgets == [1]
    assert result.response == "Refunds take 10 days [Source 1]."
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_stored_profile_and_memory_learning(memory_store):
    db = memory_store.session_factory()
    try:
        AIProfileCRUD.create(
            db, name="Support", profile_id="agent-1",
            memory_settings={"long_term_enabled": True, "retention_policy": "keep_all", "context_window_size": 1},
            awareness_settings={}
        )
    finally:
        db.close()

    long_answer = "Refunds take 10 days [Source 1]. " + "Details follow. " * 10
    llm = routed_llm(
        answer=long_answer,
        memory='{"memories": [{"type": "preference", "key": "tone", "value": "formal"}]}',
    )
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(2)), memory_store)
    messages = [
        {"role": "user", "content": "old question"},
        {"role": "assistant", "content": "old answer"},
        {"role": "user", "content": "older context is dropped"},
        {"role": "assistant", "content": "ok"},
        {"role": "user", "content": "How long do refunds take?"},
    ]
    request = RAGChatRequest(
        messages=messages, agentConfig={"agent_id": "agent-1"}, workspace_id="ws-1", enable_agentic=False
    )

    first = await pipeline.run(request, user_id="7")
    assert first.memory_items_used == 0
    # window of one exchange limits the classifier; the answer sees the last six messages
    classify_call = next(c for c in llm.calls if "query complexity analyzer" in c["messages"][0]["content"])
    assert "Conversation length: 1 messages" in classify_call["messages"][-1]["content"]
    answer_call = next(c for c in llm.calls if "=== CONTEXT ===" in c["messages"][0]["content"])
    assert [m["content"] for m in answer_call["messages"][1:]] == [m["content"] for m in messages]

    await pipeline.background.drain()
    archives = _rows(memory_store, AgentExperienceArchive)
    assert len(archives) == 1
    assert archives[0].agent_id == "agent-1"
    assert archives[0].learned_patterns["strategy_used"] == "standard_rag"

    second = await pipeline.run(request, user_id="7")
    assert second.memory_items_used == 1
    await pipeline.background.drain()
    assert len(_rows(memory_store, AgentMemory)) == 1


@pytest.mark.asyncio
async def test_adaptive_strategy_disabled_skips_classifier(memory_store):
    llm = routed_llm(classify=_classification("complex", "agentic_full"))
    pipeline = _pipeline(llm, FakeRetriever(make_chunks(1)), memory_store)
    result = await pipeline.run(_request(enable_adaptive_strategy=False, enable_hallucination_check=False))
    assert result.complexity is QueryComplexity.MODERATE
    assert result.strategy == "standard_rag"
    assert not any("query complexity analyzer" in c["messages"][0]["content"] for c in llm.calls)
    assert not result.hallucination.checked
    await pipeline.background.drain()


@pytest.mark.asyncio
async def test_retrieval_outage_degrades_to_empty_context(memory_store, failing_retriever):
    llm = routed_llm(answer="I do not have documents on that.")
    pipeline = _pipeline(llm, failing_retriever, memory_store)
    result = await pipeline.run(_request())
    assert result.response == "I do not have documents on that."
    assert result.chunks_used == 0
    assert not result.hallucination.checked
    await pipeline.background.drain()
