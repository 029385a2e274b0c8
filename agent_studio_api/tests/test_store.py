from __future__ import annotations

import asyncio
import time

import pytest

from agent_studio.agentic.store import PipelineStore


class _SlowSession:
    def close(self):
        pass

    def rollback(self):
        pass


def _slow_factory():
    time.sleep(0.5)
    return _SlowSession()


@pytest.mark.asyncio
async def test_store_calls_do_not_block_the_event_loop(monkeypatch):
    from agent_studio.database import QueryComplexityCRUD

    monkeypatch.setattr(QueryComplexityCRUD, "get_by_hash", staticmethod(lambda db, query_hash: None))
    store = PipelineStore(_slow_factory)
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            await asyncio.sleep(0.05)
            ticks += 1

    task = asyncio.create_task(ticker())
    try:
        assert await store.get_cached_complexity("abc") is None
    finally:
        task.cancel()

    assert ticks >= 3


@pytest.mark.asyncio
async def test_session_factory_failure_returns_default():
    def refuse():
        raise RuntimeError("database unavailable")

    store = PipelineStore(refuse)
    assert await store.list_active_tools() == []
    assert await store.get_agent_profile("agent-1") is None
    await store.log_self_evaluation(conversation_id="c", response_quality=0.5)


@pytest.mark.asyncio
async def test_in_memory_store_serializes_background_writes(memory_store):
    from agent_studio.database import AgentReasoningLog

    await asyncio.gather(*[
        memory_store.log_reasoning_step("conv-9", step, "thought", f"step {step}")
        for step in range(1, 6)
    ])

    db = memory_store.session_factory()
    try:
        assert db.query(AgentReasoningLog).count() == 5
    finally:
        db.close()
