from __future__ import annotations

import json

import pytest

from conftest import FakeLLM, make_chunks
from agent_studio.agentic.agents.validation import HallucinationChecker
from agent_studio.agentic.llm import LLMCallError


def _reply(**fields):
    data = {"hallucination_detected": False, "unsupported_claims": [], "confidence": 0.9}
    data.update(fields)
    return json.dumps(data)


@pytest.mark.asyncio
async def test_clean_response_is_marked_checked():
    checker = HallucinationChecker(FakeLLM([_reply()]))
    result = await checker.check("Refunds take 10 days.", make_chunks(2), "refund?")
    assert result.checked
    assert not result.detected
    assert result.details == []
    assert result.confidence == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_detected_claims_are_reported():
    claims = [{"claim": "Refunds take 2 days", "reason": "sources say 10"}, "not a dict"]
    checker = HallucinationChecker(FakeLLM([_reply(hallucination_detected=True, unsupported_claims=claims)]))
    result = await checker.check("Refunds take 2 days.", make_chunks(2), "refund?")
    assert result.detected
    assert result.details == [claims[0]]


@pytest.mark.asyncio
@pytest.mark.parametrize("flag", ["true", 1, "yes"])
async def test_only_literal_true_counts_as_detected(flag):
    checker = HallucinationChecker(FakeLLM([_reply(hallucination_detected=flag)]))
    result = await checker.check("r", make_chunks(1), "q")
    assert not result.detected
    assert result.checked


@pytest.mark.asyncio
@pytest.mark.parametrize("confidence,expected", [(None, 0.5), ("high", 0.5), (0, 0.5), (7, 1.0), (-2, 0.0)])
async def test_confidence_defaults_and_clamps(confidence, expected):
    checker = HallucinationChecker(FakeLLM([_reply(confidence=confidence)]))
    result = await checker.check("r", make_chunks(1), "q")
    assert result.confidence == expected


@pytest.mark.asyncio
async def test_context_limited_to_first_five_chunks():
    llm = FakeLLM([_reply()])
    await HallucinationChecker(llm).check("r", make_chunks(7), "q")
    prompt = llm.calls[0]["messages"][1]["content"]
    assert "Document 5 says" in prompt
    assert "Document 6 says" not in prompt


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["I think it is fine", LLMCallError("timeout")])
async def test_failures_are_not_verified(reply):
    result = await HallucinationChecker(FakeLLM([reply])).check("r", make_chunks(1), "q")
    assert not result.checked
    assert not result.detected
    assert result.details == []
    assert result.confidence == 0.5


@pytest.mark.asyncio
async def test_unconfigured_client_skips_check():
    llm = FakeLLM(configured=False)
    result = await HallucinationChecker(llm).check("r", make_chunks(1), "q")
    assert not result.checked
    assert llm.calls == []
