from __future__ import annotations

import json
import logging

import httpx
import pytest

from agent_studio.config import load_config, LLMConfig
from agent_studio.logging_utils import JsonFormatter, request_id_ctx
from agent_studio.agentic.behavior import analyze_response_behavior
from agent_studio.agentic.agent_config import AgentConfig, ResponseRules
from agent_studio.agentic.llm import resolve_provider, extract_json_object
from agent_studio.agentic.retrieval import HttpRetriever, NullRetriever, RetrievalError, create_retriever


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "AI_GATEWAY_API_KEY", "AI_GATEWAY_URL", "OPENAI_API_KEY", "GROQ_API_KEY",
        "RETRIEVAL_URL", "RETRIEVAL_API_KEY", "LOG_LEVEL", "API_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_yaml_values_and_env_overrides(tmp_path, clean_env):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "llm:\n  openai_model: gpt-test\n  request_timeout_seconds: 12\n"
        "retrieval:\n  backend: http\n  service_url: http://yaml/search\n"
        "agentic:\n  max_reasoning_steps_limit: 4\n  default_rework:\n    max_retries: 5\n"
        "api:\n  title: Test API\n"
    )
    clean_env.setenv("OPENAI_API_KEY", "sk-test")
    clean_env.setenv("RETRIEVAL_URL", "http://env/search")
    clean_env.setenv("API_PORT", "9100")

    config = load_config(str(config_file))

    assert config.llm.openai_api_key == "sk-test"
    assert config.llm.openai_model == "gpt-test"
    assert config.llm.request_timeout_seconds == 12.0
    assert config.retrieval.service_url == "http://env/search"
    assert config.agentic.max_reasoning_steps_limit == 4
    assert config.agentic.default_rework == {
        "enabled": True, "max_retries": 5, "minimum_score_threshold": 70, "auto_correct": True
    }
    assert config.api.title == "Test API"
    assert config.api.port == 9100


def test_missing_config_file_uses_defaults(tmp_path, clean_env):
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config.retrieval.backend == "http"
    assert config.agentic.enabled is True
    assert config.advanced.background_drain_timeout_seconds == 5.0


def test_provider_resolution_order():
    assert not resolve_provider(LLMConfig()).is_configured
    assert resolve_provider(LLMConfig(groq_api_key="g")).provider == "groq"
    assert resolve_provider(LLMConfig(groq_api_key="g", openai_api_key="o")).provider == "openai"
    gateway = resolve_provider(LLMConfig(groq_api_key="g", openai_api_key="o", gateway_api_key="a"))
    assert gateway.provider == "gateway"
    assert gateway.model == "google/gemini-2.5-flash"


def test_extract_json_object():
    assert extract_json_object('```json\n{"a": {"b": 1}}\n```') == {"a": {"b": 1}}
    with pytest.raises(ValueError):
        extract_json_object("nothing here")
    with pytest.raises(ValueError):
        extract_json_object("{broken")


def test_agent_config_defaults_and_coercion():
    config = AgentConfig.from_dict({
        "persona": "   ",
        "response_rules": {"cite_if_possible": "yes", "step_by_step": True},
        "memory_settings": {"context_window_size": "3", "short_term_enabled": "no"},
        "rag_policy": "strict",
    })
    assert config.persona is None
    assert config.response_rules.enabled() == ["step_by_step"]
    assert config.memory_settings.context_window_size == 3
    assert config.memory_settings.short_term_enabled is True
    assert config.memory_settings.window_size() == 6
    assert config.rag_policy == {}
    assert AgentConfig.from_dict(None).response_rules is None


def test_behavior_metrics():
    metrics = analyze_response_behavior(
        "- First point [Source 1]\n- Second point\n\nI'm not sure about the rest.",
        ResponseRules(step_by_step=True, cite_if_possible=True, refuse_if_uncertain=True),
    )
    assert metrics["has_bullet_points"]
    assert metrics["citation_count"] == 1
    assert metrics["structure"] == "concise"
    assert metrics["tone_indicators"]["uses_contractions"]
    assert metrics["rules_applied"] == ["step_by_step", "cite_if_possible", "refuse_if_uncertain"]


def test_json_formatter_includes_request_id_and_extras():
    record = logging.LogRecord("agent_studio", logging.INFO, __file__, 1, "done", None, None)
    record.event = "rag_chat_completed"
    record.request_id = "req-1"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "done"
    assert payload["event"] == "rag_chat_completed"
    assert payload["request_id"] == "req-1"
    assert request_id_ctx.get() is None


def _mock_client(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)


@pytest.mark.asyncio
async def test_http_retriever_parses_chunks(monkeypatch):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"chunks": [
            {"id": "c1", "source_file": "a.pdf", "content": "alpha", "relevance_score": 0.8},
            {"id": "c2", "content": "beta"},
            "junk",
        ]})

    _mock_client(monkeypatch, handler)
    retriever = HttpRetriever("http://retrieval/search", api_key="secret", use_hyde=False)
    chunks = await retriever.search("alpha?", folder_ids=["f1"], top_k=8)

    assert [c.id for c in chunks] == ["c1", "c2"]
    assert chunks[1].source_file == "unknown"
    assert chunks[1].relevance_score is None
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["config"]["rerank_top_n"] == 5
    assert seen["body"]["config"]["use_hyde"] is False
    assert seen["body"]["config"]["folder_ids"] == ["f1"]


@pytest.mark.asyncio
async def test_http_retriever_errors(monkeypatch):
    _mock_client(monkeypatch, lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(RetrievalError):
        await HttpRetriever("http://retrieval/search").search("q")


def test_retriever_factory_without_url(tmp_path, clean_env):
    config = load_config(str(tmp_path / "missing.yaml"))
    assert isinstance(create_retriever(config.retrieval), NullRetriever)
