from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Ensure config and database resolve regardless of pytest working directory.
REPO_ROOT = Path(__file__).resolve().parents[1]
os.environ.setdefault("CONFIG_PATH", str(REPO_ROOT / "config" / "agent_studio_config.yaml"))
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sqlalchemy.orm import sessionmaker  # noqa: E402

from agent_studio.database import init_db, make_engine  # noqa: E402
from agent_studio.agentic.llm import LLMNotConfiguredError  # noqa: E402
from agent_studio.agentic.retrieval import RetrievalError  # noqa: E402
from agent_studio.agentic.state import RetrievedChunk  # noqa: E402
from agent_studio.agentic.store import PipelineStore  # noqa: E402


class FakeLLM:
    """Scripted chat completion client.

    Each reply is a string, an exception to raise, or a callable taking the
    messages. Once the script runs out ``default`` is returned.
    """

    def __init__(self, replies=None, configured=True, default=""):
        self.replies = list(replies or [])
        self.configured = configured
        self.default = default
        self.calls = []

    @property
    def is_configured(self):
        return self.configured

    @property
    def model(self):
        return "fake-model"

    async def complete(self, messages, max_tokens, temperature=None):
        if not self.configured:
            raise LLMNotConfiguredError("No AI provider configured")
        self.calls.append({"messages": messages, "max_tokens": max_tokens})
        if not self.replies:
            return self.default
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(messages)
        return reply


class FakeRetriever:
    """Returns fixed chunks (or raises) and records every search."""

    def __init__(self, chunks=None, error=None):
        self.chunks = list(chunks or [])
        self.error = error
        self.calls = []

    async def search(self, query, folder_ids=None, top_k=5):
        self.calls.append({"query": query, "folder_ids": folder_ids, "top_k": top_k})
        if self.error is not None:
            raise self.error
        return list(self.chunks[:top_k])


def make_chunks(count):
    return [
        RetrievedChunk(
            id=f"chunk-{i}",
            source_file=f"doc{i}.pdf",
            content=f"Document {i} says the refund window is {i * 10} days.",
            relevance_score=0.9 - i * 0.1,
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def chunks():
    return make_chunks(3)


@pytest.fixture
def memory_store():
    """PipelineStore over a private in-memory SQLite database."""
    engine = make_engine("sqlite://")
    init_db(engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    store = PipelineStore(session_factory)
    yield store
    engine.dispose()


@pytest.fixture
def failing_retriever():
    return FakeRetriever(error=RetrievalError("service down"))
