"""Agent Studio RAG System

Agentic retrieval-augmented chat for configured AI agents: adaptive
strategy selection, a ReAct tool-use loop, response-rule validation with
self-correction, and hallucination checks.
"""

__version__ = "1.0.0"

from .config import load_config, AgentStudioConfig
from .models import (
    ChatMessage,
    ReworkSettings,
    RAGChatRequest,
    RAGChatResponse,
    ErrorResponse,
    HealthResponse
)

__all__ = [
    "load_config",
    "AgentStudioConfig",
    "ChatMessage",
    "ReworkSettings",
    "RAGChatRequest",
    "RAGChatResponse",
    "ErrorResponse",
    "HealthResponse",
]
