"""Agentic RAG Module

Answers one chat turn for a configured AI agent. Simple queries get a
single retrieval pass; complex queries run the ReAct reasoning loop.
Every draft is validated against the agent's response rules and reworked
when it falls short.

Pipeline Overview:
    Query → [Classifier] → complex?   → [ReAct Agent] ─┐
                        → otherwise? → [Standard RAG] ─┤
                                                        ↓
                            [Validator] → failing? → [Rework Agent]
                                                        ↓
                            [Hallucination Checker] → Response
"""

from .state import QueryComplexity, RetrievalStrategy, ChatResult
from .classifier import ComplexityClassifier
from .pipeline import AgenticRAGPipeline, create_agentic_pipeline

__all__ = [
    "QueryComplexity",
    "RetrievalStrategy",
    "ChatResult",
    "ComplexityClassifier",
    "AgenticRAGPipeline",
    "create_agentic_pipeline",
]
