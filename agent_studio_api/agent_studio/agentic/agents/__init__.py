"""Agentic RAG Agents

Individual agents for the agentic RAG pipeline:
- MemoryAgent: User memory retrieval and extraction
- ReActAgent: Reasoning and tool-use loop
- StandardResponder: Single-pass retrieval answer
- ReworkAgent: Self-correction of failing drafts
- HallucinationChecker: Unsupported claim detection
"""

from .memory import MemoryAgent
from .react import ReActAgent
from .standard import StandardResponder
from .rework import ReworkAgent
from .validation import HallucinationChecker

__all__ = [
    "MemoryAgent",
    "ReActAgent",
    "StandardResponder",
    "ReworkAgent",
    "HallucinationChecker",
]
