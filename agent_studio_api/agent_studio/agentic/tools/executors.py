"""Tool Executors for the ReAct Agent

Each tool degrades to a fixed string or an empty result on failure, so a
misbehaving tool never aborts the reasoning loop.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..llm import LLMError
from ..prompts import SUMMARIZE_SYSTEM_PROMPT, COMPARE_SYSTEM_PROMPT, COMPARE_USER_PROMPT
from ..retrieval import RetrievalError
from ..state import AgentToolSpec, RetrievedChunk
from .calculator import calculate

logger = logging.getLogger(__name__)

INSUFFICIENT_DOCUMENTS = "Insufficient documents for comparison."
COMPARISON_INCOMPLETE = "Comparison could not be completed."
COMPARISON_ERROR = "Comparison error occurred."

MAX_COMPARED_CHUNKS = 5
MAX_COMPARED_CHARS = 800
ANALYZE_TOP_K = 10

# Alternate names the model may use for a tool
TOOL_ALIASES = {
    "summarizer": "summarize",
    "calculator": "calculate",
    "comparator": "compare",
    "analyzer": "analyze",
}

BUILTIN_TOOLS = [
    AgentToolSpec(
        name="knowledge_search",
        display_name="Knowledge Search",
        description='Search the knowledge base for relevant documents. Input: {"query": "...", "top_k": 5}',
    ),
    AgentToolSpec(
        name="summarize",
        display_name="Summarizer",
        description='Summarize content or the documents gathered so far. Input: {"content": "...", "max_length": 500}',
    ),
    AgentToolSpec(
        name="calculate",
        display_name="Calculator",
        description='Evaluate an arithmetic expression (+ - * / % and parentheses). Input: {"expression": "..."}',
    ),
    AgentToolSpec(
        name="compare",
        display_name="Comparator",
        description='Compare the documents gathered so far. Input: {"aspect": "..."}',
    ),
    AgentToolSpec(
        name="analyze",
        display_name="Analyzer",
        description="Gather a wider set of documents for deep analysis of the question. Input: {}",
    ),
]


@dataclass
class ToolOutcome:
    """Result of one tool dispatch."""
    output: Any
    new_chunks: List[RetrievedChunk] = field(default_factory=list)


class ToolExecutors:
    """
    Built-in tool implementations.

    Uses the retrieval collaborator for searches and the chat completion
    client for summarize and compare.
    """

    def __init__(
        self,
        retriever,
        llm_client,
        summarize_max_tokens: int = 400,
        compare_max_tokens: int = 800
    ):
        self.retriever = retriever
        self.llm_client = llm_client
        self.summarize_max_tokens = summarize_max_tokens
        self.compare_max_tokens = compare_max_tokens

    async def knowledge_search(
        self,
        query: str,
        folder_ids: Optional[List[str]] = None,
        top_k: int = 5
    ) -> List[RetrievedChunk]:
        """Search the knowledge base; returns [] on any failure."""
        try:
            return await self.retriever.search(query, folder_ids=folder_ids, top_k=top_k)
        except RetrievalError as e:
            logger.error(f"Knowledge search error: {e}")
        except Exception as e:
            logger.error(f"Knowledge search unexpected error: {e}")
        return []

    async def summarize(self, content: str, max_length: int = 500) -> str:
        if not self.llm_client.is_configured:
            return content[:max_length]
        try:
            reply = await self.llm_client.complete(
                [
                    {"role": "system", "content": SUMMARIZE_SYSTEM_PROMPT.format(max_length=max_length)},
                    {"role": "user", "content": content},
                ],
                max_tokens=self.summarize_max_tokens
            )
        except LLMError as e:
            logger.error(f"Summarize error: {e}")
            return content[:max_length]
        return reply or content[:max_length]

    async def calculate(self, expression: str) -> str:
        return calculate(expression)

    async def compare(self, chunks: List[RetrievedChunk], aspect: Optional[str] = None) -> str:
        """Compare up to five gathered documents, optionally on one aspect."""
        if not self.llm_client.is_configured or len(chunks) < 2:
            return INSUFFICIENT_DOCUMENTS

        documents = "\n\n---\n\n".join(
            f"Document {i} ({c.source_file}):\n{c.content[:MAX_COMPARED_CHARS]}"
            for i, c in enumerate(chunks[:MAX_COMPARED_CHUNKS], 1)
        )
        focus = f" focusing on: {aspect}" if aspect else ""
        try:
            reply = await self.llm_client.complete(
                [
                    {"role": "system", "content": COMPARE_SYSTEM_PROMPT},
                    {"role": "user", "content": COMPARE_USER_PROMPT.format(focus=focus, documents=documents)},
                ],
                max_tokens=self.compare_max_tokens
            )
        except LLMError as e:
            logger.error(f"Compare error: {e}")
            return COMPARISON_ERROR
        return reply or COMPARISON_INCOMPLETE

    async def analyze(
        self,
        query: str,
        chunks: List[RetrievedChunk],
        folder_ids: Optional[List[str]] = None
    ) -> Tuple[List[RetrievedChunk], str]:
        """
        Gather documents for deep analysis.

        Searches with a wider top_k only when nothing was gathered yet.

        Returns:
            Tuple of (newly retrieved chunks, summary text)
        """
        new_chunks: List[RetrievedChunk] = []
        if not chunks:
            new_chunks = await self.knowledge_search(query, folder_ids, top_k=ANALYZE_TOP_K)
        available = chunks or new_chunks
        sources = ", ".join(c.source_file for c in available[:3])
        summary = f"Retrieved {len(available)} documents for deep analysis. Key sources: {sources}"
        return new_chunks, summary

    async def dispatch(
        self,
        tool_name: str,
        tool_input: Dict[str, Any],
        query: str,
        gathered: List[RetrievedChunk],
        folder_ids: Optional[List[str]] = None
    ) -> ToolOutcome:
        """
        Run a tool by name (aliases accepted).

        Args:
            tool_name: Tool requested by the model
            tool_input: Parsed tool input
            query: The user's question, used when the input carries none
            gathered: Chunks gathered so far in this turn
            folder_ids: Folder scope for searches
        """
        name = TOOL_ALIASES.get(tool_name, tool_name)
        tool_query = tool_input.get("query") if isinstance(tool_input.get("query"), str) else query

        if name == "knowledge_search":
            top_k = tool_input.get("top_k")
            if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
                top_k = 5
            chunks = await self.knowledge_search(tool_query, folder_ids, top_k=top_k)
            output = [
                {
                    "index": i,
                    "source": c.source_file,
                    "content": c.content[:500],
                    "relevance": c.relevance_score or 0.5,
                }
                for i, c in enumerate(chunks, 1)
            ]
            return ToolOutcome(output=output, new_chunks=chunks)

        if name == "summarize":
            content = tool_input.get("content")
            if not isinstance(content, str):
                content = "\n\n".join(c.content for c in gathered)
            max_length = tool_input.get("max_length")
            if isinstance(max_length, bool) or not isinstance(max_length, int) or max_length < 1:
                max_length = 500
            return ToolOutcome(output=await self.summarize(content, max_length))

        if name == "calculate":
            expression = tool_input.get("expression")
            if not isinstance(expression, str):
                expression = tool_input.get("query") if isinstance(tool_input.get("query"), str) else ""
            return ToolOutcome(output=await self.calculate(expression))

        if name == "compare":
            aspect = tool_input.get("aspect") if isinstance(tool_input.get("aspect"), str) else None
            return ToolOutcome(output=await self.compare(gathered, aspect))

        if name == "analyze":
            new_chunks, summary = await self.analyze(query, gathered, folder_ids)
            return ToolOutcome(output=summary, new_chunks=new_chunks)

        return ToolOutcome(output=f"Unknown tool: {tool_name}")
