"""Standard Retrieval Responder for Agentic RAG

Single-pass RAG: one knowledge search, one completion over the retrieved
context, citations parsed from the [Source N] markers in the answer.
"""

import logging
import re
from typing import Dict, List, Optional

from ..agent_config import AgentConfig, AwarenessSettings
from ..llm import LLMError
from ..prompts import build_standard_system_prompt, format_context_for_prompt
from ..state import Citation, RetrievedChunk, StandardResult
from ..tools.executors import ToolExecutors

logger = logging.getLogger(__name__)

NOT_CONFIGURED_RESPONSE = (
    "AI service is not configured. Please set AI_GATEWAY_API_KEY, OPENAI_API_KEY, or GROQ_API_KEY."
)
UPSTREAM_ERROR_RESPONSE = "I encountered an error while reaching the AI service. Please try again later."

SOURCE_MARKER = re.compile(r"\[Source (\d+)\]")


def extract_citations(response: str, chunks: List[RetrievedChunk]) -> List[Citation]:
    """
    Map [Source N] markers to the retrieved chunks.

    N is 1-indexed; out-of-range markers are ignored and each chunk is
    cited at most once, in order of first mention.
    """
    citations = []
    seen = set()
    for match in SOURCE_MARKER.finditer(response or ""):
        index = int(match.group(1)) - 1
        if 0 <= index < len(chunks) and index not in seen:
            seen.add(index)
            citations.append(Citation.from_chunk(chunks[index]))
    return citations


class StandardResponder:
    """Answers simpler queries without the reasoning loop. Never raises."""

    def __init__(self, llm_client, tools: ToolExecutors, max_tokens: int = 2000, history_messages: int = 6):
        self.llm_client = llm_client
        self.tools = tools
        self.max_tokens = max_tokens
        self.history_messages = history_messages

    async def respond(
        self,
        query: str,
        messages: List[Dict[str, str]],
        folder_ids: Optional[List[str]] = None,
        agent_config: Optional[AgentConfig] = None,
        awareness: Optional[AwarenessSettings] = None,
        template: Optional[str] = None
    ) -> StandardResult:
        """
        Retrieve and answer in one pass.

        Args:
            query: The user's question
            messages: Full conversation, current question included; the last six are sent
            folder_ids: Folder scope for the knowledge search
            agent_config: Persona, role and response rules
            awareness: Awareness settings folded into the system prompt
            template: Response template to follow
        """
        chunks = await self.tools.knowledge_search(query, folder_ids, top_k=5)
        system_prompt = build_standard_system_prompt(
            agent_config, awareness, template, format_context_for_prompt(chunks)
        )

        if not self.llm_client.is_configured:
            logger.error("No AI provider API key found")
            return StandardResult(NOT_CONFIGURED_RESPONSE, chunks, [], system_prompt)

        chat = [{"role": m["role"], "content": m["content"]} for m in messages[-self.history_messages:]]
        try:
            response = await self.llm_client.complete(
                [{"role": "system", "content": system_prompt}] + chat,
                max_tokens=self.max_tokens
            )
        except LLMError as e:
            logger.error(f"AI service error: {e}")
            return StandardResult(UPSTREAM_ERROR_RESPONSE, chunks, [], system_prompt)

        return StandardResult(response, chunks, extract_citations(response, chunks), system_prompt)
