"""Memory Agent for Agentic RAG

Reads durable user facts before a turn and learns new ones after it.
Extraction runs detached from the response, so every failure here is
logged and swallowed.
"""

import logging
from typing import List, Optional

from ..llm import LLMError, extract_json_object
from ..prompts import MEMORY_EXTRACTION_SYSTEM_PROMPT, MEMORY_EXTRACTION_USER_PROMPT
from ..state import AgentMemoryItem

logger = logging.getLogger(__name__)

MAX_EXCHANGE_CHARS = 500


class MemoryAgent:
    """
    Adapter between the pipeline and the agent memory table.

    Responsibilities:
    - Retrieve the most important memory items for a user (and agent)
    - Extract learnable facts from a finished exchange and upsert them
    """

    def __init__(self, llm_client, store, max_tokens: int = 300, retrieve_limit: int = 10):
        self.llm_client = llm_client
        self.store = store
        self.max_tokens = max_tokens
        self.retrieve_limit = retrieve_limit

    async def retrieve(self, user_id: str, agent_id: Optional[str] = None) -> List[AgentMemoryItem]:
        """Top memory items by importance then recency; [] on failure."""
        try:
            return await self.store.retrieve_memory(user_id, agent_id, limit=self.retrieve_limit)
        except Exception as e:
            logger.error(f"Memory retrieval error: {e}")
            return []

    async def extract_and_store(
        self,
        query: str,
        response: str,
        user_id: str,
        agent_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        conversation_id: Optional[str] = None
    ) -> int:
        """
        Extract facts about the user from one exchange and upsert them.

        Returns:
            Number of memory items written
        """
        if not self.llm_client.is_configured:
            return 0

        try:
            reply = await self.llm_client.complete(
                [
                    {"role": "system", "content": MEMORY_EXTRACTION_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": MEMORY_EXTRACTION_USER_PROMPT.format(
                            query=query[:MAX_EXCHANGE_CHARS],
                            response=response[:MAX_EXCHANGE_CHARS]
                        ),
                    },
                ],
                max_tokens=self.max_tokens
            )
            data = extract_json_object(reply)
        except LLMError as e:
            logger.error(f"Memory extraction error: {e}")
            return 0
        except ValueError as e:
            logger.warning(f"Memory extraction JSON parse error: {e}")
            return 0

        memories = data.get("memories")
        if not isinstance(memories, list):
            return 0

        stored = 0
        for memory in memories:
            if not isinstance(memory, dict) or not memory.get("key") or not memory.get("value"):
                continue
            await self.store.upsert_memory(
                user_id=user_id,
                agent_id=agent_id,
                workspace_id=workspace_id,
                memory_type=memory.get("type") or "fact",
                memory_key=str(memory["key"]),
                memory_value=memory["value"],
                conversation_id=conversation_id
            )
            stored += 1

        if stored:
            logger.info(f"Stored {stored} memory items", extra={"event": "memory_extracted"})
        return stored
