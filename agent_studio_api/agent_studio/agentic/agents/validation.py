"""Hallucination Checker for Agentic RAG

Compares the final answer against the retrieved sources and reports
claims the sources do not support. Advisory only: the response is never
blocked or modified.
"""

import logging
from typing import Any, Dict, List

from ..llm import LLMError, extract_json_object
from ..prompts import HALLUCINATION_SYSTEM_PROMPT, HALLUCINATION_USER_PROMPT
from ..state import HallucinationResult, RetrievedChunk

logger = logging.getLogger(__name__)

MAX_CHECKED_CHUNKS = 5
MAX_CONTEXT_CHARS = 4000


class HallucinationChecker:
    """
    Detects unsupported claims with one LLM call.

    When the check cannot run the result keeps ``checked=False`` so callers
    can tell "no hallucination found" from "not verified".
    """

    def __init__(self, llm_client, max_tokens: int = 600):
        self.llm_client = llm_client
        self.max_tokens = max_tokens

    async def check(self, response: str, chunks: List[RetrievedChunk], query: str) -> HallucinationResult:
        """
        Verify a response against its sources.

        Args:
            response: Final answer text
            chunks: Retrieved chunks the answer was based on
            query: The user's question

        Returns:
            HallucinationResult
        """
        if not self.llm_client.is_configured:
            return HallucinationResult()

        context = "\n\n".join(c.content for c in chunks[:MAX_CHECKED_CHUNKS])
        try:
            reply = await self.llm_client.complete(
                [
                    {"role": "system", "content": HALLUCINATION_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": HALLUCINATION_USER_PROMPT.format(
                            query=query,
                            context=context[:MAX_CONTEXT_CHARS],
                            response=response
                        ),
                    },
                ],
                max_tokens=self.max_tokens
            )
            data = extract_json_object(reply)
        except LLMError as e:
            logger.error(f"Hallucination detection error: {e}")
            return HallucinationResult()
        except ValueError as e:
            logger.warning(f"Hallucination detection JSON parse error: {e}")
            return HallucinationResult()

        result = HallucinationResult(
            detected=data.get("hallucination_detected") is True,
            details=self._parse_claims(data.get("unsupported_claims")),
            confidence=self._parse_confidence(data.get("confidence")),
            checked=True,
        )
        if result.detected:
            logger.info(f"Hallucination detected: {len(result.details)} issues")
        return result

    def _parse_claims(self, claims: Any) -> List[Dict[str, Any]]:
        if not isinstance(claims, list):
            return []
        return [c for c in claims if isinstance(c, dict)]

    def _parse_confidence(self, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
            return 0.5
        return max(0.0, min(1.0, float(value)))
