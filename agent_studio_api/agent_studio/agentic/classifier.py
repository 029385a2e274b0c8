"""Query Complexity Classifier for Agentic RAG

Picks a retrieval strategy for each query. Classifications are cached by a
hash of the normalized query text, so a repeated question skips the LLM.

Complexity Levels:
    - Simple: Direct factual question → simple_lookup
    - Moderate: Multiple sources or some synthesis → standard_rag
    - Complex: Analysis, comparison, multi-step reasoning → agentic_full
    - Conversational: Follow-up relying on recent turns
"""

import hashlib
import logging
from typing import Any, Dict, List, Optional

from .llm import LLMError, extract_json_object
from .prompts import CLASSIFIER_SYSTEM_PROMPT, CLASSIFIER_USER_PROMPT, format_recent_messages
from .state import ClassificationResult, QueryComplexity, RetrievalStrategy

logger = logging.getLogger(__name__)

MAX_CACHED_QUERY_CHARS = 500


def hash_query(query: str) -> str:
    """SHA-256 hex digest of the case-folded, trimmed query."""
    return hashlib.sha256(query.lower().strip().encode("utf-8")).hexdigest()


def default_classification(reasoning: str = "Default classification") -> ClassificationResult:
    return ClassificationResult(
        complexity=QueryComplexity.MODERATE,
        strategy=RetrievalStrategy.STANDARD_RAG.value,
        reasoning=reasoning,
        cached=False,
    )


class ComplexityClassifier:
    """
    Classifies query complexity with one LLM call.

    Never raises: cache errors degrade to a miss and LLM or parse
    failures fall back to ``moderate`` / ``standard_rag``.
    """

    def __init__(self, llm_client, store=None, max_tokens: int = 300):
        """
        Initialize the classifier.

        Args:
            llm_client: ChatCompletionClient instance
            store: PipelineStore used for the complexity cache (optional)
            max_tokens: Maximum response tokens
        """
        self.llm_client = llm_client
        self.store = store
        self.max_tokens = max_tokens

    async def classify(
        self,
        query: str,
        history: List[Dict[str, str]],
        user_id: Optional[str] = None
    ) -> ClassificationResult:
        """
        Classify a query.

        Args:
            query: The user's question
            history: Conversation messages ({"role", "content"})
            user_id: Caller, recorded on cache rows

        Returns:
            ClassificationResult with complexity and recommended strategy
        """
        query_hash = hash_query(query)

        cached = await self._lookup(query_hash)
        if cached:
            logger.info(f"Using cached complexity: {cached['complexity']}")
            return ClassificationResult(
                complexity=QueryComplexity.parse(cached["complexity"]),
                strategy=cached.get("recommended_strategy") or RetrievalStrategy.STANDARD_RAG.value,
                reasoning="Cached classification",
                cached=True,
            )

        if not self.llm_client.is_configured:
            return default_classification()

        user_prompt = CLASSIFIER_USER_PROMPT.format(
            query=query,
            history_length=len(history),
            recent=format_recent_messages(history, count=2, max_chars=100, separator=" | "),
        )

        try:
            reply = await self.llm_client.complete(
                [
                    {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self.max_tokens
            )
            data = extract_json_object(reply)
        except LLMError as e:
            logger.error(f"Complexity classification error: {e}")
            return default_classification()
        except ValueError as e:
            logger.warning(f"Complexity classification parse error: {e}")
            return default_classification()

        result = self._parse_classification(data)
        logger.info(
            f"Query classified: {result.complexity.value} → {result.strategy}",
            extra={"event": "query_classified", "complexity": result.complexity.value}
        )

        if self.store is not None:
            await self.store.cache_complexity(
                query_hash=query_hash,
                original_query=query[:MAX_CACHED_QUERY_CHARS],
                complexity=result.complexity.value,
                strategy=result.strategy,
                analysis_details=data.get("indicators") if isinstance(data.get("indicators"), dict) else None,
                user_id=user_id
            )

        return result

    async def _lookup(self, query_hash: str) -> Optional[Dict[str, Any]]:
        if self.store is None:
            return None
        try:
            return await self.store.get_cached_complexity(query_hash)
        except Exception as e:
            logger.warning(f"Complexity cache unavailable: {e}")
            return None

    def _parse_classification(self, data: Dict[str, Any]) -> ClassificationResult:
        strategy = data.get("strategy")
        if not isinstance(strategy, str) or not strategy.strip():
            strategy = RetrievalStrategy.STANDARD_RAG.value
        reasoning = data.get("reasoning")
        return ClassificationResult(
            complexity=QueryComplexity.parse(data.get("complexity")),
            strategy=strategy.strip(),
            reasoning=reasoning if isinstance(reasoning, str) else "",
            cached=False,
        )


def create_classifier(llm_client, store=None, config: Optional[dict] = None) -> ComplexityClassifier:
    """
    Factory function to create a complexity classifier.

    Args:
        llm_client: ChatCompletionClient instance
        store: PipelineStore (optional)
        config: Optional configuration dict

    Returns:
        Configured ComplexityClassifier
    """
    config = config or {}
    return ComplexityClassifier(
        llm_client=llm_client,
        store=store,
        max_tokens=config.get("classifier_max_tokens", 300)
    )
