"""Pipeline Persistence Facade

Every pipeline read and write goes through PipelineStore. Each operation
opens its own session and closes it in ``finally``, on a worker thread so
blocking database I/O never stalls the event loop. Persistence is
best-effort: failures are logged and replaced with an empty result, so a
broken store never fails a chat turn.
"""

import asyncio
import logging
import threading
from contextlib import nullcontext
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.pool import StaticPool

from ..database import (
    SessionLocal,
    AIProfileCRUD,
    AgentToolCRUD,
    QueryComplexityCRUD,
    AgentMemoryCRUD,
    ReasoningLogCRUD,
    StrategyMetricCRUD,
    CitationCRUD,
    SelfEvaluationCRUD,
    ExperienceArchiveCRUD,
)
from .state import AgentMemoryItem, AgentToolSpec, Citation

logger = logging.getLogger(__name__)

MAX_LOGGED_CONTENT = 5000


def _shares_one_connection(session_factory: Callable) -> bool:
    bind = getattr(session_factory, "kw", {}).get("bind")
    return isinstance(getattr(bind, "pool", None), StaticPool)


class PipelineStore:
    """Database-backed store for pipeline state and telemetry."""

    def __init__(self, session_factory: Callable = SessionLocal):
        self.session_factory = session_factory
        # A StaticPool engine hands every thread the same connection
        self._lock = threading.Lock() if _shares_one_connection(session_factory) else nullcontext()

    def _run_sync(self, label: str, operation: Callable, default: Any = None) -> Any:
        with self._lock:
            try:
                db = self.session_factory()
            except Exception as e:
                logger.error(f"{label} error: {e}")
                return default
            try:
                return operation(db)
            except Exception as e:
                logger.error(f"{label} error: {e}")
                try:
                    db.rollback()
                except Exception as rollback_error:
                    logger.debug(f"{label} rollback failed: {rollback_error}")
                return default
            finally:
                db.close()

    async def _run(self, label: str, operation: Callable, default: Any = None) -> Any:
        return await asyncio.to_thread(self._run_sync, label, operation, default)

    # ========================================================================
    # Complexity cache
    # ========================================================================

    async def get_cached_complexity(self, query_hash: str) -> Optional[Dict[str, Any]]:
        def _get(db):
            record = QueryComplexityCRUD.get_by_hash(db, query_hash)
            if record is None:
                return None
            return {
                "complexity": record.complexity,
                "recommended_strategy": record.recommended_strategy,
            }
        return await self._run("Complexity cache lookup", _get)

    async def cache_complexity(
        self,
        query_hash: str,
        original_query: str,
        complexity: str,
        strategy: str,
        analysis_details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> None:
        await self._run("Complexity cache write", lambda db: QueryComplexityCRUD.create(
            db,
            query_hash=query_hash,
            original_query=original_query,
            complexity=complexity,
            recommended_strategy=strategy,
            analysis_details=analysis_details,
            user_id=user_id
        ))

    # ========================================================================
    # Agent profile and tools
    # ========================================================================

    async def get_agent_profile(self, agent_id: str) -> Optional[Dict[str, Any]]:
        def _get(db):
            profile = AIProfileCRUD.get_by_id(db, agent_id)
            if profile is None:
                return None
            return {
                "memory_settings": profile.memory_settings,
                "awareness_settings": profile.awareness_settings,
            }
        return await self._run("Agent profile lookup", _get)

    async def list_active_tools(self, workspace_id: Optional[str] = None) -> List[AgentToolSpec]:
        def _list(db):
            return [
                AgentToolSpec(
                    name=tool.name,
                    description=tool.description,
                    display_name=tool.display_name,
                    tool_type=tool.tool_type or "builtin",
                    config=tool.config or {},
                )
                for tool in AgentToolCRUD.list_active(db, workspace_id)
            ]
        return await self._run("Tool listing", _list, default=[])

    # ========================================================================
    # Agent memory
    # ========================================================================

    async def retrieve_memory(
        self,
        user_id: str,
        agent_id: Optional[str] = None,
        limit: int = 10
    ) -> List[AgentMemoryItem]:
        def _retrieve(db):
            rows = AgentMemoryCRUD.list_for_user(db, user_id, agent_id, limit=limit)
            items = [
                AgentMemoryItem(
                    memory_type=row.memory_type or "fact",
                    memory_key=row.memory_key,
                    memory_value=row.memory_value,
                    agent_id=row.agent_id,
                    confidence=row.confidence if row.confidence is not None else 0.7,
                    importance=row.importance if row.importance is not None else 0.5,
                )
                for row in rows
            ]
            AgentMemoryCRUD.touch(db, [row.id for row in rows])
            return items
        return await self._run("Memory retrieval", _retrieve, default=[])

    async def upsert_memory(
        self,
        user_id: str,
        agent_id: Optional[str],
        workspace_id: Optional[str],
        memory_type: str,
        memory_key: str,
        memory_value: Any,
        conversation_id: Optional[str] = None
    ) -> None:
        await self._run("Memory update", lambda db: AgentMemoryCRUD.upsert(
            db,
            user_id=user_id,
            agent_id=agent_id,
            workspace_id=workspace_id,
            memory_type=memory_type,
            memory_key=memory_key,
            memory_value=memory_value,
            source_conversation_id=conversation_id,
            confidence=0.7,
            importance=0.5
        ))

    # ========================================================================
    # Telemetry
    # ========================================================================

    async def log_reasoning_step(
        self,
        conversation_id: Optional[str],
        step_number: int,
        step_type: str,
        content: str,
        tool_name: Optional[str] = None,
        tool_input: Optional[Dict[str, Any]] = None,
        tool_output: Any = None,
        latency_ms: Optional[int] = None
    ) -> None:
        if isinstance(tool_output, str):
            tool_output = {"result": tool_output}
        await self._run("Reasoning log", lambda db: ReasoningLogCRUD.create(
            db,
            conversation_id=conversation_id,
            message_id=None,
            step_number=step_number,
            step_type=step_type,
            content=(content or "")[:MAX_LOGGED_CONTENT],
            tool_name=tool_name,
            tool_input=tool_input,
            tool_output=tool_output,
            confidence=None,
            latency_ms=latency_ms
        ))

    async def record_strategy_metric(
        self,
        workspace_id: Optional[str],
        strategy: str,
        complexity: str,
        success: bool,
        latency_ms: float,
        confidence: float
    ) -> None:
        await self._run("Metrics update", lambda db: StrategyMetricCRUD.record(
            db, workspace_id, strategy, complexity, success, latency_ms, confidence
        ))

    async def save_citations(self, conversation_id: str, citations: List[Citation]) -> None:
        if not citations:
            return
        await self._run("Citations log", lambda db: CitationCRUD.create_many(
            db, conversation_id, [c.to_dict() for c in citations]
        ))

    async def log_self_evaluation(self, **fields) -> None:
        await self._run("Self evaluation log", lambda db: SelfEvaluationCRUD.create(db, **fields))

    async def archive_experience(self, **fields) -> None:
        await self._run("Experience archive", lambda db: ExperienceArchiveCRUD.create(db, **fields))
