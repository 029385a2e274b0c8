"""Database Models and Setup for Agent Studio RAG

SQLAlchemy models for users, agent profiles, tools, memory and pipeline
telemetry (reasoning logs, citations, self-evaluations, strategy metrics).
Uses SQLite for development, can be switched to PostgreSQL for production.
"""

import os
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    create_engine, Column, Integer, String, DateTime, Boolean, Float, Text, JSON,
    UniqueConstraint
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Database URL - defaults to SQLite, can be overridden with DATABASE_URL env var
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./agent_studio.db")


def make_engine(url: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False
            )
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    return create_engine(url, echo=False)


# Create engine
engine = make_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


# ============================================================================
# DATABASE MODELS
# ============================================================================

class User(Base):
    """User account model."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"


class AIProfile(Base):
    """Stored agent profile holding memory and awareness settings."""
    __tablename__ = "ai_profiles"

    id = Column(String(64), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    workspace_id = Column(String(64), nullable=True, index=True)
    memory_settings = Column(JSON, nullable=True)
    awareness_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<AIProfile(id={self.id}, name={self.name})>"


class AgentTool(Base):
    """Tool advertised to the reasoning agent."""
    __tablename__ = "agent_tools"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    display_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=False)
    tool_type = Column(String(50), default="builtin")
    config = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True)
    workspace_id = Column(String(64), nullable=True, index=True)  # Null = global tool
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<AgentTool(id={self.id}, name={self.name})>"


class QueryComplexityCache(Base):
    """Write-once cache of query complexity classifications."""
    __tablename__ = "query_complexity_cache"

    id = Column(Integer, primary_key=True, index=True)
    query_hash = Column(String(64), unique=True, index=True, nullable=False)
    original_query = Column(String(500), nullable=False)
    complexity = Column(String(32), nullable=False)
    recommended_strategy = Column(String(64), nullable=False)
    analysis_details = Column(JSON, nullable=True)
    user_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AgentMemory(Base):
    """Durable fact learned about a user."""
    __tablename__ = "agent_memory"
    __table_args__ = (
        UniqueConstraint("user_id", "agent_id", "memory_key", name="uq_agent_memory_key"),
    )

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), index=True, nullable=False)
    agent_id = Column(String(64), nullable=True, index=True)
    workspace_id = Column(String(64), nullable=True)
    memory_type = Column(String(50), default="fact")
    memory_key = Column(String(255), nullable=False)
    memory_value = Column(JSON, nullable=True)
    confidence = Column(Float, default=0.7)
    importance = Column(Float, default=0.5)
    source_conversation_id = Column(String(64), nullable=True)
    last_accessed = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<AgentMemory(user_id={self.user_id}, key={self.memory_key})>"


class AgentReasoningLog(Base):
    """One persisted reasoning step."""
    __tablename__ = "agent_reasoning_logs"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(String(64), nullable=True, index=True)
    message_id = Column(String(64), nullable=True)
    step_number = Column(Integer, nullable=False)
    step_type = Column(String(32), nullable=False)
    content = Column(Text, nullable=False)
    tool_name = Column(String(100), nullable=True)
    tool_input = Column(JSON, nullable=True)
    tool_output = Column(JSON, nullable=True)
    confidence = Column(Float, nullable=True)
    latency_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class RAGStrategyMetric(Base):
    """Running per-strategy statistics."""
    __tablename__ = "rag_strategy_metrics"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String(64), nullable=True, index=True)
    strategy_name = Column(String(64), nullable=False)
    query_complexity = Column(String(32), nullable=False)
    total_queries = Column(Integer, default=0)
    success_count = Column(Integer, default=0)
    failure_count = Column(Integer, default=0)
    avg_latency_ms = Column(Float, default=0.0)
    avg_confidence = Column(Float, default=0.0)
    last_used = Column(DateTime, default=datetime.utcnow)


class RAGCitation(Base):
    """Citation persisted for a conversation."""
    __tablename__ = "rag_citations"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(String(64), nullable=False, index=True)
    chunk_id = Column(String(255), nullable=False)
    citation_text = Column(Text, nullable=True)
    source_file = Column(String(500), nullable=True)
    confidence_score = Column(Float, nullable=True)
    verified = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class RAGSelfEvaluation(Base):
    """Self-evaluation record of one answered turn."""
    __tablename__ = "rag_self_evaluation"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(String(64), nullable=True, index=True)
    query = Column(Text, nullable=False)
    initial_response = Column(Text, nullable=True)
    retrieval_decision = Column(String(32), nullable=True)
    relevance_check = Column(JSON, nullable=True)
    support_check = Column(JSON, nullable=True)
    utility_check = Column(JSON, nullable=True)
    hallucination_detected = Column(Boolean, default=False)
    hallucination_details = Column(JSON, nullable=True)
    final_response = Column(Text, nullable=True)
    refinement_iterations = Column(Integer, default=0)
    confidence_score = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AgentExperienceArchive(Base):
    """Archived successful experience for long-term memory."""
    __tablename__ = "agent_experience_archive"

    id = Column(Integer, primary_key=True, index=True)
    agent_id = Column(String(64), nullable=False, index=True)
    workspace_id = Column(String(64), nullable=False)
    task_summary = Column(Text, nullable=False)
    context_type = Column(String(32), nullable=False)
    success_score = Column(Float, nullable=True)
    learned_patterns = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ============================================================================
# DATABASE UTILITIES
# ============================================================================

def init_db(bind=None):
    """Initialize database tables."""
    bind = bind or engine
    logger.info(f"Initializing database: {bind.url}")
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables created successfully")


def get_db() -> Session:
    """Get database session (dependency for FastAPI)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_db_session() -> Session:
    """Get database session (for non-async contexts)."""
    return SessionLocal()


# ============================================================================
# CRUD OPERATIONS
# ============================================================================

class UserCRUD:
    """CRUD operations for User model."""

    @staticmethod
    def create(db: Session, email: str, name: Optional[str] = None) -> User:
        """Create a new user."""
        user = User(email=email, name=name)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID."""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email."""
        return db.query(User).filter(User.email == email).first()


class AIProfileCRUD:
    """CRUD operations for AIProfile model."""

    @staticmethod
    def create(db: Session, name: str, profile_id: Optional[str] = None, **settings) -> AIProfile:
        """Create an agent profile."""
        profile = AIProfile(id=profile_id or _uuid(), name=name, **settings)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    @staticmethod
    def get_by_id(db: Session, profile_id: str) -> Optional[AIProfile]:
        """Get agent profile by ID."""
        return db.query(AIProfile).filter(AIProfile.id == profile_id).first()


class AgentToolCRUD:
    """CRUD operations for AgentTool model."""

    @staticmethod
    def create(db: Session, name: str, description: str, **fields) -> AgentTool:
        """Create a tool definition."""
        tool = AgentTool(name=name, description=description, **fields)
        db.add(tool)
        db.commit()
        db.refresh(tool)
        return tool

    @staticmethod
    def get_by_name(db: Session, name: str, workspace_id: Optional[str] = None) -> Optional[AgentTool]:
        """Get a tool by name within a workspace (or the global scope)."""
        query = db.query(AgentTool).filter(AgentTool.name == name)
        if workspace_id:
            query = query.filter(AgentTool.workspace_id == workspace_id)
        else:
            query = query.filter(AgentTool.workspace_id.is_(None))
        return query.first()

    @staticmethod
    def list_active(db: Session, workspace_id: Optional[str] = None) -> List[AgentTool]:
        """Active tools visible to a workspace: global ones plus its own."""
        query = db.query(AgentTool).filter(AgentTool.is_active.is_(True))
        if workspace_id:
            query = query.filter(
                (AgentTool.workspace_id.is_(None)) | (AgentTool.workspace_id == workspace_id)
            )
        else:
            query = query.filter(AgentTool.workspace_id.is_(None))
        return query.order_by(AgentTool.id).all()


class QueryComplexityCRUD:
    """CRUD operations for QueryComplexityCache model."""

    @staticmethod
    def get_by_hash(db: Session, query_hash: str) -> Optional[QueryComplexityCache]:
        return db.query(QueryComplexityCache).filter(
            QueryComplexityCache.query_hash == query_hash
        ).first()

    @staticmethod
    def create(db: Session, query_hash: str, original_query: str, complexity: str,
               recommended_strategy: str, analysis_details: Optional[Dict[str, Any]] = None,
               user_id: Optional[str] = None) -> QueryComplexityCache:
        record = QueryComplexityCache(
            query_hash=query_hash,
            original_query=original_query[:500],
            complexity=complexity,
            recommended_strategy=recommended_strategy,
            analysis_details=analysis_details or {},
            user_id=user_id
        )
        db.add(record)
        db.commit()
        return record


class AgentMemoryCRUD:
    """CRUD operations for AgentMemory model."""

    @staticmethod
    def _scope(query, user_id: str, agent_id: Optional[str]):
        query = query.filter(AgentMemory.user_id == user_id)
        if agent_id:
            query = query.filter(AgentMemory.agent_id == agent_id)
        return query

    @staticmethod
    def list_for_user(db: Session, user_id: str, agent_id: Optional[str] = None,
                      limit: int = 10) -> List[AgentMemory]:
        """Most important, most recently accessed memories first."""
        query = AgentMemoryCRUD._scope(db.query(AgentMemory), user_id, agent_id)
        return query.order_by(
            AgentMemory.importance.desc(),
            AgentMemory.last_accessed.desc()
        ).limit(limit).all()

    @staticmethod
    def touch(db: Session, memory_ids: List[str]):
        """Update access timestamps."""
        if not memory_ids:
            return
        db.query(AgentMemory).filter(AgentMemory.id.in_(memory_ids)).update(
            {AgentMemory.last_accessed: datetime.utcnow()},
            synchronize_session=False
        )
        db.commit()

    @staticmethod
    def upsert(db: Session, user_id: str, agent_id: Optional[str], memory_key: str,
               memory_value: Any, memory_type: str = "fact", workspace_id: Optional[str] = None,
               source_conversation_id: Optional[str] = None,
               confidence: float = 0.7, importance: float = 0.5) -> AgentMemory:
        """Insert or update the memory identified by (user, agent, key)."""
        query = db.query(AgentMemory).filter(
            AgentMemory.user_id == user_id,
            AgentMemory.memory_key == memory_key
        )
        if agent_id is None:
            query = query.filter(AgentMemory.agent_id.is_(None))
        else:
            query = query.filter(AgentMemory.agent_id == agent_id)

        memory = query.first()
        if memory is None:
            memory = AgentMemory(user_id=user_id, agent_id=agent_id, memory_key=memory_key)
            db.add(memory)

        memory.workspace_id = workspace_id
        memory.memory_type = memory_type
        memory.memory_value = memory_value
        memory.source_conversation_id = source_conversation_id
        memory.confidence = confidence
        memory.importance = importance
        db.commit()
        return memory


class ReasoningLogCRUD:
    """CRUD operations for AgentReasoningLog model."""

    @staticmethod
    def create(db: Session, **fields) -> AgentReasoningLog:
        log = AgentReasoningLog(**fields)
        db.add(log)
        db.commit()
        return log

    @staticmethod
    def list_for_conversation(db: Session, conversation_id: str) -> List[AgentReasoningLog]:
        return db.query(AgentReasoningLog).filter(
            AgentReasoningLog.conversation_id == conversation_id
        ).order_by(AgentReasoningLog.id).all()


class StrategyMetricCRUD:
    """CRUD operations for RAGStrategyMetric model."""

    @staticmethod
    def get(db: Session, workspace_id: Optional[str], strategy_name: str,
            query_complexity: str) -> Optional[RAGStrategyMetric]:
        query = db.query(RAGStrategyMetric).filter(
            RAGStrategyMetric.strategy_name == strategy_name,
            RAGStrategyMetric.query_complexity == query_complexity
        )
        if workspace_id is None:
            query = query.filter(RAGStrategyMetric.workspace_id.is_(None))
        else:
            query = query.filter(RAGStrategyMetric.workspace_id == workspace_id)
        return query.first()

    @staticmethod
    def record(db: Session, workspace_id: Optional[str], strategy_name: str,
               query_complexity: str, success: bool, latency_ms: float,
               confidence: float) -> RAGStrategyMetric:
        """Fold one observation into the running averages."""
        metric = StrategyMetricCRUD.get(db, workspace_id, strategy_name, query_complexity)
        if metric is None:
            metric = RAGStrategyMetric(
                workspace_id=workspace_id,
                strategy_name=strategy_name,
                query_complexity=query_complexity,
                total_queries=1,
                success_count=1 if success else 0,
                failure_count=0 if success else 1,
                avg_latency_ms=latency_ms,
                avg_confidence=confidence
            )
            db.add(metric)
        else:
            previous = metric.total_queries or 0
            total = previous + 1
            metric.avg_latency_ms = ((metric.avg_latency_ms or 0) * previous + latency_ms) / total
            metric.avg_confidence = ((metric.avg_confidence or 0) * previous + confidence) / total
            metric.total_queries = total
            metric.success_count = (metric.success_count or 0) + (1 if success else 0)
            metric.failure_count = (metric.failure_count or 0) + (0 if success else 1)
            metric.last_used = datetime.utcnow()
        db.commit()
        return metric


class CitationCRUD:
    """CRUD operations for RAGCitation model."""

    @staticmethod
    def create_many(db: Session, conversation_id: str, citations: List[Dict[str, Any]]):
        for citation in citations:
            db.add(RAGCitation(
                conversation_id=conversation_id,
                chunk_id=citation["chunk_id"],
                citation_text=citation.get("citation_text"),
                source_file=citation.get("source_file"),
                confidence_score=citation.get("confidence_score"),
                verified=False
            ))
        db.commit()

    @staticmethod
    def list_for_conversation(db: Session, conversation_id: str) -> List[RAGCitation]:
        return db.query(RAGCitation).filter(RAGCitation.conversation_id == conversation_id).all()


class SelfEvaluationCRUD:
    """CRUD operations for RAGSelfEvaluation model."""

    @staticmethod
    def create(db: Session, **fields) -> RAGSelfEvaluation:
        record = RAGSelfEvaluation(**fields)
        db.add(record)
        db.commit()
        return record


class ExperienceArchiveCRUD:
    """CRUD operations for AgentExperienceArchive model."""

    @staticmethod
    def create(db: Session, **fields) -> AgentExperienceArchive:
        record = AgentExperienceArchive(**fields)
        db.add(record)
        db.commit()
        return record
