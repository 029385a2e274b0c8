"""Pydantic Models for Agent Studio RAG API

Defines request/response models for the agentic RAG chat endpoint.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any, Literal


MAX_MESSAGES = 100
MAX_MESSAGE_CHARS = 50000


# ============================================================================
# REQUEST MODELS
# ============================================================================

class ChatMessage(BaseModel):
    """One conversation message."""
    role: Literal["user", "assistant", "system"] = Field(..., description="Message author")
    content: str = Field(..., description="Message text", min_length=1, max_length=MAX_MESSAGE_CHARS)


class ReworkSettings(BaseModel):
    """Self-correction policy for responses failing validation."""
    enabled: bool = Field(default=True, description="Allow rework of failing responses")
    max_retries: int = Field(default=2, description="Maximum correction attempts")
    minimum_score_threshold: int = Field(default=70, description="Score needed to pass validation")
    auto_correct: bool = Field(default=True, description="Run rework automatically")


class RAGChatRequest(BaseModel):
    """Request model for /api/rag-chat."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "messages": [{"role": "user", "content": "What does our refund policy say about damaged goods?"}],
                "agentConfig": {
                    "agent_id": "support-agent",
                    "persona": "You are a customer support specialist.",
                    "response_rules": {"step_by_step": True, "cite_if_possible": True},
                },
                "folder_ids": ["policies"],
                "workspace_id": "ws-1",
                "enable_agentic": True,
                "max_reasoning_steps": 5,
            }
        }
    )

    messages: List[ChatMessage] = Field(
        ..., description="Conversation, last message is the question",
        min_length=1, max_length=MAX_MESSAGES
    )
    agent_config: Optional[Dict[str, Any]] = Field(
        default=None, alias="agentConfig", description="Agent persona, rules and settings"
    )
    conversation_id: Optional[str] = Field(default=None, description="Conversation for citation and step logs")
    folder_ids: Optional[List[str]] = Field(default=None, description="Restrict retrieval to these folders")
    workspace_id: Optional[str] = Field(default=None, description="Workspace scope for tools and metrics")
    user_id: Optional[str] = Field(default=None, description="Superseded by the authenticated identity")
    enable_agentic: bool = Field(default=True, description="Allow the ReAct reasoning loop")
    enable_memory: bool = Field(default=True, description="Read and learn user memory")
    enable_hallucination_check: bool = Field(default=True, description="Verify the answer against sources")
    enable_adaptive_strategy: bool = Field(default=True, description="Classify query complexity")
    max_reasoning_steps: int = Field(default=5, description="ReAct step budget, clamped server side")
    rework_settings: Optional[ReworkSettings] = Field(default=None, description="Self-correction policy")
    custom_response_template: Optional[str] = Field(default=None, description="Template overriding the agent's")


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class CitationModel(BaseModel):
    """Pointer from the answer to a retrieved chunk."""
    chunk_id: str
    source_file: str
    citation_text: str
    confidence_score: float


class ValidationIssueModel(BaseModel):
    type: str
    severity: str
    message: str


class ValidationModel(BaseModel):
    """Compliance score of the returned answer."""
    score: int
    structure_score: float
    rules_score: int
    passed: bool
    issues: List[ValidationIssueModel] = []
    rework_attempts: int = 0


class ChatMetadata(BaseModel):
    """How the answer was produced."""
    strategy_used: str
    query_complexity: str
    chunks_used: int
    reasoning_steps: int
    hallucination_detected: bool
    hallucination_count: int
    hallucination_checked: bool
    memory_items_used: int
    total_latency_ms: int
    rework_enabled: bool
    rework_threshold: int


class ReasoningTraceItem(BaseModel):
    type: str
    content: str
    tool: Optional[str] = None


class RAGChatResponse(BaseModel):
    """Response model for /api/rag-chat."""
    success: bool = Field(..., description="Whether the turn completed")
    response: str = Field(..., description="Final answer")
    citations: List[CitationModel] = Field(default=[], description="Sources cited by the answer")
    confidence: float = Field(..., description="Answer confidence (0-1)")
    validation: ValidationModel = Field(..., description="Compliance validation")
    metadata: ChatMetadata = Field(..., description="Pipeline metadata")
    reasoning_trace: List[ReasoningTraceItem] = Field(default=[], description="ReAct steps (truncated)")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(default=None, description="Detailed error information")
    success: bool = Field(default=False)


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    llm_provider: Optional[str] = Field(default=None, description="Resolved chat completion provider")
    llm_configured: bool = Field(..., description="Whether an LLM credential is available")
    retrieval_backend: str = Field(..., description="Retrieval backend in use")
    agentic_enabled: bool = Field(..., description="Whether the agentic pipeline is enabled")
