"""State Definitions for Agentic RAG Pipeline

Defines the records passed between the pipeline stages: retrieved chunks,
citations, reasoning steps, validation scores and the per-stage results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class QueryComplexity(str, Enum):
    """Query complexity tiers."""
    SIMPLE = "simple"                  # Direct lookup
    MODERATE = "moderate"              # Standard single-pass retrieval
    COMPLEX = "complex"                # Full ReAct loop
    CONVERSATIONAL = "conversational"  # Follow-up, relies on recent turns

    @classmethod
    def parse(cls, value: Any) -> "QueryComplexity":
        """Map a loosely typed value to a tier, defaulting to MODERATE."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MODERATE


class RetrievalStrategy(str, Enum):
    """Strategies the classifier may recommend."""
    DIRECT_ANSWER = "direct_answer"
    SIMPLE_LOOKUP = "simple_lookup"
    STANDARD_RAG = "standard_rag"
    MULTI_HOP = "multi_hop"
    AGENTIC_FULL = "agentic_full"


class StepType(str, Enum):
    """Reasoning step variants."""
    THOUGHT = "thought"
    ACTION = "action"
    OBSERVATION = "observation"
    ANSWER = "answer"


@dataclass
class RetrievedChunk:
    """A single chunk returned by the retrieval service."""
    id: str
    source_file: str
    content: str
    relevance_score: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetrievedChunk":
        score = data.get("relevance_score")
        return cls(
            id=str(data.get("id", "")),
            source_file=str(data.get("source_file") or "unknown"),
            content=str(data.get("content") or ""),
            relevance_score=float(score) if isinstance(score, (int, float)) else None,
        )


@dataclass
class Citation:
    """Pointer from a generated answer back to a retrieved chunk."""
    chunk_id: str
    source_file: str
    citation_text: str
    confidence_score: float

    @classmethod
    def from_chunk(cls, chunk: RetrievedChunk) -> "Citation":
        return cls(
            chunk_id=chunk.id,
            source_file=chunk.source_file,
            citation_text=chunk.content[:200],
            confidence_score=chunk.relevance_score or 0.5,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_id": self.chunk_id,
            "source_file": self.source_file,
            "citation_text": self.citation_text,
            "confidence_score": self.confidence_score,
        }


@dataclass
class ReasoningStep:
    """One entry of the ReAct trace."""
    step_type: StepType
    content: str
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None
    tool_output: Any = None
    latency_ms: Optional[int] = None

    def to_trace(self, max_chars: int = 500) -> Dict[str, Any]:
        """Compact form returned to the caller."""
        return {
            "type": self.step_type.value,
            "content": self.content[:max_chars],
            "tool": self.tool_name,
        }


@dataclass
class ValidationIssue:
    """A single compliance finding."""
    type: str       # "rules" or "structure"
    severity: str   # "warning" or "info"
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "severity": self.severity, "message": self.message}


@dataclass
class ValidationScore:
    """Compliance score of one response draft."""
    overall_score: int
    structure_score: float
    rules_score: int
    issues: List[ValidationIssue] = field(default_factory=list)
    passed: bool = True

    @classmethod
    def perfect(cls) -> "ValidationScore":
        return cls(overall_score=100, structure_score=100, rules_score=100, issues=[], passed=True)


@dataclass
class ClassificationResult:
    """Result of query complexity classification."""
    complexity: QueryComplexity
    strategy: str
    reasoning: str
    cached: bool = False


@dataclass
class ReActResult:
    """Output of the reasoning loop."""
    steps: List[ReasoningStep]
    final_answer: str
    chunks: List[RetrievedChunk]
    citations: List[Citation]


@dataclass
class StandardResult:
    """Output of the single-pass responder."""
    response: str
    chunks: List[RetrievedChunk]
    citations: List[Citation]
    system_prompt: str


@dataclass
class ReworkAttempt:
    """Loop state of one rework iteration."""
    attempt_number: int
    response_text: str
    score: ValidationScore


@dataclass
class ReworkResult:
    """Output of the rework loop."""
    response: str
    attempts: int
    final_score: ValidationScore
    history: List[ReworkAttempt] = field(default_factory=list)


@dataclass
class HallucinationResult:
    """Outcome of the side hallucination check."""
    detected: bool = False
    details: List[Dict[str, Any]] = field(default_factory=list)
    confidence: float = 0.5
    checked: bool = False


@dataclass
class AgentMemoryItem:
    """A durable fact about a user."""
    memory_type: str
    memory_key: str
    memory_value: Any
    agent_id: Optional[str] = None
    confidence: float = 0.7
    importance: float = 0.5


@dataclass
class AgentToolSpec:
    """A tool advertised to the ReAct agent."""
    name: str
    description: str
    display_name: Optional[str] = None
    tool_type: str = "builtin"
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatResult:
    """Assembled answer for one chat turn."""
    response: str
    citations: List[Citation]
    confidence: float
    validation: ValidationScore
    rework_attempts: int
    strategy: str
    complexity: QueryComplexity
    chunks_used: int
    reasoning_steps: List[ReasoningStep]
    hallucination: HallucinationResult
    memory_items_used: int
    total_latency_ms: int
    rework_enabled: bool
    rework_threshold: int

    def to_response(self) -> Dict[str, Any]:
        """Serialize into the public response shape."""
        return {
            "success": True,
            "response": self.response,
            "citations": [c.to_dict() for c in self.citations],
            "confidence": self.confidence,
            "validation": {
                "score": self.validation.overall_score,
                "structure_score": self.validation.structure_score,
                "rules_score": self.validation.rules_score,
                "passed": self.validation.passed,
                "issues": [i.to_dict() for i in self.validation.issues],
                "rework_attempts": self.rework_attempts,
            },
            "metadata": {
                "strategy_used": self.strategy,
                "query_complexity": self.complexity.value,
                "chunks_used": self.chunks_used,
                "reasoning_steps": len(self.reasoning_steps),
                "hallucination_detected": self.hallucination.detected,
                "hallucination_count": len(self.hallucination.details),
                "hallucination_checked": self.hallucination.checked,
                "memory_items_used": self.memory_items_used,
                "total_latency_ms": self.total_latency_ms,
                "rework_enabled": self.rework_enabled,
                "rework_threshold": self.rework_threshold,
            },
            "reasoning_trace": [s.to_trace() for s in self.reasoning_steps],
        }
