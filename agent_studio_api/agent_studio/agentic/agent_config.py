"""Agent Configuration for Agentic RAG

Typed views over the loosely structured agent configuration that arrives with
each chat request (persona, response rules, memory and awareness settings).
Every field has a documented fallback; unknown keys are ignored.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    return default


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any, default: Optional[str]) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return default


@dataclass
class ResponseRules:
    """Formatting rules the agent must follow.

    A rule only counts as enabled when it is literally ``True``.
    """
    step_by_step: bool = False
    cite_if_possible: bool = False
    refuse_if_uncertain: bool = False
    include_confidence_scores: bool = False
    use_bullet_points: bool = False
    summarize_at_end: bool = False
    custom_response_template: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ResponseRules":
        data = data or {}
        return cls(
            step_by_step=data.get("step_by_step") is True,
            cite_if_possible=data.get("cite_if_possible") is True,
            refuse_if_uncertain=data.get("refuse_if_uncertain") is True,
            include_confidence_scores=data.get("include_confidence_scores") is True,
            use_bullet_points=data.get("use_bullet_points") is True,
            summarize_at_end=data.get("summarize_at_end") is True,
            custom_response_template=_as_str(data.get("custom_response_template"), None),
        )

    def enabled(self) -> List[str]:
        """Names of the enabled boolean rules, in declaration order."""
        return [
            f.name for f in fields(self)
            if f.name != "custom_response_template" and getattr(self, f.name)
        ]


@dataclass
class MemorySettings:
    """Short and long term memory behaviour of an agent."""
    short_term_enabled: bool = True
    context_window_size: int = 10
    long_term_enabled: bool = False
    retention_policy: str = "keep_successful"  # "keep_all", "keep_successful", "keep_none"
    learn_preferences: bool = True

    def merged(self, overrides: Optional[Dict[str, Any]]) -> "MemorySettings":
        """Return a copy with stored profile values applied over these ones."""
        if not isinstance(overrides, dict):
            return self
        return MemorySettings(
            short_term_enabled=_as_bool(overrides.get("short_term_enabled"), self.short_term_enabled),
            context_window_size=max(1, _as_int(overrides.get("context_window_size"), self.context_window_size)),
            long_term_enabled=_as_bool(overrides.get("long_term_enabled"), self.long_term_enabled),
            retention_policy=_as_str(overrides.get("retention_policy"), self.retention_policy),
            learn_preferences=_as_bool(overrides.get("learn_preferences"), self.learn_preferences),
        )

    def window_size(self) -> int:
        """Number of trailing messages kept in the context window.

        Each exchange is two messages, so the configured size is doubled.
        """
        if self.short_term_enabled:
            return self.context_window_size * 2
        return 6


@dataclass
class AwarenessSettings:
    """Self-awareness directives folded into the system prompt."""
    awareness_level: int = 2
    self_role_enabled: bool = False
    role_boundaries: Optional[str] = None
    state_awareness_enabled: bool = False
    state_context_source: str = "project_status"
    proactive_reasoning: bool = False
    feedback_learning: bool = False

    def merged(self, overrides: Optional[Dict[str, Any]]) -> "AwarenessSettings":
        if not isinstance(overrides, dict):
            return self
        return AwarenessSettings(
            awareness_level=_as_int(overrides.get("awareness_level"), self.awareness_level),
            self_role_enabled=_as_bool(overrides.get("self_role_enabled"), self.self_role_enabled),
            role_boundaries=_as_str(overrides.get("role_boundaries"), self.role_boundaries),
            state_awareness_enabled=_as_bool(
                overrides.get("state_awareness_enabled"), self.state_awareness_enabled
            ),
            state_context_source=_as_str(overrides.get("state_context_source"), self.state_context_source),
            proactive_reasoning=_as_bool(overrides.get("proactive_reasoning"), self.proactive_reasoning),
            feedback_learning=_as_bool(overrides.get("feedback_learning"), self.feedback_learning),
        )


@dataclass
class ReworkPolicy:
    """Self-correction policy for responses failing validation."""
    enabled: bool = True
    max_retries: int = 2
    minimum_score_threshold: int = 70
    auto_correct: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ReworkPolicy":
        if not isinstance(data, dict):
            return cls()
        return cls(
            enabled=_as_bool(data.get("enabled"), True),
            max_retries=max(0, _as_int(data.get("max_retries"), 2)),
            minimum_score_threshold=min(100, max(0, _as_int(data.get("minimum_score_threshold"), 70))),
            auto_correct=_as_bool(data.get("auto_correct"), True),
        )


@dataclass
class AgentConfig:
    """Read-only configuration of the agent answering a chat turn."""
    agent_id: Optional[str] = None
    persona: Optional[str] = None
    role_description: Optional[str] = None
    intro_sentence: Optional[str] = None
    response_rules: Optional[ResponseRules] = None
    rag_policy: Dict[str, Any] = field(default_factory=dict)
    memory_settings: MemorySettings = field(default_factory=MemorySettings)
    awareness_settings: AwarenessSettings = field(default_factory=AwarenessSettings)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AgentConfig":
        """Build from request JSON. ``response_rules`` stays None when absent."""
        data = data or {}
        raw_rules = data.get("response_rules")
        rag_policy = data.get("rag_policy")
        return cls(
            agent_id=_as_str(data.get("agent_id"), None),
            persona=_as_str(data.get("persona"), None),
            role_description=_as_str(data.get("role_description"), None),
            intro_sentence=_as_str(data.get("intro_sentence"), None),
            response_rules=ResponseRules.from_dict(raw_rules) if isinstance(raw_rules, dict) else None,
            rag_policy=rag_policy if isinstance(rag_policy, dict) else {},
            memory_settings=MemorySettings().merged(data.get("memory_settings")),
            awareness_settings=AwarenessSettings().merged(data.get("awareness_settings")),
        )

    def template(self, override: Optional[str] = None) -> Optional[str]:
        """Request-level template wins over the one stored in the rules."""
        if override:
            return override
        if self.response_rules:
            return self.response_rules.custom_response_template
        return None
