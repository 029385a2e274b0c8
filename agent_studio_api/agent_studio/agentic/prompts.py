"""Prompt Templates for Agentic RAG Pipeline

Contains the prompt templates used by the pipeline stages:
- Complexity Classifier: strategy selection
- Tools: summarize and compare
- ReAct Agent: reasoning/tool-use loop and wrap-up
- Standard Responder: single-pass answer with response rules
- Rework Agent: correction instructions
- Hallucination Checker and memory extraction

Awareness directives are an ordered list of optional fragments; each is
appended to the system prompt when its setting is on.
"""

import json
from typing import Callable, List, Optional, Tuple

from .agent_config import AgentConfig, AwarenessSettings, ResponseRules


# =============================================================================
# COMPLEXITY CLASSIFIER PROMPTS
# =============================================================================

CLASSIFIER_SYSTEM_PROMPT = """You are a query complexity analyzer. Classify queries to determine the best retrieval strategy.

Respond with JSON:
{
  "complexity": "simple|moderate|complex|conversational",
  "strategy": "direct_answer|simple_lookup|standard_rag|multi_hop|agentic_full",
  "reasoning": "brief explanation",
  "indicators": {
    "requires_synthesis": true/false,
    "multi_document": true/false,
    "temporal_reasoning": true/false,
    "comparison_needed": true/false,
    "follow_up_question": true/false
  }
}

Classification guide:
- SIMPLE: Direct factual question, single document likely sufficient
- MODERATE: Needs multiple sources or some synthesis
- COMPLEX: Research-level, requires analysis, comparison, or multi-step reasoning
- CONVERSATIONAL: Follow-up question using context from conversation"""

CLASSIFIER_USER_PROMPT = """Query: "{query}"
Conversation length: {history_length} messages
Last 2 messages context: {recent}"""


# =============================================================================
# TOOL PROMPTS
# =============================================================================

SUMMARIZE_SYSTEM_PROMPT = (
    "Summarize the following content concisely in {max_length} characters or less. "
    "Preserve key facts and insights."
)

COMPARE_SYSTEM_PROMPT = (
    "You are a document comparison expert. Compare the provided documents and "
    "highlight similarities, differences, and key insights."
)

COMPARE_USER_PROMPT = "Compare these documents{focus}:\n\n{documents}"


# =============================================================================
# REACT AGENT PROMPTS
# =============================================================================

DEFAULT_REACT_PERSONA = "You are an intelligent AI agent with access to tools."

REACT_SYSTEM_PROMPT = """{persona}

You use the ReAct (Reasoning and Acting) pattern to answer questions thoroughly.

## Available Tools
{tool_descriptions}

## ReAct Format
For each step, respond with ONE of these formats:

THOUGHT: [Your reasoning about what to do next]
ACTION: [tool_name]
INPUT: [JSON input for the tool]

OR when you have enough information:

ANSWER: [Your final comprehensive answer]

## Rules
1. Always start with a THOUGHT about what information you need
2. Use tools to gather information before answering
3. After each tool result (OBSERVATION), think about what you learned
4. Cite sources using [Source N] format when using retrieved information
5. Maximum {max_steps} reasoning steps before you must provide an answer
6. If uncertain, acknowledge limitations honestly
{memory_context}{rules_section}{awareness}"""

WRAP_UP_SYSTEM_SUFFIX = (
    "\n\nProvide a comprehensive answer based on the gathered information. "
    "Use [Source N] format to cite sources."
)

WRAP_UP_USER_PROMPT = """Question: {query}

Gathered Information:
{context}

Provide a complete answer with citations."""


# =============================================================================
# STANDARD RESPONDER PROMPTS
# =============================================================================

DEFAULT_ASSISTANT_PERSONA = "You are a helpful AI assistant."

STANDARD_CONTEXT_SECTION = """

Use the provided context to answer questions.

=== CONTEXT ===
{context}
=== END CONTEXT ==="""


# =============================================================================
# REWORK PROMPTS
# =============================================================================

REWORK_SYSTEM_SUFFIX = (
    "\n\nIMPORTANT: You are correcting a previous response that didn't meet quality standards."
)

REWORK_RULE_REQUIREMENTS = [
    ("step_by_step", "- Use numbered steps or bullet points for clarity"),
    ("cite_if_possible", "- Include [Source N] citations for key facts"),
    ("include_confidence_scores", '- Add a confidence percentage (e.g., "Confidence: 85%")'),
    ("use_bullet_points", "- Use bullet points for key information"),
    ("summarize_at_end", "- End with a brief summary section"),
]


# =============================================================================
# HALLUCINATION CHECKER PROMPTS
# =============================================================================

HALLUCINATION_SYSTEM_PROMPT = """You are a hallucination detector. Analyze if the response contains claims not supported by the provided sources.

Respond with JSON:
{
  "hallucination_detected": true/false,
  "unsupported_claims": [{"claim": "specific claim text", "issue": "why unsupported"}],
  "supported_claims_count": number,
  "confidence": 0.0-1.0
}"""

HALLUCINATION_USER_PROMPT = """Query: "{query}"

Source Documents:
{context}

Response to Verify:
{response}

Check each factual claim in the response against the sources."""


# =============================================================================
# MEMORY EXTRACTION PROMPTS
# =============================================================================

MEMORY_EXTRACTION_SYSTEM_PROMPT = """Extract any learnable facts about the user from this conversation exchange.

Respond with JSON:
{
  "memories": [
    {
      "type": "preference|fact|topic_interest|communication_style",
      "key": "short_identifier",
      "value": "the learned information"
    }
  ]
}

Only extract clear, useful information. Return empty array if nothing notable."""

MEMORY_EXTRACTION_USER_PROMPT = """User asked: "{query}"
Assistant responded: "{response}\""""


# =============================================================================
# AWARENESS DIRECTIVES
# =============================================================================

def _self_role(a: AwarenessSettings) -> str:
    return (
        "\n\n## SELF-ROLE AWARENESS\n"
        f"Your role boundaries: {a.role_boundaries}\n"
        "If a request falls outside your area of expertise or defined boundaries, clearly state: "
        "\"This falls outside my area of expertise.\" and suggest what kind of specialist should be consulted."
    )


def _state_awareness(a: AwarenessSettings) -> str:
    return (
        "\n\n## STATE AWARENESS\n"
        "You are context-aware. Before responding, consider the current state of the conversation "
        "and project. Adjust your response detail and urgency accordingly. "
        f"Context source: {a.state_context_source}."
    )


def _proactive_reasoning(a: AwarenessSettings) -> str:
    return (
        "\n\n## PROACTIVE REASONING (Chain of Verification)\n"
        "Before providing your answer, internally verify:\n"
        "1. Does this response align with the user's stated goal?\n"
        "2. Have I stayed within my role boundaries?\n"
        "3. Is my confidence level sufficient to provide this answer?\n"
        "4. Are there any gaps or assumptions I should flag?"
    )


def _advanced_autonomy(a: AwarenessSettings) -> str:
    return (
        "\n\n## ADVANCED AUTONOMY\n"
        f"You are operating at high awareness level ({a.awareness_level}/5). You should:\n"
        "- Proactively identify gaps in the user's request\n"
        "- Suggest improvements and alternatives\n"
        "- Flag potential issues before they arise\n"
        "- Provide meta-commentary on your reasoning process"
    )


AWARENESS_FRAGMENTS: List[Tuple[Callable[[AwarenessSettings], bool], Callable[[AwarenessSettings], str]]] = [
    (lambda a: a.self_role_enabled and bool(a.role_boundaries), _self_role),
    (lambda a: a.state_awareness_enabled, _state_awareness),
    (lambda a: a.proactive_reasoning, _proactive_reasoning),
    (lambda a: a.awareness_level >= 4, _advanced_autonomy),
]


def build_awareness_directives(awareness: Optional[AwarenessSettings]) -> str:
    """Concatenate the enabled awareness fragments in order."""
    if awareness is None:
        return ""
    return "".join(build(awareness) for enabled, build in AWARENESS_FRAGMENTS if enabled(awareness))


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def build_persona(agent_config: Optional[AgentConfig], default: str) -> str:
    """Persona line plus optional role description."""
    persona = default
    if agent_config and agent_config.persona:
        persona = agent_config.persona
    if agent_config and agent_config.role_description:
        persona += f"\nRole: {agent_config.role_description}"
    return persona


def format_context_for_prompt(chunks: list) -> str:
    """Format retrieved chunks as numbered sources."""
    return "\n\n---\n\n".join(
        f"[Source {i}: {chunk.source_file}]\n{chunk.content}"
        for i, chunk in enumerate(chunks, 1)
    )


def format_memory_context(memory: list) -> str:
    """User memory block for the ReAct system prompt."""
    if not memory:
        return ""
    lines = "\n".join(
        f"- {m.memory_type}: {m.memory_key} = {json.dumps(m.memory_value, default=str)}"
        for m in memory
    )
    return f"\n\nUser Memory (what you know about this user):\n{lines}"


def format_recent_messages(messages: list, count: int, max_chars: int, separator: str = "\n") -> str:
    """``role: content`` lines for the trailing ``count`` messages."""
    return separator.join(
        f"{m['role']}: {(m.get('content') or '')[:max_chars]}" for m in messages[-count:]
    )


def build_react_rules_section(rules: Optional[ResponseRules]) -> str:
    """Numbered response rules appended to the ReAct system prompt."""
    if rules is None:
        return ""
    items = []
    if rules.step_by_step:
        items.append("Use step-by-step reasoning in your final answer")
    if rules.cite_if_possible:
        items.append("Cite sources using [Source N] format when using retrieved information")
    if rules.refuse_if_uncertain:
        items.append("Acknowledge limitations honestly when uncertain")
    if not items:
        return ""
    numbered = "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1))
    return f"\n\n## Response Rules\n{numbered}"


def build_response_rules_section(rules: Optional[ResponseRules]) -> str:
    """RESPONSE RULES block of the standard responder prompt."""
    if rules is None:
        return ""
    section = "\n\n## RESPONSE RULES"
    if rules.step_by_step:
        section += "\n- Use step-by-step reasoning: Break down complex answers into clear, numbered steps"
    if rules.cite_if_possible:
        section += "\n- Cite sources: Reference specific documents or knowledge using [Source N] format"
    else:
        section += "\n- You may cite sources using [Source N] format when relevant"
    if rules.refuse_if_uncertain:
        section += (
            "\n- Refuse if uncertain: Acknowledge when you don't have enough information "
            "rather than guessing"
        )
    if rules.include_confidence_scores:
        section += (
            "\n- Include confidence score: Add a confidence percentage "
            "(e.g., \"Confidence: 85%\") at the end of your response"
        )
    if rules.use_bullet_points:
        section += "\n- Use bullet points: Format key information as bullet points for easy scanning"
    if rules.summarize_at_end:
        section += "\n- Summarize at end: Include a brief summary section at the end of your response"
    return section


def build_standard_system_prompt(
    agent_config: Optional[AgentConfig],
    awareness: Optional[AwarenessSettings],
    template: Optional[str],
    context: str
) -> str:
    """Assemble the single-pass responder system prompt."""
    prompt = build_persona(agent_config, DEFAULT_ASSISTANT_PERSONA)
    prompt += build_response_rules_section(agent_config.response_rules if agent_config else None)
    if template:
        prompt += (
            "\n\n## RESPONSE TEMPLATE\n"
            f"Structure your response following this template:\n{template}"
        )
    prompt += build_awareness_directives(awareness)
    prompt += STANDARD_CONTEXT_SECTION.format(context=context)
    return prompt


def build_react_system_prompt(
    agent_config: Optional[AgentConfig],
    tools: list,
    memory: list,
    awareness: Optional[AwarenessSettings],
    max_steps: int
) -> str:
    """Assemble the ReAct system prompt."""
    return REACT_SYSTEM_PROMPT.format(
        persona=build_persona(agent_config, DEFAULT_REACT_PERSONA),
        tool_descriptions="\n".join(f"- {t.name}: {t.description}" for t in tools),
        max_steps=max_steps,
        memory_context=format_memory_context(memory),
        rules_section=build_react_rules_section(agent_config.response_rules if agent_config else None),
        awareness=build_awareness_directives(awareness),
    )


def build_correction_instructions(
    score,
    rules: Optional[ResponseRules],
    template: Optional[str],
    current_response: str
) -> str:
    """Correction prompt listing unmet issues and the rules to satisfy."""
    issues_list = "\n".join(f"- {issue.message}" for issue in score.issues)
    numbered = "\n".join(f"{i}. {issue.message}" for i, issue in enumerate(score.issues, 1))
    structure = f"Follow this exact structure:\n{template}" if template else ""
    enabled = set(rules.enabled()) if rules else set()
    requirements = "\n".join(
        text if rule in enabled else "" for rule, text in REWORK_RULE_REQUIREMENTS
    )
    return f"""
Your previous response scored {score.overall_score}/100 on template compliance.

Issues found:
{issues_list}

Please revise your response to fix these issues:
{numbered}

{structure}

Requirements:
{requirements}

Original response to improve:
{current_response}
"""
