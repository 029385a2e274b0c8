"""ReAct Agent for Agentic RAG

Runs the Reasoning-and-Acting loop: the model alternates THOUGHT and
ACTION/INPUT steps, tool observations are appended to the working context,
and the loop ends on ANSWER. When the step budget runs out a wrap-up call
answers from everything gathered so far.
"""

import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional

from ..agent_config import AgentConfig, AwarenessSettings
from ..llm import LLMError
from ..prompts import (
    WRAP_UP_SYSTEM_SUFFIX,
    WRAP_UP_USER_PROMPT,
    DEFAULT_REACT_PERSONA,
    build_persona,
    build_react_system_prompt,
    format_context_for_prompt,
    format_recent_messages,
)
from ..state import (
    AgentMemoryItem,
    AgentToolSpec,
    Citation,
    ReActResult,
    ReasoningStep,
    RetrievedChunk,
    StepType,
)
from ..tools.executors import ToolExecutors

logger = logging.getLogger(__name__)

NOT_CONFIGURED_ANSWER = "AI service is not configured."
NO_RESPONSE_ANSWER = "Unable to generate response."
WRAP_UP_FAILED_ANSWER = (
    "I gathered some information but couldn't formulate a complete answer. "
    "Please try rephrasing your question."
)

MAX_OBSERVATION_CHARS = 2000
MAX_WRAP_UP_CONTEXT_CHARS = 10000

THOUGHT_PATTERN = re.compile(r"THOUGHT:\s*([\s\S]*?)(?=ACTION:|ANSWER:|\Z)", re.IGNORECASE)
ACTION_PATTERN = re.compile(r"ACTION:\s*(\w+)", re.IGNORECASE)
INPUT_PATTERN = re.compile(r"INPUT:\s*([\s\S]*?)(?=THOUGHT:|ACTION:|ANSWER:|\Z)", re.IGNORECASE)

# Called with (step_number, step) for every recorded step
StepSink = Callable[[int, ReasoningStep], None]


def parse_tool_input(raw: Optional[str], query: str) -> Dict[str, Any]:
    """
    Parse the text after INPUT:.

    JSON objects are used as-is; bare text becomes {"query": text}.
    """
    input_str = (raw or "").strip() or "{}"
    if not input_str.startswith("{"):
        return {"query": input_str}
    try:
        parsed = json.loads(input_str)
    except ValueError:
        return {"query": (raw or "").strip() or query}
    return parsed if isinstance(parsed, dict) else {}


def format_observation(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, indent=2, default=str)[:MAX_OBSERVATION_CHARS]


class ReActAgent:
    """
    Reasoning loop over the built-in tools.

    The final answer is never empty: a terminal ANSWER, unformatted text,
    the wrap-up reply, or a fixed fallback.
    """

    def __init__(
        self,
        llm_client,
        tools: ToolExecutors,
        step_max_tokens: int = 1500,
        wrap_up_max_tokens: int = 2000
    ):
        """
        Initialize the ReAct agent.

        Args:
            llm_client: ChatCompletionClient instance
            tools: ToolExecutors used to dispatch ACTION steps
            step_max_tokens: Maximum tokens per reasoning step
            wrap_up_max_tokens: Maximum tokens for the wrap-up answer
        """
        self.llm_client = llm_client
        self.tools = tools
        self.step_max_tokens = step_max_tokens
        self.wrap_up_max_tokens = wrap_up_max_tokens

    async def run(
        self,
        query: str,
        tools: List[AgentToolSpec],
        folder_ids: Optional[List[str]] = None,
        agent_config: Optional[AgentConfig] = None,
        history: Optional[List[Dict[str, str]]] = None,
        memory: Optional[List[AgentMemoryItem]] = None,
        awareness: Optional[AwarenessSettings] = None,
        max_steps: int = 5,
        step_sink: Optional[StepSink] = None
    ) -> ReActResult:
        """
        Answer a query with the ReAct loop.

        Args:
            query: The user's question
            tools: Tools advertised in the system prompt
            folder_ids: Folder scope for knowledge searches
            agent_config: Persona, role and response rules
            history: Prior conversation messages (current question excluded)
            memory: User memory items shown to the model
            awareness: Awareness settings folded into the system prompt
            max_steps: Maximum loop iterations
            step_sink: Receives every recorded step for logging

        Returns:
            ReActResult with steps, final answer, chunks and citations
        """
        if not self.llm_client.is_configured:
            return ReActResult(steps=[], final_answer=NOT_CONFIGURED_ANSWER, chunks=[], citations=[])

        history = history or []
        steps: List[ReasoningStep] = []
        chunks: List[RetrievedChunk] = []
        citations: List[Citation] = []

        def record(step_number: int, step: ReasoningStep) -> None:
            steps.append(step)
            if step_sink is None:
                return
            try:
                step_sink(step_number, step)
            except Exception as e:
                logger.warning(f"Reasoning step sink error: {e}")

        system_prompt = build_react_system_prompt(agent_config, tools, memory or [], awareness, max_steps)

        context = f"Question: {query}"
        if history:
            recent = format_recent_messages(history, count=4, max_chars=200)
            context = f"Recent conversation:\n{recent}\n\nCurrent question: {query}"

        for step_index in range(max_steps):
            step_number = step_index + 1
            step_start = time.time()

            try:
                output = await self.llm_client.complete(
                    [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": context},
                    ],
                    max_tokens=self.step_max_tokens
                )
            except LLMError as e:
                logger.error(f"ReAct step {step_number} error: {e}")
                break

            latency = int((time.time() - step_start) * 1000)

            if not output.strip():
                logger.warning(f"ReAct step {step_number} returned no content")
                continue

            if "ANSWER:" in output:
                answer = output.split("ANSWER:", 1)[1].strip() or output
                record(step_number, ReasoningStep(StepType.ANSWER, answer, latency_ms=latency))
                return ReActResult(steps=steps, final_answer=answer, chunks=chunks, citations=citations)

            thought_match = THOUGHT_PATTERN.search(output)
            thought = thought_match.group(1).strip() if thought_match else None
            if thought_match:
                record(step_number, ReasoningStep(StepType.THOUGHT, thought, latency_ms=latency))

            action_match = ACTION_PATTERN.search(output)
            if action_match:
                tool_name = action_match.group(1).lower()
                input_match = INPUT_PATTERN.search(output)
                tool_input = parse_tool_input(input_match.group(1) if input_match else None, query)

                record(step_number, ReasoningStep(
                    StepType.ACTION,
                    f"Executing {tool_name}",
                    tool_name=tool_name,
                    tool_input=tool_input,
                    latency_ms=latency
                ))

                tool_start = time.time()
                outcome = await self.tools.dispatch(tool_name, tool_input, query, chunks, folder_ids)
                tool_latency = int((time.time() - tool_start) * 1000)

                chunks.extend(outcome.new_chunks)
                citations.extend(Citation.from_chunk(c) for c in outcome.new_chunks)

                observation = format_observation(outcome.output)
                record(step_number, ReasoningStep(
                    StepType.OBSERVATION,
                    observation,
                    tool_name=tool_name,
                    tool_output=outcome.output,
                    latency_ms=tool_latency
                ))

                context += (
                    f"\n\nTHOUGHT: {thought or 'Gathering information'}"
                    f"\nACTION: {tool_name}"
                    f"\nOBSERVATION: {observation}"
                    "\n\nContinue reasoning:"
                )
            elif not thought_match:
                # Unformatted reply is taken as the answer
                record(step_number, ReasoningStep(StepType.ANSWER, output, latency_ms=latency))
                return ReActResult(steps=steps, final_answer=output, chunks=chunks, citations=citations)

        logger.info(f"ReAct loop ended without answer after {len(steps)} steps, wrapping up")
        answer = await self._wrap_up(query, agent_config, chunks)
        if answer is None:
            return ReActResult(steps=steps, final_answer=WRAP_UP_FAILED_ANSWER, chunks=chunks, citations=citations)

        record(max_steps + 1, ReasoningStep(StepType.ANSWER, answer))
        return ReActResult(steps=steps, final_answer=answer, chunks=chunks, citations=citations)

    async def _wrap_up(
        self,
        query: str,
        agent_config: Optional[AgentConfig],
        chunks: List[RetrievedChunk]
    ) -> Optional[str]:
        """Answer from all gathered chunks; None when the call fails."""
        persona = build_persona(agent_config, DEFAULT_REACT_PERSONA)
        context = format_context_for_prompt(chunks)[:MAX_WRAP_UP_CONTEXT_CHARS]
        try:
            reply = await self.llm_client.complete(
                [
                    {"role": "system", "content": persona + WRAP_UP_SYSTEM_SUFFIX},
                    {"role": "user", "content": WRAP_UP_USER_PROMPT.format(query=query, context=context)},
                ],
                max_tokens=self.wrap_up_max_tokens
            )
        except LLMError as e:
            logger.error(f"Final answer generation error: {e}")
            return None
        return reply.strip() or NO_RESPONSE_ANSWER
