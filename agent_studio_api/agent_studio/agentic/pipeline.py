"""Agentic RAG Pipeline

Main orchestrator for one chat turn. Routes the question by complexity to
the ReAct agent or the single-pass responder, validates and reworks the
draft, checks it for hallucinations and hands the tail work (memory,
archival, telemetry) to background tasks.

Pipeline Flow:
    Request → [Profile settings] → [Context window] → [Classifier]
                                                         ↓
                        complex / agentic_full? → [ReAct Agent]
                                   otherwise    → [Standard Responder]
                                                         ↓
                                   [Validator] → failing? → [Rework Agent]
                                                         ↓
                                   [Hallucination Checker] → Response
                                                         ↓
                   (detached) memory extraction, archival, self-evaluation,
                              citations, strategy metrics
"""

import logging
import time
from typing import Any, Dict, List, Optional

from .agent_config import AgentConfig, ReworkPolicy
from .background import BackgroundTaskSet
from .behavior import analyze_response_behavior
from .classifier import create_classifier, default_classification
from .compliance import validate
from .prompts import DEFAULT_ASSISTANT_PERSONA, build_persona
from .state import (
    ChatResult,
    Citation,
    ClassificationResult,
    HallucinationResult,
    QueryComplexity,
    ReasoningStep,
    RetrievalStrategy,
    StepType,
    ValidationScore,
)
from .store import PipelineStore
from .tools.executors import ToolExecutors, BUILTIN_TOOLS
from .agents.memory import MemoryAgent
from .agents.react import ReActAgent
from .agents.rework import ReworkAgent
from .agents.standard import StandardResponder, extract_citations
from .agents.validation import HallucinationChecker

logger = logging.getLogger(__name__)

ARCHIVE_MIN_RESPONSE_CHARS = 100
ARCHIVE_MIN_CONFIDENCE = 0.6
SUCCESS_MIN_RESPONSE_CHARS = 50


def compute_confidence(citations: List[Citation]) -> float:
    """Heuristic answer confidence from the number of citations."""
    if not citations:
        return 0.4
    return round(min(0.95, 0.5 + 0.1 * len(citations)), 2)


def _context_type(complexity: QueryComplexity) -> str:
    if complexity == QueryComplexity.COMPLEX:
        return "analysis"
    if complexity == QueryComplexity.SIMPLE:
        return "lookup"
    return "synthesis"


class AgenticRAGPipeline:
    """
    Coordinator for the agentic RAG chat turn.

    Only input and auth errors fail a request, and both are handled before
    this class is reached. Every stage here degrades to a documented default.
    """

    def __init__(
        self,
        llm_client,
        retriever,
        store: Optional[PipelineStore] = None,
        background: Optional[BackgroundTaskSet] = None,
        config: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the pipeline.

        Args:
            llm_client: ChatCompletionClient for every LLM call
            retriever: Retrieval collaborator with ``search()``
            store: PipelineStore for caches, memory and telemetry
            background: Task set for detached tail work
            config: Optional configuration dict (see AgenticConfig)
        """
        self.llm = llm_client
        self.store = store or PipelineStore()
        self.background = background or BackgroundTaskSet()
        self.config = config or {}

        self.enabled = self.config.get("enabled", True)
        self.max_reasoning_steps_limit = self.config.get("max_reasoning_steps_limit", 10)
        self.default_rework = self.config.get("default_rework") or {}
        agent_configs = self.config.get("agents", {}) or {}

        tool_config = agent_configs.get("tools", {})
        self.tools = ToolExecutors(
            retriever,
            llm_client,
            summarize_max_tokens=tool_config.get("summarize_max_tokens", 400),
            compare_max_tokens=tool_config.get("compare_max_tokens", 800)
        )
        self.classifier = create_classifier(llm_client, self.store, agent_configs.get("classifier", {}))
        self.memory_agent = MemoryAgent(
            llm_client, self.store,
            max_tokens=agent_configs.get("memory", {}).get("max_tokens", 300)
        )
        react_config = agent_configs.get("react", {})
        self.react_agent = ReActAgent(
            llm_client, self.tools,
            step_max_tokens=react_config.get("step_max_tokens", 1500),
            wrap_up_max_tokens=react_config.get("wrap_up_max_tokens", 2000)
        )
        self.standard_responder = StandardResponder(
            llm_client, self.tools,
            max_tokens=agent_configs.get("standard", {}).get("max_tokens", 2000)
        )
        self.rework_agent = ReworkAgent(
            llm_client,
            max_tokens=agent_configs.get("rework", {}).get("max_tokens", 2500)
        )
        self.hallucination_checker = HallucinationChecker(
            llm_client,
            max_tokens=agent_configs.get("hallucination", {}).get("max_tokens", 600)
        )

    async def run(self, request, user_id: Optional[str] = None) -> ChatResult:
        """
        Answer one chat turn.

        Args:
            request: Validated RAGChatRequest
            user_id: Authenticated caller (wins over ``request.user_id``)

        Returns:
            ChatResult ready for response assembly
        """
        start_time = time.time()

        messages = [{"role": m.role, "content": m.content} for m in request.messages]
        query = messages[-1]["content"]
        effective_user_id = user_id or request.user_id
        logger.info(f"Agentic RAG: \"{query[:50]}...\" | User: {effective_user_id}")

        agent_config = AgentConfig.from_dict(request.agent_config)
        if request.rework_settings is not None:
            rework_policy = ReworkPolicy.from_dict(request.rework_settings.model_dump())
        else:
            rework_policy = ReworkPolicy.from_dict(self.default_rework)
        rework_policy.max_retries = min(rework_policy.max_retries, self.max_reasoning_steps_limit)
        max_steps = max(1, min(request.max_reasoning_steps, self.max_reasoning_steps_limit))

        # Step 1: Stored agent settings
        memory_settings = agent_config.memory_settings
        awareness = agent_config.awareness_settings
        if agent_config.agent_id:
            profile = await self.store.get_agent_profile(agent_config.agent_id)
            if profile:
                memory_settings = memory_settings.merged(profile.get("memory_settings"))
                awareness = awareness.merged(profile.get("awareness_settings"))
            logger.info(
                f"Agent settings loaded - Memory: STM={memory_settings.short_term_enabled}, "
                f"LTM={memory_settings.long_term_enabled} | Awareness: Level={awareness.awareness_level}"
            )

        # Step 2: Context window
        windowed = messages[-memory_settings.window_size():]

        # Step 3: Adaptive strategy
        classification: ClassificationResult = default_classification()
        if request.enable_adaptive_strategy:
            classification = await self.classifier.classify(query, windowed[:-1], effective_user_id)
        complexity = classification.complexity
        strategy = classification.strategy
        logger.info(f"Adaptive Strategy: {complexity.value} -> {strategy}")

        # Step 4: User memory
        memory = []
        if request.enable_memory and effective_user_id:
            memory = await self.memory_agent.retrieve(effective_user_id, agent_config.agent_id)
            logger.info(f"Retrieved {len(memory)} memory items")

        # Step 5: Tools
        tools = await self.store.list_active_tools(request.workspace_id) or BUILTIN_TOOLS

        # Step 6: Answer
        template = agent_config.template(request.custom_response_template)
        steps: List[ReasoningStep] = []
        use_react = self.enabled and request.enable_agentic and (
            strategy == RetrievalStrategy.AGENTIC_FULL.value or complexity == QueryComplexity.COMPLEX
        )

        if use_react:
            logger.info("Using Agentic RAG with ReAct pattern")
            react_result = await self.react_agent.run(
                query,
                tools,
                folder_ids=request.folder_ids,
                agent_config=agent_config,
                history=windowed[:-1],
                memory=memory,
                awareness=awareness,
                max_steps=max_steps,
                step_sink=self._reasoning_sink(request.conversation_id)
            )
            response = react_result.final_answer
            chunks = react_result.chunks
            citations = react_result.citations
            steps = react_result.steps
        else:
            logger.info("Using Standard RAG")
            standard_result = await self.standard_responder.respond(
                query,
                messages,
                folder_ids=request.folder_ids,
                agent_config=agent_config,
                awareness=awareness,
                template=template
            )
            response = standard_result.response
            chunks = standard_result.chunks
            citations = standard_result.citations

        # Step 7: Validation and rework
        validation = ValidationScore.perfect()
        rework_attempts = 0
        if response and agent_config.response_rules is not None:
            validation = validate(
                response,
                agent_config.response_rules,
                template,
                pass_threshold=rework_policy.minimum_score_threshold
            )
            logger.info(f"Initial validation score: {validation.overall_score}")

            if rework_policy.enabled and rework_policy.auto_correct and not validation.passed:
                logger.info(f"Starting re-work loop (threshold: {rework_policy.minimum_score_threshold})")
                rework_result = await self.rework_agent.rework(
                    response,
                    validation,
                    agent_config.response_rules,
                    template,
                    build_persona(agent_config, DEFAULT_ASSISTANT_PERSONA),
                    messages,
                    max_retries=rework_policy.max_retries,
                    pass_threshold=rework_policy.minimum_score_threshold
                )
                if rework_result.response != response and not use_react:
                    citations = extract_citations(rework_result.response, chunks)
                response = rework_result.response
                rework_attempts = rework_result.attempts
                validation = rework_result.final_score
                logger.info(
                    f"Re-work complete after {rework_attempts} attempts. "
                    f"Final score: {validation.overall_score}"
                )

        # Step 8: Hallucination check
        hallucination = HallucinationResult()
        if request.enable_hallucination_check and chunks:
            hallucination = await self.hallucination_checker.check(response, chunks, query)

        confidence = compute_confidence(citations)

        behavior = analyze_response_behavior(response, agent_config.response_rules)
        logger.debug(f"Behavior metrics: {behavior}", extra={"event": "response_behavior"})

        total_latency_ms = int((time.time() - start_time) * 1000)

        # Step 9: Detached tail work
        self._spawn_tail(
            request=request,
            user_id=effective_user_id,
            agent_config=agent_config,
            memory_settings=memory_settings,
            query=query,
            response=response,
            strategy=strategy,
            complexity=complexity,
            citations=citations,
            chunks_used=len(chunks),
            steps=steps,
            hallucination=hallucination,
            confidence=confidence,
            total_latency_ms=total_latency_ms
        )

        logger.info(
            f"Pipeline complete: strategy={strategy}, complexity={complexity.value}, "
            f"time={total_latency_ms}ms",
            extra={"event": "rag_chat_completed", "duration_ms": total_latency_ms}
        )

        return ChatResult(
            response=response,
            citations=citations,
            confidence=confidence,
            validation=validation,
            rework_attempts=rework_attempts,
            strategy=strategy,
            complexity=complexity,
            chunks_used=len(chunks),
            reasoning_steps=steps,
            hallucination=hallucination,
            memory_items_used=len(memory),
            total_latency_ms=total_latency_ms,
            rework_enabled=rework_policy.enabled,
            rework_threshold=rework_policy.minimum_score_threshold
        )

    def _reasoning_sink(self, conversation_id: Optional[str]):
        def sink(step_number: int, step: ReasoningStep) -> None:
            self.background.spawn(
                self.store.log_reasoning_step(
                    conversation_id=conversation_id,
                    step_number=step_number,
                    step_type=step.step_type.value,
                    content=step.content,
                    tool_name=step.tool_name,
                    tool_input=step.tool_input,
                    tool_output=step.tool_output,
                    latency_ms=step.latency_ms
                ),
                name="reasoning_log"
            )
        return sink

    def _spawn_tail(
        self,
        request,
        user_id: Optional[str],
        agent_config: AgentConfig,
        memory_settings,
        query: str,
        response: str,
        strategy: str,
        complexity: QueryComplexity,
        citations: List[Citation],
        chunks_used: int,
        steps: List[ReasoningStep],
        hallucination: HallucinationResult,
        confidence: float,
        total_latency_ms: int
    ) -> None:
        """Schedule persistence and learning without awaiting them."""
        if request.enable_memory and user_id and response:
            self.background.spawn(
                self.memory_agent.extract_and_store(
                    query, response, user_id,
                    agent_id=agent_config.agent_id,
                    workspace_id=request.workspace_id,
                    conversation_id=request.conversation_id
                ),
                name="memory_extraction"
            )

        if (
            memory_settings.long_term_enabled
            and agent_config.agent_id
            and request.workspace_id
            and len(response) > ARCHIVE_MIN_RESPONSE_CHARS
        ):
            policy = memory_settings.retention_policy
            if policy == "keep_all" or (policy == "keep_successful" and confidence > ARCHIVE_MIN_CONFIDENCE):
                self.background.spawn(
                    self.store.archive_experience(
                        agent_id=agent_config.agent_id,
                        workspace_id=request.workspace_id,
                        task_summary=f"Q: {query[:200]} | A: {response[:300]}",
                        context_type=_context_type(complexity),
                        success_score=confidence,
                        learned_patterns={
                            "strategy_used": strategy,
                            "citations_count": len(citations),
                            "chunks_used": chunks_used,
                            "reasoning_steps": len(steps),
                        }
                    ),
                    name="experience_archive"
                )

        self.background.spawn(
            self.store.log_self_evaluation(
                conversation_id=request.conversation_id,
                query=query,
                initial_response=response,
                retrieval_decision=(
                    "no_retrieve" if strategy == RetrievalStrategy.DIRECT_ANSWER.value else "retrieve"
                ),
                relevance_check=[],
                support_check=[],
                utility_check={"score": confidence, "reasoning": f"Strategy: {strategy}"},
                hallucination_detected=hallucination.detected,
                hallucination_details=hallucination.details,
                final_response=response,
                refinement_iterations=sum(1 for s in steps if s.step_type == StepType.THOUGHT),
                confidence_score=confidence
            ),
            name="self_evaluation"
        )

        if request.conversation_id and citations:
            self.background.spawn(
                self.store.save_citations(request.conversation_id, citations),
                name="citations"
            )

        self.background.spawn(
            self.store.record_strategy_metric(
                workspace_id=request.workspace_id,
                strategy=strategy,
                complexity=complexity.value,
                success=not hallucination.detected and len(response) > SUCCESS_MIN_RESPONSE_CHARS,
                latency_ms=total_latency_ms,
                confidence=confidence
            ),
            name="strategy_metrics"
        )


def create_agentic_pipeline(
    llm_client,
    retriever,
    store: Optional[PipelineStore] = None,
    background: Optional[BackgroundTaskSet] = None,
    config: Optional[Dict[str, Any]] = None
) -> AgenticRAGPipeline:
    """
    Factory function to create the agentic pipeline.

    Args:
        llm_client: ChatCompletionClient
        retriever: Retrieval collaborator
        store: PipelineStore (defaults to the configured database)
        background: BackgroundTaskSet for detached work
        config: Optional configuration

    Returns:
        Configured AgenticRAGPipeline
    """
    return AgenticRAGPipeline(llm_client, retriever, store, background, config)
