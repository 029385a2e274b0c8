"""Rework Agent for Agentic RAG

Bounded self-correction: re-prompts the model with the validator's
findings until the draft passes or the retry budget is spent.
"""

import logging
from typing import Dict, List, Optional

from ..agent_config import ResponseRules
from ..compliance import DEFAULT_PASS_THRESHOLD, validate
from ..llm import LLMError
from ..prompts import REWORK_SYSTEM_SUFFIX, build_correction_instructions
from ..state import ReworkAttempt, ReworkResult, ValidationScore

logger = logging.getLogger(__name__)

MIN_REWORK_CHARS = 50


class ReworkAgent:
    """
    Re-prompts failing drafts.

    Loop invariant: continues only while attempts < max_retries and the
    current draft has not passed. Returns the best-scoring draft seen,
    the original included.
    """

    def __init__(self, llm_client, max_tokens: int = 2500, history_messages: int = 4):
        self.llm_client = llm_client
        self.max_tokens = max_tokens
        self.history_messages = history_messages

    async def rework(
        self,
        original: str,
        score: ValidationScore,
        rules: Optional[ResponseRules],
        template: Optional[str],
        system_prompt: str,
        history: List[Dict[str, str]],
        max_retries: int = 2,
        pass_threshold: int = DEFAULT_PASS_THRESHOLD
    ) -> ReworkResult:
        """
        Revise a draft until it passes validation.

        Args:
            original: Draft that failed validation
            score: Its validation score
            rules: Response rules the draft is checked against
            template: Response template, if any
            system_prompt: Persona prompt for the correction calls
            history: Full conversation; the last four are sent
            max_retries: Maximum correction attempts
            pass_threshold: Score a draft needs to pass

        Returns:
            ReworkResult with the best draft and the attempts actually made
        """
        best = ReworkAttempt(attempt_number=0, response_text=original, score=score)
        history_log = [best]

        if not self.llm_client.is_configured:
            return ReworkResult(response=original, attempts=0, final_score=score, history=history_log)

        current = best
        attempts = 0
        while attempts < max_retries and not current.score.passed:
            attempts += 1
            logger.info(f"Re-work attempt {attempts}: current score {current.score.overall_score}")

            instructions = build_correction_instructions(current.score, rules, template, current.response_text)
            chat = [{"role": m["role"], "content": m["content"]} for m in history[-self.history_messages:]]
            try:
                reply = await self.llm_client.complete(
                    [{"role": "system", "content": system_prompt + REWORK_SYSTEM_SUFFIX}]
                    + chat
                    + [{"role": "user", "content": instructions}],
                    max_tokens=self.max_tokens
                )
            except LLMError as e:
                logger.error(f"Re-work attempt {attempts} error: {e}")
                break

            if len(reply) < MIN_REWORK_CHARS:
                logger.warning(f"Re-work attempt {attempts} returned a degenerate reply, stopping")
                break

            new_score = validate(reply, rules, template, pass_threshold=pass_threshold)
            current = ReworkAttempt(attempt_number=attempts, response_text=reply, score=new_score)
            history_log.append(current)
            logger.info(f"Re-work attempt {attempts} new score: {new_score.overall_score}")

            if new_score.overall_score > best.score.overall_score:
                best = current

        return ReworkResult(
            response=best.response_text,
            attempts=attempts,
            final_score=best.score,
            history=history_log
        )
