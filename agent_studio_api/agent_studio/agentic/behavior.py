"""Response Behavior Metrics

Style measurements of a finished answer (length, structure, tone and which
response rules visibly took effect). Logged at debug level for later
output-style analysis; nothing in the pipeline branches on them.
"""

import re
from typing import Any, Dict, Optional

from .agent_config import ResponseRules

BULLET_PATTERN = re.compile(r"^[\s]*[-•*]\s", re.MULTILINE)
NUMBERED_PATTERN = re.compile(r"^[\s]*\d+[.)]\s", re.MULTILINE)
CITATION_PATTERN = re.compile(r"\[Source \d+\]", re.IGNORECASE)
HEADER_PATTERN = re.compile(r"^#+\s|^[A-Z][A-Z\s]+:$", re.MULTILINE)
CODE_BLOCK_PATTERN = re.compile(r"```[\s\S]*?```")
CONTRACTION_PATTERN = re.compile(
    r"(don't|won't|can't|isn't|aren't|wasn't|weren't|haven't|hasn't|hadn't|wouldn't|couldn't|"
    r"shouldn't|I'm|you're|we're|they're|it's|that's|there's|here's|what's|who's|let's)",
    re.IGNORECASE
)
FIRST_PERSON_PATTERN = re.compile(r"\b(I|me|my|mine|we|us|our|ours)\b", re.IGNORECASE)
UNCERTAINTY_PATTERN = re.compile(
    r"I('m| am) not (sure|certain)|don't have enough|cannot (confirm|verify)|beyond my knowledge|uncertain",
    re.IGNORECASE
)


def analyze_response_behavior(response: str, rules: Optional[ResponseRules] = None) -> Dict[str, Any]:
    """Compute style metrics for a response."""
    words = response.split()
    sentences = [s for s in re.split(r"[.!?]+", response) if s.strip()]
    paragraphs = [p for p in re.split(r"\n\n+", response) if p.strip()]

    word_count = len(words)
    sentence_count = len(sentences)
    avg_sentence_length = word_count / sentence_count if sentence_count else 0

    has_bullets = bool(BULLET_PATTERN.search(response))
    has_numbered = bool(NUMBERED_PATTERN.search(response))
    citation_count = len(CITATION_PATTERN.findall(response))
    has_headers = bool(HEADER_PATTERN.search(response))
    uses_contractions = bool(CONTRACTION_PATTERN.search(response))
    uses_first_person = bool(FIRST_PERSON_PATTERN.search(response))

    # Higher is more formal
    formal_score = 0.5
    if not uses_contractions:
        formal_score += 0.2
    if not uses_first_person:
        formal_score += 0.1
    if has_headers:
        formal_score += 0.1
    if avg_sentence_length > 20:
        formal_score += 0.1
    formal_score = min(1.0, formal_score)

    if word_count < 100:
        structure = "concise"
    elif word_count > 300:
        structure = "detailed"
    else:
        structure = "balanced"

    rules_applied = []
    if rules is not None:
        if rules.step_by_step and (has_numbered or has_bullets):
            rules_applied.append("step_by_step")
        if rules.cite_if_possible and citation_count:
            rules_applied.append("cite_if_possible")
        if rules.refuse_if_uncertain and UNCERTAINTY_PATTERN.search(response):
            rules_applied.append("refuse_if_uncertain")

    return {
        "word_count": word_count,
        "character_count": len(response),
        "sentence_count": sentence_count,
        "avg_sentence_length": round(avg_sentence_length, 1),
        "paragraph_count": len(paragraphs),
        "has_bullet_points": has_bullets,
        "has_numbered_list": has_numbered,
        "has_citations": citation_count > 0,
        "citation_count": citation_count,
        "has_headers": has_headers,
        "has_code_blocks": bool(CODE_BLOCK_PATTERN.search(response)),
        "tone_indicators": {
            "formal_score": round(formal_score, 2),
            "uses_contractions": uses_contractions,
            "uses_first_person": uses_first_person,
        },
        "structure": structure,
        "rules_applied": rules_applied,
    }
