"""Response Compliance Validator

Scores a response draft against the agent's response rules and custom
response template using regex heuristics. Deterministic and side-effect
free, so it runs on every draft and on every rework attempt.

Scoring:
    rules_score     = 100 - sum(penalties of unmet enabled rules)
    structure_score = matched / all template placeholders * 100
    overall_score   = round_half_up((structure_score + rules_score) / 2)
"""

import math
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Pattern

from .agent_config import ResponseRules
from .state import ValidationIssue, ValidationScore

DEFAULT_PASS_THRESHOLD = 70

_PLACEHOLDER = re.compile(r"\{[A-Z_]+\}")

STEP_PATTERN = re.compile(r"step[\s-]*\d|^[\s]*\d+[.):]", re.IGNORECASE | re.MULTILINE)
BULLET_PATTERN = re.compile(r"^[\s]*[-•*]\s", re.MULTILINE)
SEQUENCE_PATTERN = re.compile(r"first.*then|next.*after", re.IGNORECASE)
CITATION_PATTERN = re.compile(r"\[Source\s*\d+\]|\[\d+\]", re.IGNORECASE)
CONFIDENCE_PATTERN = re.compile(r"confidence[:\s]*\d+%?|(\d+%\s*confident)", re.IGNORECASE)
SUMMARY_PATTERN = re.compile(r"summary|to summarize|in conclusion|key takeaways", re.IGNORECASE)


@dataclass(frozen=True)
class RuleCheck:
    """One independent rule predicate and its penalty."""
    rule: str
    predicate: Callable[[str], bool]
    penalty: int
    severity: str
    message: str


def _has_steps(text: str) -> bool:
    return bool(
        STEP_PATTERN.search(text)
        or BULLET_PATTERN.search(text)
        or SEQUENCE_PATTERN.search(text)
    )


RULE_CHECKS: List[RuleCheck] = [
    RuleCheck("step_by_step", _has_steps, 15, "warning", "Missing step-by-step structure"),
    RuleCheck(
        "cite_if_possible",
        lambda text: bool(CITATION_PATTERN.search(text)),
        15, "warning", "Missing source citations",
    ),
    RuleCheck(
        "include_confidence_scores",
        lambda text: bool(CONFIDENCE_PATTERN.search(text)),
        10, "warning", "Missing confidence score",
    ),
    RuleCheck(
        "use_bullet_points",
        lambda text: bool(BULLET_PATTERN.search(text)),
        5, "info", "Could use more bullet points",
    ),
    RuleCheck(
        "summarize_at_end",
        lambda text: bool(SUMMARY_PATTERN.search(text)),
        10, "warning", "Missing summary section",
    ),
]

PLACEHOLDER_CHECKS: Dict[str, Pattern] = {
    "{ANALYSIS}": re.compile(r"analysis|findings|based on", re.IGNORECASE),
    "{STEPS}": STEP_PATTERN,
    "{SOURCES}": re.compile(r"\[Source\s*\d+\]|\[ref", re.IGNORECASE),
    "{CONFIDENCE}": re.compile(r"confidence[:\s]*\d+%?", re.IGNORECASE),
    "{SUMMARY}": re.compile(r"summary|conclusion", re.IGNORECASE),
    "{BULLETS}": BULLET_PATTERN,
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def check_template(response: str, template: str) -> tuple:
    """Score template placeholders present in ``template``.

    Every placeholder counts toward the denominator. Placeholders without a
    content check can never match and raise no issue.

    Returns:
        Tuple of (structure_score or None when the template has no placeholders, issues)
    """
    issues: List[ValidationIssue] = []
    placeholders = _PLACEHOLDER.findall(template)
    if not placeholders:
        return None, issues

    matched = 0
    for placeholder in placeholders:
        check = PLACEHOLDER_CHECKS.get(placeholder)
        if check is None:
            continue
        if check.search(response):
            matched += 1
        else:
            issues.append(ValidationIssue(
                type="structure",
                severity="warning",
                message=f"Missing content for template placeholder: {placeholder}",
            ))
    return matched / len(placeholders) * 100, issues


def validate(
    response: str,
    rules: Optional[ResponseRules],
    custom_template: Optional[str] = None,
    pass_threshold: int = DEFAULT_PASS_THRESHOLD
) -> ValidationScore:
    """
    Validate a response against response rules and a custom template.

    Args:
        response: Response text to score
        rules: Enabled response rules (None means no rule checks)
        custom_template: Optional template with {PLACEHOLDER} tokens
        pass_threshold: Minimum overall score that counts as passing

    Returns:
        ValidationScore with every component clamped to [0, 100]
    """
    response = response or ""
    issues: List[ValidationIssue] = []
    rules_score = 100
    structure_score: float = 100

    if rules is not None:
        enabled = set(rules.enabled())
        for check in RULE_CHECKS:
            if check.rule in enabled and not check.predicate(response):
                rules_score -= check.penalty
                issues.append(ValidationIssue(type="rules", severity=check.severity, message=check.message))

    if custom_template:
        template_score, template_issues = check_template(response, custom_template)
        issues.extend(template_issues)
        if template_score is not None:
            structure_score = template_score

    structure_score = _clamp(structure_score)
    rules_score = int(_clamp(rules_score))
    overall = int(_clamp(_round_half_up((structure_score + rules_score) / 2)))

    return ValidationScore(
        overall_score=overall,
        structure_score=structure_score,
        rules_score=rules_score,
        issues=issues,
        passed=overall >= pass_threshold,
    )
