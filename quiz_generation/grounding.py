"""
Step 4 — Grounding validation

Two providers that did not write the quiz review it against the extracted
text. Their verdicts are merged into one decision:
- confidence is averaged
- weak question indices are unioned
- issues are concatenated
- the most severe recommended action wins
"""

import asyncio
import logging
from typing import List, Optional

from quiz_generation.config import (
    CONFIDENCE_THRESHOLD,
    NEUTRAL_CONFIDENCE,
    WEAK_QUESTIONS_BASELINE,
    WEAK_QUESTIONS_THRESHOLD,
)
from quiz_generation.limiter import GROUNDING_RETRY, RetryPolicy
from quiz_generation.prompts import build_grounding_prompt
from quiz_generation.providers import ProviderRegistry
from quiz_generation.schemas import (
    ExtendedQuizContent,
    IssueType,
    RecommendedAction,
    ValidationVerdict,
)

log = logging.getLogger("quiz_generation.pipeline")

VALIDATOR_COUNT = 2
SPOT_CHECK_ISSUE_TYPES = {IssueType.OCR_SUSPECTED.value, IssueType.CONTENT_DRIFT.value}


# ─── Prompt material ──────────────────────────────────────────────────────────

def format_questions_with_evidence(content: ExtendedQuizContent) -> str:
    lines = []
    for i, question in enumerate(content.questions):
        if i < len(content.question_evidence):
            evidence = content.question_evidence[i]
            source, confidence = evidence.source_text, evidence.confidence
        else:
            source, confidence = "not available", 0
        lines.append(f'{i}. {question.question}\n   Evidence: "{source}" (confidence: {confidence})')
    return "\n".join(lines)


def build_validation_prompt(content: ExtendedQuizContent) -> str:
    return build_grounding_prompt(
        content.extracted_text,
        content.lesson.title,
        content.lesson.summary,
        format_questions_with_evidence(content),
    )


# ─── Verdict rules ────────────────────────────────────────────────────────────

def combine_verdicts(verdicts: List[ValidationVerdict]) -> ValidationVerdict:
    """Merge independent verdicts; no verdicts at all is a neutral ACCEPT."""
    if not verdicts:
        return ValidationVerdict(
            overall_confidence=NEUTRAL_CONFIDENCE,
            recommended_action=RecommendedAction.ACCEPT,
        )

    weak: List[int] = []
    for verdict in verdicts:
        for index in verdict.weak_questions:
            if index not in weak:
                weak.append(index)

    return ValidationVerdict(
        overall_confidence=sum(v.overall_confidence for v in verdicts) / len(verdicts),
        weak_questions=weak,
        issues=[issue for v in verdicts for issue in v.issues],
        recommended_action=RecommendedAction.worst(v.recommended_action for v in verdicts),
    )


def should_trigger_vision_spot_check(verdict: ValidationVerdict) -> bool:
    if verdict.overall_confidence < CONFIDENCE_THRESHOLD:
        return True
    if len(verdict.weak_questions) / WEAK_QUESTIONS_BASELINE > WEAK_QUESTIONS_THRESHOLD:
        return True
    return any(issue.type in SPOT_CHECK_ISSUE_TYPES for issue in verdict.issues)


# ─── Validator ────────────────────────────────────────────────────────────────

class GroundingValidator:

    def __init__(self, registry: ProviderRegistry, retry: RetryPolicy = GROUNDING_RETRY):
        self.registry = registry
        self.retry = retry

    async def validate(
        self,
        content: ExtendedQuizContent,
        generator: Optional[str] = None,
    ) -> List[ValidationVerdict]:
        """
        Ask the providers other than ``generator`` for a verdict, concurrently.

        Failed or unparseable verdicts are dropped, so zero, one or two
        verdicts may come back.
        """
        generator = generator or self.registry.roles.primary
        validators = self.registry.others(generator)[:VALIDATOR_COUNT]
        prompt = build_validation_prompt(content)

        log.info(f"[Grounding] Validating {len(content.questions)} questions with {[p.name for p in validators]}")
        results = await asyncio.gather(*[
            provider.validate_grounding(prompt, retry=self.retry) for provider in validators
        ])

        verdicts = [v for v in results if v is not None]
        if len(verdicts) < len(validators):
            log.warning(f"[Grounding] {len(validators) - len(verdicts)} validator(s) returned no verdict")
        return verdicts

    async def validate_and_combine(
        self,
        content: ExtendedQuizContent,
        generator: Optional[str] = None,
    ) -> ValidationVerdict:
        verdict = combine_verdicts(await self.validate(content, generator))
        log.info(
            f"[Grounding] overallConfidence={verdict.overall_confidence:.2f} "
            f"action={verdict.recommended_action.value} weakQuestions={len(verdict.weak_questions)}"
        )
        return verdict

    combine = staticmethod(combine_verdicts)
    should_trigger_vision_spot_check = staticmethod(should_trigger_vision_spot_check)
