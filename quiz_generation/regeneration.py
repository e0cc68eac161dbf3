"""
Step 5 — Regeneration

Acts on the combined grounding verdict:
  REFUSE              → recapture required, nothing is regenerated
  FULL_RETRY          → small batches only: the fallback provider's basic
                        generation replaces lesson and questions
  PARTIAL_REGENERATE  → weak questions are rewritten by a provider other
                        than the generator and spliced back by index
"""

import logging
from typing import List, Optional

from quiz_generation.config import MAX_WEAK_REGENERATIONS_LARGE_BATCH
from quiz_generation.errors import REFUSED_MESSAGE, RecaptureRequiredError
from quiz_generation.limiter import (
    FULL_RETRY_POLICY,
    PARTIAL_REGENERATION_RETRY,
    RetryPolicy,
    retry_async,
)
from quiz_generation.providers import ProviderAdapter, ProviderRegistry
from quiz_generation.schemas import EncodedImage, QuizContent, RecommendedAction, ValidationVerdict

log = logging.getLogger("quiz_generation.pipeline")


def select_weak_indices(weak_questions: List[int], question_count: int, large_batch: bool) -> List[int]:
    """Valid, de-duplicated weak indices in verdict order, capped for large batches."""
    selected: List[int] = []
    for index in weak_questions:
        if 0 <= index < question_count and index not in selected:
            selected.append(index)
    if large_batch and len(selected) > MAX_WEAK_REGENERATIONS_LARGE_BATCH:
        log.info(
            f"[Regenerate] Large batch: limiting regeneration from {len(selected)} "
            f"to {MAX_WEAK_REGENERATIONS_LARGE_BATCH} questions"
        )
        selected = selected[:MAX_WEAK_REGENERATIONS_LARGE_BATCH]
    return selected


class RegenerationEngine:

    def __init__(
        self,
        registry: ProviderRegistry,
        full_retry_policy: RetryPolicy = FULL_RETRY_POLICY,
        partial_retry_policy: RetryPolicy = PARTIAL_REGENERATION_RETRY,
    ):
        self.registry = registry
        self.full_retry_policy = full_retry_policy
        self.partial_retry_policy = partial_retry_policy

    def regenerator_for(self, generator: str) -> Optional[ProviderAdapter]:
        """The configured regenerator, unless it wrote the questions being fixed."""
        regenerator = self.registry.regenerator
        if regenerator.name != generator:
            return regenerator
        others = self.registry.others(generator)
        return others[0] if others else None

    async def full_retry(self, images: List[EncodedImage]) -> QuizContent:
        """Replace lesson and questions wholesale. Raises once the policy is exhausted."""
        provider = self.registry.fallback
        log.info(f"[Regenerate] Full retry with {provider.name}")
        return await retry_async(
            lambda: provider.generate_basic(images),
            self.full_retry_policy,
            label=f"{provider.name}-full-retry",
        )

    async def partial_regenerate(
        self,
        content: QuizContent,
        weak_questions: List[int],
        extracted_text: List[str],
        generator: str,
        large_batch: bool = False,
    ) -> QuizContent:
        """
        Rewrite only the weak questions. Every index the regenerator does not
        return a usable question for keeps its original question; a failed
        regeneration leaves the content unchanged.
        """
        targets = select_weak_indices(weak_questions, len(content.questions), large_batch)
        provider = self.regenerator_for(generator)
        if not targets or provider is None:
            return content

        log.info(f"[Regenerate] Regenerating {len(targets)} weak questions with {provider.name}: {targets}")
        originals = [content.questions[i] for i in targets]
        try:
            replacements = await retry_async(
                lambda: provider.regenerate_questions(originals, extracted_text),
                self.partial_retry_policy,
                label=f"{provider.name}-regenerate",
            )
        except Exception as e:
            log.error(f"[Regenerate] Weak question regeneration failed: {e}")
            return content

        questions = list(content.questions)
        replaced = 0
        for index, replacement in zip(targets, replacements):
            if replacement is not None:
                questions[index] = replacement
                replaced += 1
        log.info(f"[Regenerate] Replaced {replaced}/{len(targets)} weak questions")
        return content.model_copy(update={"questions": questions})

    async def apply(
        self,
        verdict: ValidationVerdict,
        content: QuizContent,
        images: List[EncodedImage],
        extracted_text: List[str],
        generator: str,
        large_batch: bool = False,
    ) -> QuizContent:
        action = verdict.recommended_action

        if action is RecommendedAction.REFUSE:
            log.warning("[Regenerate] Validators recommend REFUSE")
            raise RecaptureRequiredError(REFUSED_MESSAGE)

        if action is RecommendedAction.FULL_RETRY:
            if large_batch:
                log.info("[Regenerate] FULL_RETRY skipped for large batch")
                return content
            return await self.full_retry(images)

        if action is RecommendedAction.PARTIAL_REGENERATE and verdict.weak_questions:
            return await self.partial_regenerate(
                content, verdict.weak_questions, extracted_text, generator, large_batch
            )

        return content
