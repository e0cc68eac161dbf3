"""
Quiz Generation Pipeline — Main Orchestrator

Ties together all steps:
  0. Image preprocessing      (image_optimizer.py, best effort)
  1. Extended generation      (primary provider, fallback provider on exhaustion)
  2. Unclear-text gate        (quality_gate.py)
  3. Evidence gate            (quality_gate.py)
  4. Grounding validation     (grounding.py)
  5. Regeneration             (regeneration.py)
  6. Vision spot-check        (spot_check.py, when the verdict calls for it)
  7. Answer consensus         (consensus.py)
  8. Minimum-count gate       (recover from the pre-validation questions)

Terminal failures raise RecaptureRequiredError with a user-facing reason;
anything else that escapes is an infrastructure failure.
"""

import logging
import time
from typing import Awaitable, Callable, List, Optional, Tuple

from quiz_generation.config import (
    EVIDENCE_FAIL_THRESHOLD,
    MAX_RECOVERED_QUESTIONS,
    MIN_ACCEPTABLE_QUESTIONS,
    is_large_batch,
)
from quiz_generation.consensus import ConsensusAnswerResolver
from quiz_generation.errors import (
    NOT_ENOUGH_QUESTIONS_MESSAGE,
    SPOT_CHECK_FAILED_MESSAGE,
    UNCLEAR_PAGES_MESSAGE,
    UNGROUNDED_MESSAGE,
    RecaptureRequiredError,
)
from quiz_generation.grounding import GroundingValidator, should_trigger_vision_spot_check
from quiz_generation.image_optimizer import optimize_images
from quiz_generation.limiter import (
    DEFAULT_RETRY,
    PRIMARY_GENERATION_RETRY,
    RetryPolicy,
    retry_async,
)
from quiz_generation.providers import ProviderAdapter, ProviderRegistry, build_default_registry
from quiz_generation.quality_gate import detect_unclear_pages, quick_evidence_check
from quiz_generation.regeneration import RegenerationEngine
from quiz_generation.schemas import (
    EncodedImage,
    ExtendedQuizContent,
    GenerationOptions,
    OptimizationLevel,
    QuizContent,
)
from quiz_generation.spot_check import VisionSpotChecker

log = logging.getLogger("quiz_generation.pipeline")

Optimizer = Callable[[List[EncodedImage], OptimizationLevel], Awaitable[List[EncodedImage]]]


class QuizPipeline:

    def __init__(
        self,
        registry: ProviderRegistry,
        optimizer: Optional[Optimizer] = optimize_images,
        primary_retry: RetryPolicy = PRIMARY_GENERATION_RETRY,
        fallback_retry: RetryPolicy = DEFAULT_RETRY,
        grounding: Optional[GroundingValidator] = None,
        regeneration: Optional[RegenerationEngine] = None,
        spot_checker: Optional[VisionSpotChecker] = None,
        consensus: Optional[ConsensusAnswerResolver] = None,
    ):
        self.registry = registry
        self.optimizer = optimizer
        self.primary_retry = primary_retry
        self.fallback_retry = fallback_retry
        self.grounding = grounding or GroundingValidator(registry)
        self.regeneration = regeneration or RegenerationEngine(registry)
        self.spot_checker = spot_checker or VisionSpotChecker(registry)
        self.consensus = consensus or ConsensusAnswerResolver(registry)

    # ─── Step 0 ────────────────────────────────────────────────────────────────

    async def _preprocess(self, images: List[EncodedImage], options: GenerationOptions) -> List[EncodedImage]:
        if not options.optimize_images or self.optimizer is None:
            log.info("[Preprocess] Image optimization disabled, using original images")
            return images
        try:
            log.info(f"[Preprocess] Optimizing {len(images)} images level={options.optimization_level}")
            processed = await self.optimizer(images, options.optimization_level)
            log.info(f"[Preprocess] Images optimized count={len(processed)}")
            return processed
        except Exception as e:
            log.error(f"[Preprocess] Image optimization failed, using original images: {e}")
            return images

    # ─── Step 1 ────────────────────────────────────────────────────────────────

    async def _generate(self, images: List[EncodedImage]) -> Tuple[ExtendedQuizContent, ProviderAdapter]:
        primary = self.registry.primary
        try:
            content = await retry_async(
                lambda: primary.generate_extended(images),
                self.primary_retry,
                label=f"{primary.name}-generate",
            )
            log.info(f"[Generate] {primary.name} primary generation succeeded")
            return content, primary
        except Exception as e:
            fallback = self.registry.fallback
            log.warning(f"[Generate] {primary.name} primary failed, falling back to {fallback.name}: {e}")

        content = await retry_async(
            lambda: fallback.generate_extended(images),
            self.fallback_retry,
            label=f"{fallback.name}-generate",
        )
        log.info(f"[Generate] {fallback.name} fallback generation succeeded")
        return content, fallback

    # ─── Main entry ────────────────────────────────────────────────────────────

    async def generate(
        self,
        images: List[EncodedImage],
        options: Optional[GenerationOptions] = None,
    ) -> QuizContent:
        """
        Photographed pages → validated lesson and quiz.

        Raises RecaptureRequiredError when the pages cannot support a
        trustworthy quiz; other exceptions mean generation itself failed.
        """
        if not images:
            raise ValueError("At least one page image is required")

        options = options or GenerationOptions()
        start = time.monotonic()
        page_count = len(images)
        large_batch = is_large_batch(page_count)
        log.info(f"[Pipeline] Starting quiz generation from {page_count} images")

        processed = await self._preprocess(images, options)

        extended, generator = await self._generate(processed)
        log.info(
            f"[Generate] Lesson {extended.lesson.title!r} with {len(extended.questions)} questions "
            f"duration={time.monotonic() - start:.1f}s "
            f"extractedTextLength={sum(len(t) for t in extended.extracted_text)}"
        )

        if detect_unclear_pages(extended.extracted_text):
            log.warning("[QualityGate] Image quality too low - unclear text detected")
            raise RecaptureRequiredError(UNCLEAR_PAGES_MESSAGE)

        evidence = quick_evidence_check(extended.extracted_text, extended.question_evidence)
        if evidence.fail_rate > EVIDENCE_FAIL_THRESHOLD:
            log.warning(
                f"[QualityGate] Evidence check failed: {evidence.fail_rate * 100:.0f}% of questions have no grounding"
            )
            raise RecaptureRequiredError(UNGROUNDED_MESSAGE)

        verdict = await self.grounding.validate_and_combine(extended, generator.name)

        content = await self.regeneration.apply(
            verdict,
            extended.to_quiz_content(),
            processed,
            extended.extracted_text,
            generator.name,
            large_batch,
        )

        warnings: List[str] = []

        if should_trigger_vision_spot_check(verdict):
            log.info("[SpotCheck] Triggering adaptive vision spot-check")
            spot_check = await self.spot_checker.run(processed, extended.extracted_text, verdict)
            if not spot_check.passed:
                log.warning("[SpotCheck] Vision spot-check failed")
                raise RecaptureRequiredError(SPOT_CHECK_FAILED_MESSAGE)
            if spot_check.failed_pages:
                pages = ", ".join(str(p) for p in spot_check.failed_pages)
                warnings.append(f"Note: the following pages may not be fully covered by the quiz: {pages}")
            if spot_check.skipped_large_batch:
                warnings.append(f"Note: {page_count} pages were uploaded - the quiz may not cover all of the content")
        elif large_batch:
            warnings.append(f"Note: {page_count} pages were uploaded - make sure to review all of the content")

        content = await self.consensus.resolve(content, page_count)

        if len(content.questions) < MIN_ACCEPTABLE_QUESTIONS:
            log.warning(f"[Pipeline] Only {len(content.questions)} questions after validation - trying to recover")
            if len(extended.questions) < MIN_ACCEPTABLE_QUESTIONS:
                raise RecaptureRequiredError(NOT_ENOUGH_QUESTIONS_MESSAGE)
            log.info(f"[Pipeline] Recovering: using {len(extended.questions)} original questions instead")
            content = content.model_copy(
                update={"questions": list(extended.questions[:MAX_RECOVERED_QUESTIONS])}
            )
            warnings.append("The original questions were used because validation was too strict")

        if warnings:
            content = content.model_copy(update={"warnings": warnings})

        log.info(
            f"[Pipeline] Quiz generation complete lessonTitle={content.lesson.title!r} "
            f"questionCount={len(content.questions)} warnings={len(warnings)} "
            f"totalDuration={time.monotonic() - start:.1f}s"
        )
        return content


# ─── Module-level convenience ─────────────────────────────────────────────────

_default_pipeline: Optional[QuizPipeline] = None


def build_default_pipeline() -> QuizPipeline:
    global _default_pipeline
    if _default_pipeline is None:
        _default_pipeline = QuizPipeline(build_default_registry())
    return _default_pipeline


async def generate_quiz(
    images: List[EncodedImage],
    options: Optional[GenerationOptions] = None,
) -> QuizContent:
    """Run the default three-provider pipeline."""
    return await build_default_pipeline().generate(images, options)
