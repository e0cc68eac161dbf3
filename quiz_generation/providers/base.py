"""
ProviderAdapter — one capability interface over every model backend.

Concrete providers implement a single transport hook, ``_complete``; every
capability the pipeline needs (generation, MCQ answering, grounding verdicts,
weak-question rewrites, vision checks) is built on top of it here, so the
three backends behave identically apart from the wire call.

Every transport call holds one slot of the shared ConcurrencyLimiter and,
when a breaker is attached, passes through the provider's circuit breaker.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from quiz_generation.circuit_breaker import CircuitBreaker
from quiz_generation.config import DEFAULT_QUESTION_COUNT
from quiz_generation.errors import ResponseParseError
from quiz_generation.json_extract import extract_json_span
from quiz_generation.limiter import (
    SINGLE_ATTEMPT,
    ConcurrencyLimiter,
    RetryPolicy,
    get_default_limiter,
    retry_async,
)
from quiz_generation.parsers import (
    load_json_object,
    parse_answers,
    parse_content,
    parse_extended_content,
    parse_question,
    parse_validation_verdict,
)
from quiz_generation.prompts import (
    build_answer_prompt,
    build_basic_generation_prompt,
    build_generation_prompt,
    build_regeneration_prompt,
    build_vision_verify_prompt,
)
from quiz_generation.schemas import (
    EncodedImage,
    ExtendedQuizContent,
    Question,
    QuizContent,
    ValidationVerdict,
)

log = logging.getLogger(__name__)


class ProviderAdapter(ABC):

    # Response budgets per capability
    extended_max_tokens = 8000
    basic_max_tokens = 4000
    answer_max_tokens = 500
    validation_max_tokens = 800
    regeneration_max_tokens = 1500
    vision_max_tokens = 300

    def __init__(
        self,
        name: str,
        limiter: Optional[ConcurrencyLimiter] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.name = name
        self.limiter = limiter or get_default_limiter()
        self.breaker = breaker

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    # ── Transport ──────────────────────────────────────────────────────────────

    @abstractmethod
    async def _complete(
        self,
        prompt: str,
        images: Optional[List[EncodedImage]] = None,
        system: Optional[str] = None,
        max_tokens: int = 2048,
    ) -> str:
        """Send one request to the backend and return the response text."""

    async def _call(
        self,
        prompt: str,
        images: Optional[List[EncodedImage]] = None,
        system: Optional[str] = None,
        max_tokens: int = 2048,
    ) -> str:
        async def attempt() -> str:
            return await self._complete(prompt, images=images, system=system, max_tokens=max_tokens)

        async with self.limiter:
            if self.breaker is None:
                return await attempt()
            return await self.breaker.call(attempt)

    # ── Generation (raises) ────────────────────────────────────────────────────

    async def generate_extended(
        self,
        images: List[EncodedImage],
        question_count: int = DEFAULT_QUESTION_COUNT,
    ) -> ExtendedQuizContent:
        """Lesson, questions, per-page text and per-question evidence."""
        prompt = build_generation_prompt(len(images), question_count)
        text = await self._call(prompt, images=images, max_tokens=self.extended_max_tokens)
        content = parse_extended_content(text)
        log.info(
            f"[{self.name}] Extended generation: {len(content.questions)} questions, "
            f"{len(content.extracted_text)} pages of text"
        )
        return content

    async def generate_basic(self, images: List[EncodedImage]) -> QuizContent:
        """Lesson and questions only, with the simpler prompt."""
        text = await self._call(
            build_basic_generation_prompt(), images=images, max_tokens=self.basic_max_tokens
        )
        content = parse_content(text)
        log.info(f"[{self.name}] Basic generation: {len(content.questions)} questions")
        return content

    # ── Voting capabilities (never raise) ──────────────────────────────────────

    async def answer_multiple_choice(
        self,
        questions_text: str,
        retry: Optional[RetryPolicy] = None,
    ) -> List[str]:
        """This provider's answer letter for each MCQ block; [] when unavailable."""
        prompt = build_answer_prompt(questions_text)
        try:
            text = await retry_async(
                lambda: self._call(prompt, max_tokens=self.answer_max_tokens),
                retry or SINGLE_ATTEMPT,
                label=f"{self.name}-answers",
            )
        except Exception as e:
            log.error(f"[{self.name}] Answer validation failed: {e}")
            return []
        return parse_answers(text)

    async def validate_grounding(
        self,
        prompt: str,
        retry: Optional[RetryPolicy] = None,
    ) -> Optional[ValidationVerdict]:
        """Grounding verdict for a prepared validation prompt; None when unavailable."""
        try:
            text = await retry_async(
                lambda: self._call(prompt, max_tokens=self.validation_max_tokens),
                retry or SINGLE_ATTEMPT,
                label=f"{self.name}-grounding",
            )
        except Exception as e:
            log.error(f"[{self.name}] Grounding validation failed: {e}")
            return None

        verdict = parse_validation_verdict(text)
        if verdict is None:
            log.warning(f"[{self.name}] Grounding verdict unparseable (preview={text[:200]!r})")
        return verdict

    # ── Partial regeneration (raises on transport error) ───────────────────────

    async def regenerate_questions(
        self,
        questions: List[Question],
        extracted_text: List[str],
    ) -> List[Optional[Question]]:
        """
        Rewrite ``questions`` against the source text.

        The result is aligned with the input: position i holds the replacement
        for questions[i], or None when the provider returned nothing usable
        for it.
        """
        if not questions:
            return []

        lines = [
            q.model_dump_json(by_alias=True, exclude_none=True, exclude={"evidence", "diagram"})
            for q in questions
        ]
        text = await self._call(
            build_regeneration_prompt(extracted_text, lines),
            max_tokens=self.regeneration_max_tokens,
        )
        parsed = load_json_object(text)
        raw_questions = parsed.get("questions")
        if not isinstance(raw_questions, list):
            raw_questions = []

        replacements: List[Optional[Question]] = []
        for i in range(len(questions)):
            if i >= len(raw_questions):
                replacements.append(None)
                continue
            try:
                replacements.append(parse_question(raw_questions[i], i))
            except ResponseParseError as e:
                log.warning(f"[{self.name}] Unusable regenerated question {i}: {e}")
                replacements.append(None)
        return replacements

    # ── Vision verification (never blocks) ─────────────────────────────────────

    async def verify_page_against_image(self, image: EncodedImage, expected_text: str) -> bool:
        """
        Does ``expected_text`` really appear on ``image``?

        Infrastructure failures and unreadable answers count as verified.
        """
        try:
            text = await self._call(
                build_vision_verify_prompt(expected_text),
                images=[image],
                max_tokens=self.vision_max_tokens,
            )
        except Exception as e:
            log.error(f"[{self.name}] Vision verification failed: {e}")
            return True

        span = extract_json_span(text, "{")
        if span is None:
            return True
        try:
            result = json.loads(span)
        except ValueError:
            return True
        if not isinstance(result, dict):
            return True
        return result.get("verified") is True
