"""
Step 7 — Answer consensus

Re-derives the answer key of every multiple-choice question:
- small batches: all providers answer, a letter with two or more votes wins,
  otherwise the tie-break provider's answer, otherwise the original key
- large batches: one provider answers and a valid letter is taken as-is
Other question types pass through untouched.
"""

import asyncio
import logging
from collections import Counter
from typing import Dict, List, Optional

from quiz_generation.config import is_large_batch
from quiz_generation.limiter import CONSENSUS_RETRY, RetryPolicy
from quiz_generation.prompts import format_mcq_block
from quiz_generation.providers import ProviderRegistry
from quiz_generation.schemas import (
    MCQ_LETTERS,
    FillBlankQuestion,
    MatchingQuestion,
    MultipleChoiceQuestion,
    Question,
    QuizContent,
    TrueFalseQuestion,
)

log = logging.getLogger("quiz_generation.pipeline")

MAJORITY = 2


def format_mcq_questions(questions: List[MultipleChoiceQuestion]) -> str:
    return "\n\n".join(
        format_mcq_block(i + 1, q.question, q.options) for i, q in enumerate(questions)
    )


def _valid_letter(answer: Optional[str], option_count: int = len(MCQ_LETTERS)) -> Optional[str]:
    if answer in MCQ_LETTERS and MCQ_LETTERS.index(answer) < option_count:
        return answer
    return None


def resolve_by_vote(
    original: str,
    votes: Dict[str, Optional[str]],
    tiebreak: str,
    option_count: int = len(MCQ_LETTERS),
) -> str:
    """
    Majority letter among ``votes`` (provider name → answer), else the
    tie-break provider's valid answer, else ``original``.
    """
    valid = [_valid_letter(answer, option_count) for answer in votes.values()]
    tally = Counter(letter for letter in valid if letter)
    if tally:
        letter, count = tally.most_common(1)[0]
        if count >= MAJORITY:
            return letter
    return _valid_letter(votes.get(tiebreak), option_count) or original


class ConsensusAnswerResolver:

    def __init__(self, registry: ProviderRegistry, retry: RetryPolicy = CONSENSUS_RETRY):
        self.registry = registry
        self.retry = retry

    async def resolve(self, content: QuizContent, page_count: int) -> QuizContent:
        if is_large_batch(page_count):
            log.info(f"[Consensus] Large batch ({page_count} images) - single model answer check")
            return await self.resolve_single(content)
        log.info("[Consensus] Validating answers with multi-model consensus")
        return await self.resolve_consensus(content)

    @staticmethod
    def _mcqs(content: QuizContent) -> List[MultipleChoiceQuestion]:
        return [q for q in content.questions if isinstance(q, MultipleChoiceQuestion)]

    async def resolve_single(self, content: QuizContent) -> QuizContent:
        mcqs = self._mcqs(content)
        if not mcqs:
            log.info("[Consensus] No MCQ questions to validate")
            return content

        provider = self.registry.single_answer
        answers = await provider.answer_multiple_choice(format_mcq_questions(mcqs), retry=self.retry)

        def decide(position: int, question: MultipleChoiceQuestion) -> str:
            answer = answers[position] if position < len(answers) else None
            return _valid_letter(answer, len(question.options)) or question.correct

        return self._apply(content, decide)

    async def resolve_consensus(self, content: QuizContent) -> QuizContent:
        mcqs = self._mcqs(content)
        if not mcqs:
            log.info("[Consensus] No MCQ questions to validate")
            return content

        questions_text = format_mcq_questions(mcqs)
        providers = self.registry.all()
        results = await asyncio.gather(*[
            provider.answer_multiple_choice(questions_text, retry=self.retry) for provider in providers
        ])
        answers_by_provider = {p.name: answers for p, answers in zip(providers, results)}
        tiebreak = self.registry.roles.answer_tiebreak

        def decide(position: int, question: MultipleChoiceQuestion) -> str:
            votes = {
                name: answers[position] if position < len(answers) else None
                for name, answers in answers_by_provider.items()
            }
            final = resolve_by_vote(question.correct, votes, tiebreak, len(question.options))
            log.debug(f"[Consensus] MCQ Q{position + 1} votes={votes} final={final}")
            return final

        return self._apply(content, decide)

    @staticmethod
    def _apply(content: QuizContent, decide) -> QuizContent:
        position = 0
        updated: List[Question] = []
        changed = 0
        for question in content.questions:
            if isinstance(question, MultipleChoiceQuestion):
                letter = decide(position, question)
                position += 1
                if letter != question.correct:
                    changed += 1
                    question = question.model_copy(update={"correct": letter})
            elif not isinstance(question, (TrueFalseQuestion, FillBlankQuestion, MatchingQuestion)):
                raise TypeError(f"Unhandled question type: {type(question).__name__}")
            updated.append(question)

        log.info(f"[Consensus] Answer key updated for {changed}/{position} MCQs")
        return content.model_copy(update={"questions": updated})
