"""
Quiz scoring — one answer string per question, in question order.
"""

from typing import List, Optional, Sequence, Tuple

from quiz_generation.schemas import (
    FillBlankQuestion,
    MatchingQuestion,
    MultipleChoiceQuestion,
    Question,
    TrueFalseQuestion,
)

TRUE_ANSWERS = {"true", "صح"}
MATCHING_CORRECT = "correct"


def is_correct(question: Question, answer: Optional[str]) -> bool:
    if isinstance(question, TrueFalseQuestion):
        return (answer in TRUE_ANSWERS) == question.correct
    if isinstance(question, FillBlankQuestion):
        return answer is not None and answer.strip().lower() == question.correct.strip().lower()
    if isinstance(question, MatchingQuestion):
        # the client grades the pairing and reports the outcome
        return answer == MATCHING_CORRECT
    if isinstance(question, MultipleChoiceQuestion):
        return answer == question.correct
    raise TypeError(f"Unhandled question type: {type(question).__name__}")


def calculate_scores(questions: List[Question], answers: Sequence[Optional[str]]) -> Tuple[int, int]:
    """(score, total). Missing answers score zero."""
    score = 0
    for i, question in enumerate(questions):
        answer = answers[i] if i < len(answers) else None
        if is_correct(question, answer):
            score += 1
    return score, len(questions)
