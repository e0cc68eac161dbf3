"""
Quiz Generation Pipeline
quiz_generation/

Photographed textbook pages → validated lesson + quiz.

Steps:
0. Image Optimizer      — shrink large photos (best effort)
1. Providers            — extended generation, primary then fallback provider
2. Unclear-Text Gate    — sentinel or too-short page text → recapture
3. Evidence Gate        — lexical evidence matching, no model calls
4. Grounding Validator  — two independent providers review the quiz, verdicts merged
5. Regeneration         — full retry or weak-question rewrite, spliced back by index
6. Vision Spot-Check    — confirm extracted text against the first pages
7. Answer Consensus     — majority vote (or single model for large batches) on MCQ keys
8. Minimum-Count Gate   — recover from the pre-validation questions or ask for recapture

Entry point: quiz_generation.generate_quiz / QuizPipeline.generate
Grading:     quiz_generation.calculate_scores / is_correct for submitted answers
"""

from quiz_generation.errors import QuizGenerationError, RecaptureRequiredError, ValidationUnavailableError
from quiz_generation.pipeline import QuizPipeline, generate_quiz
from quiz_generation.schemas import GenerationOptions, QuizContent
from quiz_generation.scoring import calculate_scores, is_correct

__all__ = [
    "GenerationOptions",
    "QuizContent",
    "QuizGenerationError",
    "QuizPipeline",
    "RecaptureRequiredError",
    "ValidationUnavailableError",
    "calculate_scores",
    "generate_quiz",
    "is_correct",
]
