"""
Pydantic schemas for the quiz generation pipeline.

Wire format is the camelCase JSON the models are prompted to return
(``extractedText``, ``keyPoints``, ``sourceText`` ...). Python code uses the
snake_case attribute names; ``model_dump(by_alias=True)`` gives back the wire
format.

Layer 1 (external):  EncodedImage, GenerationOptions → QuizContent
Layer 2 (internal):  ExtendedQuizContent, ValidationVerdict, check results
"""

import base64
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from quiz_generation.utils import parse_data_url


class WireModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Input ─────────────────────────────────────────────────────────────────────

class EncodedImage(WireModel):
    """One photographed page. Position in the batch is the page number."""
    data: bytes
    mime_type: str = "image/jpeg"

    @classmethod
    def from_data_url(cls, data_url: str) -> "EncodedImage":
        mime_type, payload = parse_data_url(data_url)
        return cls(data=base64.b64decode(payload), mime_type=mime_type)

    @property
    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64}"


OptimizationLevel = Literal["standard", "high-quality", "max-quality"]


class GenerationOptions(WireModel):
    optimize_images: bool = True
    optimization_level: OptimizationLevel = "standard"


# ─── Lesson ────────────────────────────────────────────────────────────────────

class LessonStep(WireModel):
    """Interactive learning step shown before the quiz."""
    type: Literal["explanation", "example", "practice"] = "explanation"
    content: str = ""
    question: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    hint: Optional[str] = None


class Lesson(WireModel):
    title: str = "Lesson"
    summary: str = ""
    key_points: List[str] = Field(default_factory=list)
    steps: List[LessonStep] = Field(default_factory=list)
    target_age: int = 9
    extracted_text: List[str] = Field(default_factory=list)
    confidence: float = Field(0.7, ge=0.0, le=1.0)


# ─── Questions ─────────────────────────────────────────────────────────────────

class QuestionEvidence(WireModel):
    """Claimed excerpt of the source text that a question is built on."""
    source_text: str = ""
    page_index: int = 0
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class BaseQuestion(WireModel):
    question: str
    explanation: Optional[str] = None
    diagram: Optional[str] = None
    evidence: Optional[QuestionEvidence] = None


MCQLetter = Literal["A", "B", "C", "D"]
MCQ_LETTERS = ("A", "B", "C", "D")


class MultipleChoiceQuestion(BaseQuestion):
    type: Literal["multiple_choice"] = "multiple_choice"
    options: List[str] = Field(..., min_length=2, max_length=4)
    correct: MCQLetter


class TrueFalseQuestion(BaseQuestion):
    type: Literal["true_false"] = "true_false"
    correct: bool


class FillBlankQuestion(BaseQuestion):
    type: Literal["fill_blank"] = "fill_blank"
    correct: str
    hint: Optional[str] = None


class MatchingPair(WireModel):
    left: str
    right: str


class MatchingQuestion(BaseQuestion):
    type: Literal["matching"] = "matching"
    pairs: List[MatchingPair] = Field(..., min_length=2, max_length=4)


Question = Annotated[
    Union[MultipleChoiceQuestion, TrueFalseQuestion, FillBlankQuestion, MatchingQuestion],
    Field(discriminator="type"),
]


# ─── Pipeline output ───────────────────────────────────────────────────────────

class QuizContent(WireModel):
    """The only externally visible output of the pipeline."""
    lesson: Lesson
    questions: List[Question]
    warnings: Optional[List[str]] = None


class ExtendedQuizContent(QuizContent):
    """QuizContent plus the grounding metadata used during validation."""
    extracted_text: List[str] = Field(default_factory=lambda: [""])
    question_evidence: List[QuestionEvidence] = Field(default_factory=list)

    def to_quiz_content(self) -> QuizContent:
        return QuizContent(lesson=self.lesson, questions=list(self.questions))


# ─── Validation ────────────────────────────────────────────────────────────────

class RecommendedAction(str, Enum):
    """Validator recommendation, ordered by severity (declaration order)."""
    ACCEPT = "ACCEPT"
    PARTIAL_REGENERATE = "PARTIAL_REGENERATE"
    FULL_RETRY = "FULL_RETRY"
    REFUSE = "REFUSE"

    @property
    def severity(self) -> int:
        return list(RecommendedAction).index(self)

    @classmethod
    def worst(cls, actions) -> "RecommendedAction":
        return max(actions, key=lambda a: a.severity, default=cls.ACCEPT)


class IssueType(str, Enum):
    OCR_SUSPECTED = "OCR_SUSPECTED"
    CONTENT_DRIFT = "CONTENT_DRIFT"
    HALLUCINATION = "HALLUCINATION"


class ValidationIssue(WireModel):
    type: str
    severity: str = "medium"
    question_index: Optional[int] = None
    reason: str = ""


class ValidationVerdict(WireModel):
    overall_confidence: float = Field(0.5, ge=0.0, le=1.0)
    weak_questions: List[int] = Field(default_factory=list)
    issues: List[ValidationIssue] = Field(default_factory=list)
    recommended_action: RecommendedAction = RecommendedAction.ACCEPT


class EvidenceCheckResult(WireModel):
    passed: int
    failed: int
    fail_rate: float = Field(..., ge=0.0, le=1.0)


class SpotCheckResult(WireModel):
    passed: bool
    failed_pages: List[int] = Field(default_factory=list)
    skipped_large_batch: bool = False
