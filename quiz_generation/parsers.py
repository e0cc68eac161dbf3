"""
Response parsers — model text → typed pipeline structures.

Two families:
  - best-effort parsers (answers, verdicts) feed votes that tolerate
    abstention, so they return [] / None instead of raising
  - the content parser is authoritative and raises ResponseParseError, which
    the orchestrator treats exactly like a transport failure
"""

import json
import logging
from typing import Any, List, NamedTuple, Optional

import json_repair
from pydantic import ValidationError

from quiz_generation.errors import ResponseParseError
from quiz_generation.json_extract import candidate_regions, extract_json_span, find_balanced_span
from quiz_generation.schemas import (
    MCQ_LETTERS,
    ExtendedQuizContent,
    FillBlankQuestion,
    Lesson,
    LessonStep,
    MatchingPair,
    MatchingQuestion,
    MultipleChoiceQuestion,
    Question,
    QuestionEvidence,
    QuizContent,
    RecommendedAction,
    TrueFalseQuestion,
    ValidationIssue,
    ValidationVerdict,
)
from quiz_generation.utils import sanitize_diagram

log = logging.getLogger(__name__)

EXTRACTION_PLACEHOLDER = "Text extraction not available"

_TRUE_WORDS = {"true", "yes", "1", "صح", "صحيح"}
_FALSE_WORDS = {"false", "no", "0", "خطأ", "خطا"}


# ─── Coercion helpers ─────────────────────────────────────────────────────────

def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _as_confidence(value: Any, default: Optional[float]) -> Optional[float]:
    number = _as_float(value)
    if number is None:
        return default
    return min(1.0, max(0.0, number))


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


# ─── Best-effort parsers ──────────────────────────────────────────────────────

def parse_answers(text: str) -> List[str]:
    """
    Pull the answer letters out of an MCQ-answering response.

    Accepts ``{"answers": [...]}`` or a bare JSON array. The fenced block is
    searched before the surrounding text, and an object beats an array only
    within the same region.
    Letters are upper-cased. Any failure yields [] — the caller treats that
    as "no usable answer".
    """
    try:
        answers = None
        for region in candidate_regions(text):
            obj_span = find_balanced_span(region, "{")
            if obj_span is not None:
                parsed = json.loads(obj_span)
                answers = parsed.get("answers") if isinstance(parsed, dict) else None
                break
            arr_span = find_balanced_span(region, "[")
            if arr_span is not None:
                answers = json.loads(arr_span)
                break

        if not isinstance(answers, list):
            return []
        return ["" if a is None else str(a).strip().upper() for a in answers]
    except Exception as e:
        log.error(f"Failed to parse answers JSON: {e} (preview={text[:200]!r})")
        return []


def _parse_action(value: Any) -> RecommendedAction:
    if value is None:
        return RecommendedAction.ACCEPT
    try:
        return RecommendedAction(str(value).strip().upper())
    except ValueError:
        log.warning(f"Unknown recommendedAction {value!r} - treating as ACCEPT")
        return RecommendedAction.ACCEPT


def parse_validation_verdict(text: str) -> Optional[ValidationVerdict]:
    """Parse a grounding verdict, filling absent fields with defaults. None on failure."""
    span = extract_json_span(text, "{")
    if span is None:
        return None
    try:
        parsed = json.loads(span)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None

    try:
        weak: List[int] = []
        for item in parsed.get("weakQuestions") or []:
            index = _as_int(item)
            if index is not None and index not in weak:
                weak.append(index)

        issues: List[ValidationIssue] = []
        for item in parsed.get("issues") or []:
            if not isinstance(item, dict):
                continue
            issues.append(ValidationIssue(
                type=str(item.get("type", "UNKNOWN")).strip().upper(),
                severity=str(item.get("severity", "medium")).strip().lower(),
                question_index=_as_int(item.get("questionIndex")),
                reason=str(item.get("reason", "")),
            ))

        return ValidationVerdict(
            overall_confidence=_as_confidence(parsed.get("overallConfidence"), 0.5),
            weak_questions=weak,
            issues=issues,
            recommended_action=_parse_action(parsed.get("recommendedAction")),
        )
    except Exception as e:
        log.warning(f"Discarding malformed validation verdict: {e}")
        return None


# ─── Question builders ────────────────────────────────────────────────────────

def parse_evidence(raw: Any) -> Optional[QuestionEvidence]:
    """Evidence object from model JSON; accepts sourceText/text and pageIndex/page."""
    if not isinstance(raw, dict):
        return None
    source = raw.get("sourceText", raw.get("text"))
    page = raw.get("pageIndex", raw.get("page"))
    return QuestionEvidence(
        source_text="" if source is None else str(source),
        page_index=max(0, _as_int(page) or 0),
        confidence=_as_confidence(raw.get("confidence"), 0.5),
    )


def _build_mcq(raw: dict, base: dict, index: int) -> Optional[MultipleChoiceQuestion]:
    if "options" not in raw:
        raise ResponseParseError("MCQ missing options")

    options_raw = raw.get("options")
    if not isinstance(options_raw, list):
        log.warning(f"Skipping MCQ with invalid options at index {index}")
        return None

    options = [
        str(opt).strip() for opt in options_raw
        if isinstance(opt, (str, int, float)) and not isinstance(opt, bool) and str(opt).strip()
    ]
    if len(options) < 2:
        log.warning(f"Skipping MCQ with empty options at index {index} (valid={len(options)})")
        return None
    options = options[:4]

    correct = str(raw.get("correct") or "").strip().upper()
    if correct not in MCQ_LETTERS or MCQ_LETTERS.index(correct) >= len(options):
        log.warning(f"Skipping MCQ with invalid correct answer at index {index} (correct={raw.get('correct')!r})")
        return None

    return MultipleChoiceQuestion(**base, options=options, correct=correct)


def _build_true_false(raw: dict, base: dict, index: int) -> Optional[TrueFalseQuestion]:
    correct = _as_bool(raw.get("correct"))
    if correct is None:
        log.warning(f"Skipping true/false with no answer at index {index}")
        return None
    return TrueFalseQuestion(**base, correct=correct)


def _build_fill_blank(raw: dict, base: dict, index: int) -> Optional[FillBlankQuestion]:
    correct = _opt_str(raw.get("correct"))
    if correct is None:
        log.warning(f"Skipping fill-in-the-blank with no answer at index {index}")
        return None
    return FillBlankQuestion(**base, correct=correct, hint=_opt_str(raw.get("hint")))


def _build_matching(raw: dict, base: dict, index: int) -> Optional[MatchingQuestion]:
    pairs = []
    for pair in raw.get("pairs") or []:
        if not isinstance(pair, dict):
            continue
        left, right = _opt_str(pair.get("left")), _opt_str(pair.get("right"))
        if left and right:
            pairs.append(MatchingPair(left=left, right=right))
    if len(pairs) < 2:
        log.warning(f"Skipping matching question with {len(pairs)} usable pairs at index {index}")
        return None
    return MatchingQuestion(**base, pairs=pairs[:4])


_BUILDERS = {
    "multiple_choice": _build_mcq,
    "true_false": _build_true_false,
    "fill_blank": _build_fill_blank,
    "matching": _build_matching,
}


def parse_question(raw: Any, index: int = 0) -> Optional[Question]:
    """
    Build one typed question from model JSON.

    Returns None when this single question must be dropped. Raises
    ResponseParseError only for an MCQ without an ``options`` field.
    """
    if not isinstance(raw, dict):
        log.warning(f"Skipping non-object question at index {index}")
        return None

    text = raw.get("question")
    if not isinstance(text, str) or not text.strip():
        log.warning(f"Skipping empty question at index {index}")
        return None

    q_type = raw.get("type") or "multiple_choice"
    builder = _BUILDERS.get(q_type)
    if builder is None:
        log.warning(f"Skipping question with unknown type {q_type!r} at index {index}")
        return None

    base = {
        "question": text.strip(),
        "explanation": _opt_str(raw.get("explanation")),
        "diagram": sanitize_diagram(raw.get("diagram")),
        "evidence": parse_evidence(raw.get("evidence")),
    }
    try:
        return builder(raw, base, index)
    except ValidationError as e:
        log.warning(f"Skipping invalid {q_type} question at index {index}: {e.error_count()} schema error(s)")
        return None


# ─── Content parsers (authoritative) ──────────────────────────────────────────

def load_json_object(text: str) -> dict:
    """
    Find and decode the JSON object in ``text``.

    Strict decoding first; truncated or slightly malformed output is passed
    through json_repair before giving up.
    """
    span = extract_json_span(text, "{", allow_unterminated=True)
    if span is None:
        log.error(f"No JSON found in AI response (preview={(text or '')[:500]!r})")
        raise ResponseParseError("No JSON found in response")

    try:
        parsed = json.loads(span)
    except ValueError as e:
        try:
            parsed = json_repair.loads(span)
        except Exception:
            parsed = None
        if not isinstance(parsed, dict):
            log.error(f"JSON parse error: {e} (preview={span[:500]!r})")
            raise ResponseParseError("Failed to parse JSON response") from e
        log.info("Recovered malformed JSON in AI response with json_repair")

    if not isinstance(parsed, dict):
        raise ResponseParseError("Failed to parse JSON response")
    return parsed


def _build_lesson(parsed: dict) -> Lesson:
    lesson_raw = parsed.get("lesson") if isinstance(parsed.get("lesson"), dict) else {}

    extracted = _str_list(parsed.get("extractedText")) or _str_list(lesson_raw.get("extractedText"))
    if not extracted:
        log.warning("Generation missing extractedText - adding placeholder")
        extracted = [EXTRACTION_PLACEHOLDER]

    confidence = _as_confidence(lesson_raw.get("confidence"), None)
    if confidence is None:
        log.warning("Generation missing confidence - setting to 0.7")
        confidence = 0.7

    steps: List[LessonStep] = []
    for step in lesson_raw.get("steps") or []:
        try:
            steps.append(LessonStep.model_validate(step))
        except ValidationError:
            log.warning(f"Dropping malformed lesson step: {str(step)[:120]}")

    lesson = Lesson(
        title=_opt_str(lesson_raw.get("title")) or "Lesson",
        summary=str(lesson_raw.get("summary") or ""),
        key_points=_str_list(lesson_raw.get("keyPoints")),
        steps=steps,
        target_age=_as_int(lesson_raw.get("targetAge")) or 9,
        extracted_text=extracted,
        confidence=confidence,
    )
    log.info(f"Lesson confidence={lesson.confidence} extractedTextCount={len(lesson.extracted_text)}")
    return lesson


def _log_evidence_quality(questions: List[Question]) -> None:
    sample = questions[:5]
    evidence_count = sum(
        1 for q in sample
        if q.evidence and q.evidence.source_text and q.evidence.confidence > 0.5
    )
    if evidence_count < 2:
        log.warning(f"Low evidence quality: {evidence_count}/{len(sample)} checked questions grounded")
    else:
        log.info(f"Evidence quality check passed: {evidence_count}/{len(sample)}")


class _ParsedContent(NamedTuple):
    content: QuizContent
    raw: dict
    kept_raw_questions: List[dict]


def _parse_content(text: str) -> _ParsedContent:
    parsed = load_json_object(text)
    lesson = _build_lesson(parsed)

    questions_raw = parsed.get("questions")
    if not isinstance(questions_raw, list) or not questions_raw:
        log.error("Invalid questions format in AI response")
        raise ResponseParseError("Invalid questions format")

    questions: List[Question] = []
    kept_raw: List[dict] = []
    for i, raw in enumerate(questions_raw):
        question = parse_question(raw, i)
        if question is not None:
            questions.append(question)
            kept_raw.append(raw)

    if not questions:
        log.error(f"All {len(questions_raw)} questions in AI response were invalid")
        raise ResponseParseError("Invalid questions format")

    if len(questions) < len(questions_raw):
        log.warning(f"Dropped {len(questions_raw) - len(questions)}/{len(questions_raw)} invalid questions")

    _log_evidence_quality(questions)
    return _ParsedContent(QuizContent(lesson=lesson, questions=questions), parsed, kept_raw)


def parse_content(text: str) -> QuizContent:
    """Authoritative lesson + questions parse. Raises ResponseParseError."""
    return _parse_content(text).content


def parse_extended_content(text: str) -> ExtendedQuizContent:
    """
    parse_content plus the grounding metadata (per-page text, per-question
    evidence). The metadata is best effort: it never makes this call fail.
    """
    result = _parse_content(text)
    questions = result.content.questions

    try:
        lesson_raw = result.raw.get("lesson") if isinstance(result.raw.get("lesson"), dict) else {}
        extracted = _str_list(result.raw.get("extractedText")) or _str_list(lesson_raw.get("extractedText"))
        evidence = [
            parse_evidence(raw.get("evidence")) or QuestionEvidence()
            for raw in result.kept_raw_questions
        ]
    except Exception as e:
        log.warning(f"Extended metadata unavailable, using defaults: {e}")
        extracted = []
        evidence = [QuestionEvidence() for _ in questions]

    return ExtendedQuizContent(
        lesson=result.content.lesson,
        questions=questions,
        extracted_text=extracted or [""],
        question_evidence=evidence,
    )
