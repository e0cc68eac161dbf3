"""
Prompt templates for every model call in the pipeline.

Wording is configuration; the JSON shapes requested here are what
quiz_generation.parsers expects back.
"""

from typing import List

from quiz_generation.config import DEFAULT_QUESTION_COUNT


# ─── Generation ────────────────────────────────────────────────────────────────

GENERATION_PROMPT = """You are a certified primary-school teacher.

TEXT EXTRACTION (very important):
1. Extract the full text of every page image accurately, one entry per page, in page order.
2. If an image is blurry, cropped, or has too little text, return "extractedText": ["UNCLEAR"] and do NOT invent content.
3. For every question, quote the source text from the page it is built on, with the 0-based page index.

QUESTION RULES:
1. Options carry no letter prefixes: ["apple", "banana", "orange", "grape"], never ["A. apple", ...].
2. Test understanding of concepts and rules, not memorised personal details or dates.
3. English content: short English explanations (one or two sentences), English questions and options.
4. Arabic content: short, clear Modern Standard Arabic.
5. Keep every explanation to 3-4 sentences at most; do not repeat the same fact in two languages.

QUESTION TYPES:
- multiple_choice: exactly 4 options, "correct" is one of A, B, C, D
- true_false: "correct" is true or false
- fill_blank: "correct" is the missing text, optional "hint"
- matching: 2-4 {{"left", "right"}} pairs
- optional "diagram": a single self-contained <svg>...</svg> (no scripts, no event handlers)

Return JSON only:
{{
  "extractedText": ["text of page 1", "text of page 2"],
  "lesson": {{
    "title": "short, engaging title",
    "summary": "brief summary",
    "keyPoints": ["point 1", "point 2", "point 3"],
    "targetAge": 9,
    "confidence": 0.0-1.0,
    "steps": [
      {{"type": "explanation", "content": "3-4 sentence explanation"}},
      {{"type": "example", "content": "short worked example"}},
      {{"type": "practice", "content": "Practice!", "question": "practice question",
        "options": ["1", "2", "3", "4"], "correctAnswer": "A", "hint": "hint"}}
    ]
  }},
  "questions": [
    {{
      "type": "multiple_choice",
      "question": "Which word is a noun?",
      "options": ["run", "happy", "dog", "quickly"],
      "correct": "C",
      "explanation": "Dog is a naming word.",
      "evidence": {{"sourceText": "quoted text from the page", "pageIndex": 0, "confidence": 0.9}}
    }},
    {{
      "type": "true_false",
      "question": "Verbs describe actions.",
      "correct": true,
      "explanation": "Verbs are action words.",
      "evidence": {{"sourceText": "quoted text", "pageIndex": 0, "confidence": 0.85}}
    }}
  ]
}}"""


def build_generation_prompt(page_count: int, question_count: int = DEFAULT_QUESTION_COUNT) -> str:
    """Full generation prompt for a batch of ``page_count`` pages."""
    if page_count > 1:
        tail = (
            f"\n\nThese are {page_count} pages from the same book/subject.\n"
            f"1. Put the text of each page in \"extractedText\" (one entry per page, in order)\n"
            f"2. Write one lesson summary covering all pages\n"
            f"3. Write {question_count} varied questions, each with evidence"
        )
    else:
        tail = (
            f"\n\nPut the page text in \"extractedText\" and write {question_count} questions, "
            f"each with evidence."
        )
    return GENERATION_PROMPT.format() + tail


BASIC_GENERATION_PROMPT = """You are a primary-school teacher. Analyse the images and write the lesson and the questions.

Options carry no letter prefixes. Keep explanations short and in the language of the page.
Question types: multiple_choice (4 options, "correct" is A-D), true_false, fill_blank, matching.

Return JSON only:
{
  "lesson": {"title": "short title", "summary": "brief summary", "keyPoints": ["point 1", "point 2"]},
  "questions": [
    {"type": "multiple_choice", "question": "...", "options": ["...", "...", "...", "..."], "correct": "A", "explanation": "..."}
  ]
}"""


def build_basic_generation_prompt() -> str:
    """Shorter prompt used by the full-retry path: lesson and questions only."""
    return BASIC_GENERATION_PROMPT


# ─── Answer consensus ──────────────────────────────────────────────────────────

ANSWER_VALIDATION_PROMPT = """You are a careful maths and language checker. Work out the correct answer to every question.

For each question:
1. Read it carefully
2. Solve it yourself
3. Pick the option (A, B, C, D) that holds the correct answer

A = first option, B = second option, C = third option, D = fourth option.

Return JSON only:
{"answers": ["A", "B", "C", "D"]}

with one entry per question, in the order given."""


def format_mcq_block(number: int, question: str, options: List[str]) -> str:
    lines = [f"Question {number}: {question}", "Options:"]
    for letter, option in zip("ABCD", options):
        lines.append(f"{letter}: {option}")
    return "\n".join(lines)


def build_answer_prompt(questions_text: str) -> str:
    return f"{ANSWER_VALIDATION_PROMPT}\n\nQuestions:\n{questions_text}"


# ─── Grounding validation ─────────────────────────────────────────────────────

GROUNDING_VALIDATION_PROMPT = """You are a quality reviewer for educational content. Check that the questions are built on the extracted text and not invented.

Text extracted from the images:
{pages}

Lesson:
Title: {title}
Summary: {summary}

Questions with their evidence (numbered from 0):
{questions}

Evaluate and return JSON only:
{{
  "overallConfidence": 0.0-1.0,
  "weakQuestions": [0-based numbers of weak questions],
  "issues": [{{"type": "OCR_SUSPECTED|CONTENT_DRIFT|HALLUCINATION", "severity": "low|medium|high", "questionIndex": 0, "reason": "why"}}],
  "recommendedAction": "ACCEPT|PARTIAL_REGENERATE|FULL_RETRY|REFUSE"
}}"""


def build_grounding_prompt(
    extracted_text: List[str],
    lesson_title: str,
    lesson_summary: str,
    questions_with_evidence: str,
) -> str:
    pages = "\n".join(f"[Page {i + 1}]: {text[:500]}..." for i, text in enumerate(extracted_text))
    return GROUNDING_VALIDATION_PROMPT.format(
        pages=pages,
        title=lesson_title,
        summary=lesson_summary,
        questions=questions_with_evidence,
    )


# ─── Partial regeneration ─────────────────────────────────────────────────────

REGENERATION_PROMPT = """Rewrite these questions so that each one is grounded in the extracted source text.

Source text:
{source}

Questions to rewrite:
{questions}

Return JSON only, one rewritten question per input question, in the same order and the same format
(type, question, options/correct/pairs as the type requires, explanation, evidence):
{{"questions": [ ... ]}}"""


def build_regeneration_prompt(extracted_text: List[str], question_lines: List[str]) -> str:
    return REGENERATION_PROMPT.format(
        source="\n".join(extracted_text)[:2000],
        questions="\n".join(f"{i + 1}. {line}" for i, line in enumerate(question_lines)),
    )


# ─── Vision spot-check ────────────────────────────────────────────────────────

VISION_VERIFY_PROMPT = """Check: does the following text really appear in this image? Return JSON: {{"verified": true/false, "reason": "why"}}

Text to check (excerpt):
"{snippet}\""""


def build_vision_verify_prompt(expected_text: str) -> str:
    return VISION_VERIFY_PROMPT.format(snippet=expected_text[:200])
