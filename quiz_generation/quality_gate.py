"""
Steps 2-3 — Quality gates

Cheap local checks that run before any model-based validation:
- unclear-page detection (sentinel or too little text)
- lexical evidence matching against the extracted text
"""

import logging
import re
from typing import List

from quiz_generation.config import EVIDENCE_MATCH_RATIO, MIN_PAGE_TEXT_LENGTH, UNCLEAR_SENTINEL
from quiz_generation.schemas import EvidenceCheckResult, QuestionEvidence

log = logging.getLogger("quiz_generation.pipeline")

MIN_EVIDENCE_LENGTH = 3
MIN_WORD_LENGTH = 3


def detect_unclear_pages(extracted_text: List[str]) -> bool:
    """True when any page is the UNCLEAR sentinel or shorter than MIN_PAGE_TEXT_LENGTH."""
    return any(
        text == UNCLEAR_SENTINEL or len(text) < MIN_PAGE_TEXT_LENGTH
        for text in extracted_text
    )


def _evidence_matches(source_text: str, full_text: str) -> bool:
    words = [w for w in re.split(r"\s+", source_text.lower()) if len(w) >= MIN_WORD_LENGTH]
    if not words:
        return False
    matched = sum(1 for word in words if word in full_text)
    return matched / len(words) >= EVIDENCE_MATCH_RATIO


def quick_evidence_check(
    extracted_text: List[str],
    evidence: List[QuestionEvidence],
) -> EvidenceCheckResult:
    """
    Fraction of evidence items whose quoted words are found in the page text.

    No evidence at all counts as total failure (fail_rate 1.0).
    """
    full_text = " ".join(extracted_text).lower()
    passed = failed = 0

    for item in evidence:
        source = item.source_text or ""
        if len(source) < MIN_EVIDENCE_LENGTH:
            failed += 1
        elif _evidence_matches(source, full_text):
            passed += 1
        else:
            failed += 1

    total = passed + failed
    result = EvidenceCheckResult(
        passed=passed,
        failed=failed,
        fail_rate=failed / total if total else 1.0,
    )
    log.info(f"[EvidenceCheck] passed={passed} failed={failed} failRate={result.fail_rate:.2f}")
    return result
