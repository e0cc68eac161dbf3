"""
Pipeline configuration.

Secrets and model names come from the environment (.env is loaded once on
import); thresholds are plain module constants so tests and callers can read
them directly.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


# ── Models ─────────────────────────────────────────────────────────────────────
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5")

GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
)

# ── Concurrency ────────────────────────────────────────────────────────────────
AI_MAX_CONCURRENCY = int(os.getenv("AI_MAX_CONCURRENCY", "5"))

# ── Quality thresholds ─────────────────────────────────────────────────────────
EVIDENCE_FAIL_THRESHOLD = 0.6
EVIDENCE_MATCH_RATIO = 0.5
CONFIDENCE_THRESHOLD = 0.45
WEAK_QUESTIONS_THRESHOLD = 0.4
WEAK_QUESTIONS_BASELINE = 20          # weak ratio is measured against a full 20-question quiz
MIN_ACCEPTABLE_QUESTIONS = 5
MAX_RECOVERED_QUESTIONS = 20
DEFAULT_QUESTION_COUNT = 20

UNCLEAR_SENTINEL = "UNCLEAR"
MIN_PAGE_TEXT_LENGTH = 20

# ── Batch size policy ──────────────────────────────────────────────────────────
LARGE_BATCH_THRESHOLD = 5             # batches with more pages than this are "large"
SPOT_CHECK_PAGES = 2
MAX_WEAK_REGENERATIONS_LARGE_BATCH = 2

NEUTRAL_CONFIDENCE = 0.7


def get_api_key(*names: str) -> Optional[str]:
    """First non-empty environment variable among ``names``."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def is_large_batch(page_count: int) -> bool:
    return page_count > LARGE_BATCH_THRESHOLD


class ProviderRoles(BaseModel):
    """Which registered provider plays which part in the pipeline."""
    primary: str = "gemini"
    fallback: str = "anthropic"
    regenerator: str = "openai"
    vision: str = "gemini"
    answer_tiebreak: str = "gemini"
    single_answer: str = "gemini"
