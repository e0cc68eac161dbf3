"""
Lazy SDK clients for the three model backends.

Gemini is reached through its OpenAI-compatible endpoint, so two of the three
providers share the openai SDK. A missing key is not an import-time error:
the factory raises RuntimeError on first use, which the pipeline treats like
any other provider failure.
"""

from typing import Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from quiz_generation.config import GEMINI_BASE_URL, get_api_key

# Lazy singletons
_openai_client: Optional[AsyncOpenAI] = None
_gemini_client: Optional[AsyncOpenAI] = None
_anthropic_client: Optional[AsyncAnthropic] = None


def _require_key(*names: str) -> str:
    api_key = get_api_key(*names)
    if not api_key:
        raise RuntimeError(f"{names[0]} is not set. Add it to your .env file.")
    return api_key


def get_openai_client() -> AsyncOpenAI:
    global _openai_client
    if _openai_client is None:
        _openai_client = AsyncOpenAI(api_key=_require_key("OPENAI_API_KEY"))
    return _openai_client


def get_gemini_client() -> AsyncOpenAI:
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = AsyncOpenAI(
            api_key=_require_key("GEMINI_API_KEY", "GOOGLE_API_KEY"),
            base_url=GEMINI_BASE_URL,
        )
    return _gemini_client


def get_anthropic_client() -> AsyncAnthropic:
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AsyncAnthropic(api_key=_require_key("ANTHROPIC_API_KEY"))
    return _anthropic_client
