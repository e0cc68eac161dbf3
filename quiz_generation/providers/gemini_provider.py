"""
Gemini provider, called through Google's OpenAI-compatible endpoint.

Primary generator, vision verifier and answer tie-breaker under the default
ProviderRoles.
"""

from openai import AsyncOpenAI

from quiz_generation.clients import get_gemini_client
from quiz_generation.config import GEMINI_MODEL
from quiz_generation.providers.openai_provider import OpenAIProvider


class GeminiProvider(OpenAIProvider):
    provider_name = "gemini"
    default_model = GEMINI_MODEL
    temperature = 0.3

    @staticmethod
    def _default_client() -> AsyncOpenAI:
        return get_gemini_client()
