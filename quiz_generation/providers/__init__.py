from quiz_generation.providers.anthropic_provider import AnthropicProvider
from quiz_generation.providers.base import ProviderAdapter
from quiz_generation.providers.gemini_provider import GeminiProvider
from quiz_generation.providers.openai_provider import OpenAIProvider
from quiz_generation.providers.registry import ProviderRegistry, build_default_registry

__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "ProviderAdapter",
    "ProviderRegistry",
    "build_default_registry",
]
