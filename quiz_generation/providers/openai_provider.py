"""
OpenAI chat-completions provider.

GeminiProvider reuses this transport against Gemini's OpenAI-compatible
endpoint, so the message layout lives here once.
"""

from typing import Callable, List, Optional

from openai import AsyncOpenAI

from quiz_generation.circuit_breaker import CircuitBreaker, get_circuit_breaker
from quiz_generation.clients import get_openai_client
from quiz_generation.config import OPENAI_MODEL
from quiz_generation.limiter import ConcurrencyLimiter
from quiz_generation.providers.base import ProviderAdapter
from quiz_generation.schemas import EncodedImage


def build_chat_messages(
    prompt: str,
    images: Optional[List[EncodedImage]] = None,
    system: Optional[str] = None,
) -> List[dict]:
    """Chat messages with images sent as data-URL ``image_url`` parts, in page order."""
    messages = []
    if system:
        messages.append({"role": "system", "content": system})

    if images:
        content = [
            {"type": "image_url", "image_url": {"url": image.to_data_url()}}
            for image in images
        ]
        content.append({"type": "text", "text": prompt})
        messages.append({"role": "user", "content": content})
    else:
        messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIProvider(ProviderAdapter):
    provider_name = "openai"
    default_model = OPENAI_MODEL
    temperature = 0.4

    def __init__(
        self,
        limiter: Optional[ConcurrencyLimiter] = None,
        breaker: Optional[CircuitBreaker] = None,
        model: Optional[str] = None,
        client_factory: Optional[Callable[[], AsyncOpenAI]] = None,
    ):
        super().__init__(
            self.provider_name,
            limiter,
            breaker or get_circuit_breaker(self.provider_name),
        )
        self.model = model or self.default_model
        self._client_factory = client_factory or self._default_client

    @staticmethod
    def _default_client() -> AsyncOpenAI:
        return get_openai_client()

    async def _complete(
        self,
        prompt: str,
        images: Optional[List[EncodedImage]] = None,
        system: Optional[str] = None,
        max_tokens: int = 2048,
    ) -> str:
        client = self._client_factory()
        response = await client.chat.completions.create(
            model=self.model,
            messages=build_chat_messages(prompt, images, system),
            temperature=self.temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""
