"""
Anthropic messages-API provider.

Images go in as base64 blocks ahead of the instruction text; the reply is the
concatenation of every text block.
"""

from typing import Callable, List, Optional

from anthropic import AsyncAnthropic

from quiz_generation.circuit_breaker import CircuitBreaker, get_circuit_breaker
from quiz_generation.clients import get_anthropic_client
from quiz_generation.config import ANTHROPIC_MODEL
from quiz_generation.limiter import ConcurrencyLimiter
from quiz_generation.providers.base import ProviderAdapter
from quiz_generation.schemas import EncodedImage

SUPPORTED_MEDIA_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


def build_content_blocks(prompt: str, images: Optional[List[EncodedImage]] = None) -> List[dict]:
    blocks = []
    for image in images or []:
        media_type = image.mime_type if image.mime_type in SUPPORTED_MEDIA_TYPES else "image/jpeg"
        blocks.append({
            "type": "image",
            "source": {"type": "base64", "media_type": media_type, "data": image.b64},
        })
    blocks.append({"type": "text", "text": prompt})
    return blocks


class AnthropicProvider(ProviderAdapter):

    def __init__(
        self,
        limiter: Optional[ConcurrencyLimiter] = None,
        breaker: Optional[CircuitBreaker] = None,
        model: str = ANTHROPIC_MODEL,
        client_factory: Callable[[], AsyncAnthropic] = get_anthropic_client,
    ):
        super().__init__("anthropic", limiter, breaker or get_circuit_breaker("anthropic"))
        self.model = model
        self._client_factory = client_factory

    async def _complete(
        self,
        prompt: str,
        images: Optional[List[EncodedImage]] = None,
        system: Optional[str] = None,
        max_tokens: int = 2048,
    ) -> str:
        client = self._client_factory()
        kwargs = {"system": system} if system else {}
        response = await client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": build_content_blocks(prompt, images)}],
            **kwargs,
        )
        # Concatenate only text blocks
        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text
        return content
