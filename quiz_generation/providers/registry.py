"""
ProviderRegistry — providers by name, and by the role they play.

Pipeline components ask for ``registry.primary`` or ``registry.others(name)``;
they never branch on a provider's name.
"""

from typing import Iterable, List, Optional

from quiz_generation.config import ProviderRoles
from quiz_generation.limiter import ConcurrencyLimiter, get_default_limiter
from quiz_generation.providers.anthropic_provider import AnthropicProvider
from quiz_generation.providers.base import ProviderAdapter
from quiz_generation.providers.gemini_provider import GeminiProvider
from quiz_generation.providers.openai_provider import OpenAIProvider


class ProviderRegistry:

    def __init__(self, providers: Iterable[ProviderAdapter], roles: Optional[ProviderRoles] = None):
        self._providers = {}
        for provider in providers:
            if provider.name in self._providers:
                raise ValueError(f"Duplicate provider name: {provider.name}")
            self._providers[provider.name] = provider

        self.roles = roles or ProviderRoles()
        missing = sorted(
            {name for name in self.roles.model_dump().values() if name not in self._providers}
        )
        if missing:
            raise ValueError(f"Roles refer to unregistered providers: {', '.join(missing)}")

    def __len__(self) -> int:
        return len(self._providers)

    def __iter__(self):
        return iter(self._providers.values())

    @property
    def names(self) -> List[str]:
        return list(self._providers)

    def get(self, name: str) -> ProviderAdapter:
        try:
            return self._providers[name]
        except KeyError:
            raise KeyError(f"Unknown provider: {name}") from None

    def all(self) -> List[ProviderAdapter]:
        return list(self._providers.values())

    def others(self, excluding: str) -> List[ProviderAdapter]:
        """Every provider except ``excluding``, in registration order."""
        return [p for name, p in self._providers.items() if name != excluding]

    # ── Roles ──────────────────────────────────────────────────────────────────

    @property
    def primary(self) -> ProviderAdapter:
        return self.get(self.roles.primary)

    @property
    def fallback(self) -> ProviderAdapter:
        return self.get(self.roles.fallback)

    @property
    def regenerator(self) -> ProviderAdapter:
        return self.get(self.roles.regenerator)

    @property
    def vision(self) -> ProviderAdapter:
        return self.get(self.roles.vision)

    @property
    def answer_tiebreak(self) -> ProviderAdapter:
        return self.get(self.roles.answer_tiebreak)

    @property
    def single_answer(self) -> ProviderAdapter:
        return self.get(self.roles.single_answer)


def build_default_registry(
    limiter: Optional[ConcurrencyLimiter] = None,
    roles: Optional[ProviderRoles] = None,
) -> ProviderRegistry:
    """Gemini, OpenAI and Anthropic sharing one limiter."""
    limiter = limiter or get_default_limiter()
    return ProviderRegistry(
        [GeminiProvider(limiter), OpenAIProvider(limiter), AnthropicProvider(limiter)],
        roles,
    )
