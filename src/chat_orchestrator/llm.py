"""Provider resolution: map "provider:model" strings to cached adapters."""

from __future__ import annotations

from collections.abc import Callable
from typing import Tuple

from .config import (
    ANTHROPIC_API_KEY,
    DEFAULT_MODEL,
    GEMINI_API_KEY,
    OLLAMA_HOST,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
)
from .errors import ProviderConfigError
from .providers import (
    ClaudeProvider,
    GeminiProvider,
    OllamaProvider,
    OpenAIProvider,
    ProviderAdapter,
)

ProviderFactory = Callable[[], ProviderAdapter]

_ALIASES = {
    "claude": "anthropic",
    "google": "gemini",
}

DEFAULT_FACTORIES: dict[str, ProviderFactory] = {
    "anthropic": lambda: ClaudeProvider(api_key=ANTHROPIC_API_KEY),
    "openai": lambda: OpenAIProvider(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL),
    "gemini": lambda: GeminiProvider(api_key=GEMINI_API_KEY),
    "ollama": lambda: OllamaProvider(base_url=OLLAMA_HOST),
}


def split_model(model: str) -> Tuple[str, str]:
    """
    Split a model string into (provider_name, model_name).

    Expected formats:
    - "provider:model_name" (e.g. "openai:gpt-4.1-nano", "anthropic:claude-sonnet-4-5")
    - "model_name" (no colon) → treated as an Ollama model.
    """
    if ":" in model:
        provider_name, raw_model = model.split(":", 1)
        provider_name = provider_name.strip().lower()
    else:
        provider_name, raw_model = "ollama", model
    return _ALIASES.get(provider_name, provider_name), raw_model.strip()


class ProviderResolver:
    """Builds each provider adapter once, on first use, and caches it."""

    def __init__(
        self,
        default_model: str = DEFAULT_MODEL,
        factories: dict[str, ProviderFactory] | None = None,
    ) -> None:
        self.default_model = default_model
        self._factories = dict(DEFAULT_FACTORIES if factories is None else factories)
        self._cache: dict[str, ProviderAdapter] = {}

    def register(self, name: str, adapter: ProviderAdapter) -> None:
        """Install a ready-made adapter under ``name`` (overrides the factory)."""
        self._cache[name.lower()] = adapter

    def resolve(self, model: str | None = None) -> Tuple[ProviderAdapter, str]:
        """Return (adapter, model_name). An empty model name means the adapter's default."""
        provider_name, model_name = split_model(model or self.default_model)
        adapter = self._cache.get(provider_name)
        if adapter is None:
            factory = self._factories.get(provider_name)
            if factory is None:
                raise ProviderConfigError(f"Unknown provider: {provider_name}")
            adapter = self._cache.setdefault(provider_name, factory())
        return adapter, model_name or adapter.default_model
