"""Provider adapters: pluggable LLM backends for the conversation orchestrator."""

from .base import ProviderAdapter, ProviderContext, parse_tool_arguments
from .claude_provider import ClaudeProvider
from .gemini_provider import GeminiProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "ProviderAdapter",
    "ProviderContext",
    "parse_tool_arguments",
    "ClaudeProvider",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
]
