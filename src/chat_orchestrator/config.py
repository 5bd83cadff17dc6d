"""Orchestrator configuration: paths, defaults and provider credentials."""

from __future__ import annotations

from pathlib import Path

from main_config import (
    ANTHROPIC_API_KEY,
    CHAT_DEFAULT_MODEL as _CHAT_DEFAULT_MODEL,
    DEFAULT_SYSTEM_PROMPT_PATH as _DEFAULT_SYSTEM_PROMPT_PATH,
    GEMINI_API_KEY,
    OLLAMA_HOST,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    PERMISSION_TIMEOUT_SECONDS,
    SESSION_IDLE_TIMEOUT_SECONDS,
    SESSION_SWEEP_INTERVAL_SECONDS,
    TOOL_TIMEOUT_SECONDS,
)

# Path objects for use in this package (main_config uses os.path strings)
DEFAULT_SYSTEM_PROMPT_PATH = Path(_DEFAULT_SYSTEM_PROMPT_PATH)

DEFAULT_MODEL = _CHAT_DEFAULT_MODEL
DEFAULT_MAX_TOOL_ITERATIONS = 10
PROVIDER_MAX_RETRIES = 1
RESOLVED_PERMISSION_HISTORY = 1024
CLAUDE_MAX_TOKENS = 4096

__all__ = [
    "ANTHROPIC_API_KEY",
    "CLAUDE_MAX_TOKENS",
    "DEFAULT_MAX_TOOL_ITERATIONS",
    "DEFAULT_MODEL",
    "DEFAULT_SYSTEM_PROMPT_PATH",
    "GEMINI_API_KEY",
    "OLLAMA_HOST",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "PERMISSION_TIMEOUT_SECONDS",
    "PROVIDER_MAX_RETRIES",
    "RESOLVED_PERMISSION_HISTORY",
    "SESSION_IDLE_TIMEOUT_SECONDS",
    "SESSION_SWEEP_INTERVAL_SECONDS",
    "TOOL_TIMEOUT_SECONDS",
]
