"""Resolve the system prompt of a turn: the caller's override or the prompt file."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from .config import DEFAULT_SYSTEM_PROMPT_PATH

logger = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def load_prompt_file(path: Path = DEFAULT_SYSTEM_PROMPT_PATH) -> str | None:
    """Read a prompt file once. Missing or unreadable files give None."""
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning("System prompt %s not loaded: %s", path, e)
        return None
    return text or None


def resolve_system_prompt(override: str | None = None, path: Path = DEFAULT_SYSTEM_PROMPT_PATH) -> str | None:
    if override and override.strip():
        return override
    return load_prompt_file(path)
