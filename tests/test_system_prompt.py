"""Tests for system prompt resolution."""
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from src.chat_orchestrator.config import DEFAULT_SYSTEM_PROMPT_PATH
from src.chat_orchestrator.system_prompt_loader import load_prompt_file, resolve_system_prompt


class TestSystemPrompt(unittest.TestCase):
    def test_override_wins(self) -> None:
        self.assertEqual(resolve_system_prompt("Be terse."), "Be terse.")

    def test_default_file_is_shipped(self) -> None:
        self.assertTrue(DEFAULT_SYSTEM_PROMPT_PATH.exists())
        prompt = resolve_system_prompt(None)
        self.assertIn("web_search", prompt)

    def test_blank_override_falls_back(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "prompt.md"
            path.write_text("  From file.\n", encoding="utf-8")
            self.assertEqual(resolve_system_prompt("   ", path=path), "From file.")

    def test_missing_file(self) -> None:
        with self.assertLogs("src.chat_orchestrator.system_prompt_loader", level="WARNING"):
            self.assertIsNone(load_prompt_file(Path("/nonexistent/prompt.md")))


if __name__ == "__main__":
    unittest.main()
