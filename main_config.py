import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PROMPTS_DIR = os.path.join(BASE_DIR, "prompts")
DEFAULT_SYSTEM_PROMPT_PATH = os.path.join(PROMPTS_DIR, "system_prompt.md")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CHAT_DEFAULT_MODEL = os.getenv("CHAT_DEFAULT_MODEL", "openai:gpt-4.1-nano")
PERMISSION_TIMEOUT_SECONDS = float(os.getenv("PERMISSION_TIMEOUT_SECONDS", "300"))
SESSION_IDLE_TIMEOUT_SECONDS = float(os.getenv("SESSION_IDLE_TIMEOUT_SECONDS", "3600"))
SESSION_SWEEP_INTERVAL_SECONDS = float(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "60"))
TOOL_TIMEOUT_SECONDS = float(os.getenv("TOOL_TIMEOUT_SECONDS", "30"))

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
GEMINI_API_KEY = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY", "")
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
