"""Chat orchestrator: streaming LLM turns with approval-gated tool calls."""

from .errors import ChatOrchestratorError, ErrorCode
from .events import StreamEvent, parse_event
from .llm import ProviderResolver
from .models import (
    Message,
    PermissionDecision,
    PermissionRequest,
    PermissionState,
    Session,
    ToolDefinition,
    ToolInvocation,
    ToolResult,
)
from .orchestrator import ConversationOrchestrator, TurnOptions, TurnState
from .permissions import PermissionRegistry
from .providers import ProviderAdapter, ProviderContext
from .service import ChatServices, build_services
from .session_store import SessionStore
from .tools import BaseTool, ToolExecutor, get_default_tools

__all__ = [
    "ChatOrchestratorError",
    "ErrorCode",
    "StreamEvent",
    "parse_event",
    "ProviderResolver",
    "Message",
    "PermissionDecision",
    "PermissionRequest",
    "PermissionState",
    "Session",
    "ToolDefinition",
    "ToolInvocation",
    "ToolResult",
    "ConversationOrchestrator",
    "TurnOptions",
    "TurnState",
    "PermissionRegistry",
    "ProviderAdapter",
    "ProviderContext",
    "ChatServices",
    "build_services",
    "SessionStore",
    "BaseTool",
    "ToolExecutor",
    "get_default_tools",
]
