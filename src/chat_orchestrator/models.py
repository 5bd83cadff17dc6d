"""Data models for messages, sessions, tools and permission requests."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorCode


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class ToolInvocation(BaseModel):
    """A tool call requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """A single message in a conversation. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: tuple[ToolInvocation, ...] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    is_error: bool = False
    seq: int | None = None
    created_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@dataclass
class Session:
    """A conversation identity with its ordered message history.

    ``turn_lock`` is held by the orchestrator for the whole duration of a turn;
    ``_lock`` only guards the message list itself.
    """

    session_id: str
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    last_active_at: datetime = field(default_factory=utc_now)
    turn_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def turn_active(self) -> bool:
        return self.turn_lock.locked()

    def touch(self) -> None:
        self.last_active_at = utc_now()


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    """Result of a single tool execution."""

    success: bool
    content: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, content: str, **metadata: Any) -> ToolResult:
        return cls(success=True, content=content, metadata=metadata)

    @classmethod
    def failure(cls, code: ErrorCode, error: str) -> ToolResult:
        return cls(success=False, error=error, error_code=code)

    def to_model_text(self) -> str:
        """Text handed back to the model as the tool message content."""
        return (self.content or "") if self.success else f"Error: {self.error}"


@dataclass(frozen=True)
class ToolDefinition:
    """Tool definition for the orchestrator and LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema
    requires_permission: bool = False

    def to_tool_schema(self) -> dict[str, Any]:
        """Standard function-calling schema (OpenAI-style) for any LLM provider."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionState(str, Enum):
    PENDING = "pending"
    ALLOWED = "allowed"
    DENIED = "denied"


class PermissionDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"

    @property
    def state(self) -> PermissionState:
        return PermissionState.ALLOWED if self is PermissionDecision.ALLOW else PermissionState.DENIED


class PermissionRequest(BaseModel):
    """Snapshot of a human approval request for one tool invocation."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    session_id: str
    invocation: ToolInvocation
    state: PermissionState = PermissionState.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: datetime | None = None

    def describe(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.invocation.arguments.items())
        return f"{self.invocation.name}({args})"
