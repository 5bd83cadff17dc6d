"""Provider-neutral stream events.

Every event is a frozen pydantic model discriminated by ``type``. Adapters
produce ``text``/``tool_use`` (and ``result``/``done``/``error`` to close a
segment); the orchestrator adds ``tool_result``, ``permission_request``,
``status`` and the turn's own terminal ``result``/``error``/``done``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .errors import ErrorCode
from .models import ToolInvocation


class _BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str | None = None

    def to_sse(self) -> dict[str, str]:
        """One SSE message: event name is the kind, data is the JSON payload."""
        return {"event": self.type, "data": self.model_dump_json()}  # type: ignore[attr-defined]


class TextEvent(_BaseEvent):
    type: Literal["text"] = "text"
    content: str


class ToolUseEvent(_BaseEvent):
    type: Literal["tool_use"] = "tool_use"
    invocation_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    @property
    def invocation(self) -> ToolInvocation:
        return ToolInvocation(id=self.invocation_id, name=self.name, arguments=self.arguments)


class ToolResultEvent(_BaseEvent):
    type: Literal["tool_result"] = "tool_result"
    invocation_id: str
    name: str
    status: Literal["success", "denied", "error"]
    content: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None


class PermissionRequestEvent(_BaseEvent):
    type: Literal["permission_request"] = "permission_request"
    request_id: str
    invocation_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    description: str = ""


class StatusEvent(_BaseEvent):
    type: Literal["status"] = "status"
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ResultEvent(_BaseEvent):
    type: Literal["result"] = "result"
    content: str


class ErrorEvent(_BaseEvent):
    type: Literal["error"] = "error"
    code: ErrorCode
    message: str
    retryable: bool = False


class DoneEvent(_BaseEvent):
    type: Literal["done"] = "done"


StreamEvent = Annotated[
    Union[
        TextEvent,
        ToolUseEvent,
        ToolResultEvent,
        PermissionRequestEvent,
        StatusEvent,
        ResultEvent,
        ErrorEvent,
        DoneEvent,
    ],
    Field(discriminator="type"),
]

_stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(data: str | bytes | dict[str, Any]) -> StreamEvent:
    """Rebuild a typed event from its JSON payload (used by clients and tests)."""
    if isinstance(data, dict):
        return _stream_event_adapter.validate_python(data)
    return _stream_event_adapter.validate_json(data)


__all__ = [
    "DoneEvent",
    "ErrorEvent",
    "PermissionRequestEvent",
    "ResultEvent",
    "StatusEvent",
    "StreamEvent",
    "TextEvent",
    "ToolResultEvent",
    "ToolUseEvent",
    "parse_event",
]
