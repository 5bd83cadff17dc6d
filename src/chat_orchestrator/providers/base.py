"""Abstract provider adapter for the conversation orchestrator."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from ..errors import ProviderProtocolError, ProviderTransportError
from ..events import DoneEvent, ErrorEvent, ResultEvent, StreamEvent, ToolUseEvent
from ..models import Message, ToolDefinition, ToolInvocation

logger = logging.getLogger(__name__)


@dataclass
class ProviderContext:
    """Provider-neutral context of one turn.

    The adapter appends the user message, the assistant's tool-call messages
    and the tool results here as the turn progresses, so a follow-up call can
    rebuild the provider-native request from it.
    """

    model: str
    messages: list[Message] = field(default_factory=list)
    tools: tuple[ToolDefinition, ...] = ()
    system_prompt: str | None = None


def parse_tool_arguments(raw: Any) -> dict[str, Any]:
    """Decode tool-call arguments that arrive as a JSON string or a mapping."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProviderProtocolError(f"Tool arguments are not valid JSON: {e}") from e
        if isinstance(value, dict):
            return value
    raise ProviderProtocolError(f"Tool arguments must be an object, got {type(raw).__name__}")


class ProviderAdapter(ABC):
    """
    Abstract provider adapter. Implement ``stream_native`` to plug in a backend.

    One call to ``stream_turn``/``continue_turn`` streams a *segment*: text
    deltas and tool_use events, ending either right after its tool_use events
    (the turn is paused awaiting tool results), with ``result`` + ``done``, or
    with a single ``error``. Adapters never retry; the orchestrator decides.
    """

    name: str = "provider"

    def __init__(self, default_model: str) -> None:
        self.default_model = default_model

    def create_context(
        self,
        history: Sequence[Message],
        *,
        model: str | None = None,
        tools: Iterable[ToolDefinition] = (),
        system_prompt: str | None = None,
    ) -> ProviderContext:
        return ProviderContext(
            model=model or self.default_model,
            messages=[m for m in history if m.role != "system"],
            tools=tuple(tools),
            system_prompt=system_prompt,
        )

    async def stream_turn(self, context: ProviderContext, user_message: Message) -> AsyncIterator[StreamEvent]:
        """Start a turn with a new user message."""
        context.messages.append(user_message)
        async with aclosing(self._segment(context)) as events:
            async for event in events:
                yield event

    async def continue_turn(
        self, context: ProviderContext, tool_messages: Sequence[Message]
    ) -> AsyncIterator[StreamEvent]:
        """Feed tool outcomes back and resume generation."""
        context.messages.extend(tool_messages)
        async with aclosing(self._segment(context)) as events:
            async for event in events:
                yield event

    async def restream(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        """Re-issue the current segment unchanged (after a failed attempt)."""
        async with aclosing(self._segment(context)) as events:
            async for event in events:
                yield event

    async def _segment(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        text_parts: list[str] = []
        invocations: list[ToolInvocation] = []
        try:
            async with aclosing(self.stream_native(context)) as native:
                async for event in native:
                    if event.type == "text":
                        text_parts.append(event.content)
                    elif event.type == "tool_use":
                        invocations.append(event.invocation)
                    else:
                        raise ProviderProtocolError(f"Adapter produced unexpected event {event.type!r}")
                    yield event
        except ProviderTransportError as e:
            logger.warning("%s transport error: %s", self.name, e.message)
            yield ErrorEvent(code=e.code, message=e.message, retryable=e.retryable)
            return
        except ProviderProtocolError as e:
            logger.warning("%s protocol error: %s", self.name, e.message)
            yield ErrorEvent(code=e.code, message=e.message)
            return

        content = "".join(text_parts)
        if invocations:
            context.messages.append(
                Message(role="assistant", content=content, tool_calls=tuple(invocations))
            )
            return
        context.messages.append(Message(role="assistant", content=content))
        yield ResultEvent(content=content)
        yield DoneEvent()

    @abstractmethod
    def stream_native(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        """Call the backend and translate its native stream into text/tool_use events.

        Must raise ProviderTransportError for call failures and
        ProviderProtocolError for malformed stream shapes.
        """
        ...


def tool_use(invocation_id: str, name: str, arguments: Any) -> ToolUseEvent:
    return ToolUseEvent(invocation_id=invocation_id, name=name, arguments=parse_tool_arguments(arguments))
