"""Conversation orchestrator: drives one turn from user input to the terminal done event.

Turn states::

    Idle -> Generating -> (AwaitingPermission <-> Generating)* -> Finalizing -> Done
                 any non-terminal state -> Errored

Events of a turn are yielded strictly in the order they are produced. Every
turn ends with exactly one ``done`` event, preceded by ``error`` when the turn
failed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Coroutine
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from .config import (
    DEFAULT_MAX_TOOL_ITERATIONS,
    PERMISSION_TIMEOUT_SECONDS,
    PROVIDER_MAX_RETRIES,
)
from .errors import (
    ChatOrchestratorError,
    ErrorCode,
    ProviderProtocolError,
    ProviderTransportError,
    SessionBusy,
    SessionNotFound,
    ToolIterationLimit,
    TurnCancelled,
)
from .events import (
    DoneEvent,
    ErrorEvent,
    PermissionRequestEvent,
    ResultEvent,
    StatusEvent,
    StreamEvent,
    ToolResultEvent,
)
from .llm import ProviderResolver
from .models import Message, PermissionDecision, Session, ToolInvocation
from .permissions import PermissionRegistry
from .session_store import SessionStore
from .tools import ToolExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TurnState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    AWAITING_PERMISSION = "awaiting_permission"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"


_TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.IDLE: frozenset({TurnState.GENERATING, TurnState.ERRORED}),
    TurnState.GENERATING: frozenset(
        {TurnState.AWAITING_PERMISSION, TurnState.FINALIZING, TurnState.ERRORED}
    ),
    TurnState.AWAITING_PERMISSION: frozenset({TurnState.GENERATING, TurnState.ERRORED}),
    TurnState.FINALIZING: frozenset({TurnState.DONE, TurnState.ERRORED}),
    TurnState.DONE: frozenset(),
    TurnState.ERRORED: frozenset(),
}


@dataclass
class TurnOptions:
    """Options for one turn."""

    model: str | None = None
    system_prompt: str | None = None
    permission_timeout: float | None = PERMISSION_TIMEOUT_SECONDS
    max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS
    max_provider_retries: int = PROVIDER_MAX_RETRIES


class _Turn:
    """Transient control state of one in-flight turn."""

    def __init__(self, session: Session, cancel_event: asyncio.Event) -> None:
        self.session = session
        self.session_id = session.session_id
        self.cancel_event = cancel_event
        self.state = TurnState.IDLE
        self.tool_rounds = 0

    def transition(self, new: TurnState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal turn transition {self.state.value} -> {new.value}")
        logger.debug("Session %s: %s -> %s", self.session_id, self.state.value, new.value)
        self.state = new

    def fail(self) -> None:
        if _TRANSITIONS[self.state]:
            self.transition(TurnState.ERRORED)

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise TurnCancelled("Turn cancelled by client")

    async def until_cancelled(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` unless the turn is cancelled first; then cancel it and raise."""
        if self.cancel_event.is_set():
            coro.close()
            raise TurnCancelled("Turn cancelled by client")
        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self.cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if task in done:
                return task.result()
            raise TurnCancelled("Turn cancelled by client")
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.wait({task})


@dataclass
class _Segment:
    """What one adapter segment produced."""

    text: list[str] = field(default_factory=list)
    invocations: list[ToolInvocation] = field(default_factory=list)
    result: str | None = None
    error: ErrorEvent | None = None
    forwarded: int = 0


async def _next_event(stream: AsyncIterator[StreamEvent]) -> StreamEvent | None:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None


def _error_from_event(event: ErrorEvent) -> ChatOrchestratorError:
    if event.code is ErrorCode.PROVIDER_TRANSPORT_ERROR:
        return ProviderTransportError(event.message, retryable=event.retryable)
    return ProviderProtocolError(event.message)


class ConversationOrchestrator:
    """Runs turns against the session store, permission registry, tools and providers."""

    def __init__(
        self,
        store: SessionStore,
        permissions: PermissionRegistry,
        executor: ToolExecutor,
        providers: ProviderResolver,
        options: TurnOptions | None = None,
    ) -> None:
        self.store = store
        self.permissions = permissions
        self.executor = executor
        self.providers = providers
        self.options = options or TurnOptions()
        self._active: dict[str, asyncio.Event] = {}

    def active_sessions(self) -> list[str]:
        return list(self._active)

    def cancel(self, session_id: str) -> bool:
        """Ask the active turn of ``session_id`` to stop. False if none is running."""
        event = self._active.get(session_id)
        if event is None:
            return False
        event.set()
        return True

    async def run_turn(
        self,
        session_id: str | None,
        user_message: str,
        *,
        options: TurnOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn and yield its events, each stamped with the session id.

        A session accepts one turn at a time; a concurrent second turn gets
        ``error(session_busy)`` + ``done`` immediately.
        """
        opts = options or self.options
        session = self.store.get_or_create(session_id)
        sid = session.session_id
        if session.turn_active:
            busy = SessionBusy(sid)
            logger.info(busy.message)
            yield ErrorEvent(session_id=sid, code=busy.code, message=busy.message)
            yield DoneEvent(session_id=sid)
            return

        async with session.turn_lock:
            turn = _Turn(session, cancel_event or asyncio.Event())
            self._active[sid] = turn.cancel_event
            try:
                async with aclosing(self._drive(turn, user_message, opts)) as events:
                    async for event in events:
                        yield event.model_copy(update={"session_id": sid})
            finally:
                # A turn on a re-created session may own the slot by now.
                if self._active.get(sid) is turn.cancel_event:
                    del self._active[sid]

    def _append(self, turn: _Turn, message: Message) -> Message:
        try:
            current = self.store.get(turn.session_id)
        except SessionNotFound:
            current = None
        if current is not turn.session:
            raise TurnCancelled(f"Session {turn.session_id} was deleted during the turn")
        return self.store.append(turn.session_id, message)

    async def _drive(self, turn: _Turn, text: str, opts: TurnOptions) -> AsyncIterator[StreamEvent]:
        sid = turn.session_id
        try:
            adapter, model = self.providers.resolve(opts.model)
            context = adapter.create_context(
                self.store.history(sid),
                model=model,
                tools=self.executor.catalog(),
                system_prompt=opts.system_prompt,
            )
            user_message = self._append(turn, Message(role="user", content=text))
            turn.transition(TurnState.GENERATING)

            events = adapter.stream_turn(context, user_message)
            attempts = 0
            while True:
                segment = _Segment()
                async with aclosing(self._consume_segment(turn, events, segment)) as forwarded:
                    async for event in forwarded:
                        yield event

                if segment.error is not None:
                    error = segment.error
                    if error.retryable and segment.forwarded == 0 and attempts < opts.max_provider_retries:
                        attempts += 1
                        logger.info("Session %s: retrying provider call (%d): %s", sid, attempts, error.message)
                        yield StatusEvent(
                            message="retrying",
                            detail={"attempt": attempts, "reason": error.message},
                        )
                        events = adapter.restream(context)
                        continue
                    raise _error_from_event(error)
                attempts = 0

                if segment.invocations:
                    turn.tool_rounds += 1
                    if turn.tool_rounds > opts.max_tool_iterations:
                        raise ToolIterationLimit(
                            f"Model requested tools more than {opts.max_tool_iterations} times in one turn"
                        )
                    tool_messages: list[Message] = []
                    # One invocation at a time: at most one pending permission per turn.
                    for invocation in segment.invocations:
                        async with aclosing(self._run_tool(turn, invocation, tool_messages, opts)) as tool_events:
                            async for event in tool_events:
                                yield event
                    # The tool round enters history only once every result is in.
                    turn.check_cancelled()
                    self._append(
                        turn,
                        Message(
                            role="assistant",
                            content="".join(segment.text),
                            tool_calls=tuple(segment.invocations),
                        ),
                    )
                    for message in tool_messages:
                        self._append(turn, message)
                    events = adapter.continue_turn(context, tool_messages)
                    continue

                if segment.result is None:
                    raise ProviderProtocolError("Provider stream ended without a result")
                turn.transition(TurnState.FINALIZING)
                self._append(turn, Message(role="assistant", content=segment.result))
                yield ResultEvent(content=segment.result)
                turn.transition(TurnState.DONE)
                yield DoneEvent()
                return
        except ChatOrchestratorError as e:
            logger.info("Session %s: turn ended with %s: %s", sid, e.code.value, e.message)
            turn.fail()
            yield ErrorEvent(code=e.code, message=e.message, retryable=getattr(e, "retryable", False))
            yield DoneEvent()
        except Exception:
            logger.exception("Session %s: turn failed", sid)
            turn.fail()
            yield ErrorEvent(code=ErrorCode.INTERNAL_ERROR, message="Internal error")
            yield DoneEvent()

    async def _consume_segment(
        self,
        turn: _Turn,
        events: AsyncIterator[StreamEvent],
        segment: _Segment,
    ) -> AsyncIterator[StreamEvent]:
        """Forward text/status/tool_use events; record result, error and tool calls."""
        async with aclosing(events) as stream:
            while True:
                event = await turn.until_cancelled(_next_event(stream))
                if event is None:
                    break
                turn.check_cancelled()
                if event.type == "result":
                    segment.result = event.content
                elif event.type == "done":
                    break
                elif event.type == "error":
                    segment.error = event
                    break
                else:
                    if event.type == "text":
                        segment.text.append(event.content)
                    elif event.type == "tool_use":
                        segment.invocations.append(event.invocation)
                    segment.forwarded += 1
                    yield event
        turn.check_cancelled()

    async def _run_tool(
        self,
        turn: _Turn,
        invocation: ToolInvocation,
        tool_messages: list[Message],
        opts: TurnOptions,
    ) -> AsyncIterator[StreamEvent]:
        definition = self.executor.get(invocation.name)
        if definition is not None and definition.requires_permission:
            request = self.permissions.create(turn.session_id, invocation)
            turn.transition(TurnState.AWAITING_PERMISSION)
            try:
                yield PermissionRequestEvent(
                    request_id=request.request_id,
                    invocation_id=invocation.id,
                    name=invocation.name,
                    arguments=invocation.arguments,
                    description=request.describe(),
                )
                decision = await self.permissions.await_decision(
                    request.request_id,
                    timeout=opts.permission_timeout,
                    cancel_event=turn.cancel_event,
                )
            finally:
                self.permissions.discard(request.request_id)
            turn.transition(TurnState.GENERATING)

            if decision is PermissionDecision.DENY:
                denial = f"Permission denied: the user declined to run {invocation.name}."
                yield ToolResultEvent(
                    invocation_id=invocation.id,
                    name=invocation.name,
                    status="denied",
                    content=denial,
                )
                tool_messages.append(
                    Message(
                        role="tool",
                        content=denial,
                        tool_call_id=invocation.id,
                        name=invocation.name,
                        is_error=True,
                    )
                )
                return

        result = await turn.until_cancelled(self.executor.execute(invocation.name, invocation.arguments))
        yield ToolResultEvent(
            invocation_id=invocation.id,
            name=invocation.name,
            status="success" if result.success else "error",
            content=result.content,
            error=result.error,
            error_code=result.error_code,
        )
        tool_messages.append(
            Message(
                role="tool",
                content=result.to_model_text(),
                tool_call_id=invocation.id,
                name=invocation.name,
                is_error=not result.success,
            )
        )
