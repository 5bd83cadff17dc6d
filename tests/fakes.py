"""Test doubles: a scripted provider adapter, in-memory tools and a services builder."""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import aclosing
from typing import Any

from src.chat_orchestrator.errors import ProviderProtocolError
from src.chat_orchestrator.events import StreamEvent, TextEvent
from src.chat_orchestrator.llm import ProviderResolver
from src.chat_orchestrator.models import Message, ToolResult
from src.chat_orchestrator.orchestrator import TurnOptions
from src.chat_orchestrator.providers.base import ProviderAdapter, ProviderContext
from src.chat_orchestrator.service import ChatServices, build_services
from src.chat_orchestrator.tools import BaseTool, CalculatorTool, GetTimeTool


class ScriptedProvider(ProviderAdapter):
    """Replays one scripted segment per provider call.

    A segment is a list of items: events are yielded, exceptions are raised and
    an ``asyncio.Event`` is awaited before moving on (to hold a turn mid-stream).
    """

    name = "scripted"

    def __init__(self, segments: Iterable[list[Any]], default_model: str = "scripted-1") -> None:
        super().__init__(default_model)
        self.segments = list(segments)
        self.calls: list[list[Message]] = []

    async def stream_native(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        self.calls.append(list(context.messages))
        if not self.segments:
            raise ProviderProtocolError("Script exhausted")
        for item in self.segments.pop(0):
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield item


class EchoProvider(ProviderAdapter):
    """Answers every turn with ``echo: <last user message>``, in two text deltas."""

    name = "echo"

    def __init__(self) -> None:
        super().__init__("echo-1")

    async def stream_native(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        last = next(m for m in reversed(context.messages) if m.role == "user")
        yield TextEvent(content="echo: ")
        await asyncio.sleep(0)
        yield TextEvent(content=last.content)


class FakeSearchTool(BaseTool):
    """Gated stand-in for web_search that never touches the network."""

    requires_permission = True

    def __init__(self) -> None:
        self.queries: list[str] = []

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Search the web."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"],
        }

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        self.queries.append(params["query"])
        return ToolResult.ok(f"- result for {params['query']}")


class BlockingTool(BaseTool):
    """Ungated tool that runs until ``release`` is set; records whether it was cancelled."""

    def __init__(self, result: str = "stale") -> None:
        self.result = result
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.cancelled = False

    @property
    def name(self) -> str:
        return "slow_lookup"

    @property
    def description(self) -> str:
        return "Look something up slowly."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return ToolResult.ok(self.result)


def make_services(
    provider: ProviderAdapter,
    tools: Iterable[BaseTool] | None = None,
    options: TurnOptions | None = None,
) -> ChatServices:
    resolver = ProviderResolver(default_model=f"{provider.name}:", factories={})
    resolver.register(provider.name, provider)
    if tools is None:
        tools = [GetTimeTool(), CalculatorTool(), FakeSearchTool()]
    return build_services(providers=resolver, tools=tools, options=options)


async def collect(events: AsyncIterator[StreamEvent]) -> list[StreamEvent]:
    async with aclosing(events) as stream:
        return [event async for event in stream]


def kinds(events: list[StreamEvent]) -> list[str]:
    return [e.type for e in events]
