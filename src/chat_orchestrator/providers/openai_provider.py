"""OpenAI provider adapter (Chat Completions streaming)."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from ..errors import ProviderProtocolError, ProviderTransportError
from ..events import StreamEvent, TextEvent
from ..models import Message, ToolDefinition
from .base import ProviderAdapter, ProviderContext, tool_use

_RETRYABLE = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIProvider(ProviderAdapter):
    """OpenAI-backed adapter using the Chat Completions API."""

    name = "openai"

    def __init__(
        self,
        default_model: str = "gpt-4.1-nano",
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(default_model)
        self.api_key = api_key or ""
        self.base_url = base_url
        self._client = client

    def _get_client(self) -> Any:
        if not self._client:
            kwargs: dict[str, Any] = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    @staticmethod
    def _to_openai_messages(messages: list[Message], system_prompt: str | None) -> list[dict[str, Any]]:
        """Convert internal Message objects into OpenAI chat message dicts."""
        out: list[dict[str, Any]] = []
        if system_prompt:
            out.append({"role": "system", "content": system_prompt})
        for m in messages:
            base: dict[str, Any] = {"role": m.role, "content": m.content or ""}
            # Assistant tool calls
            if m.role == "assistant" and m.tool_calls:
                base["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    }
                    for tc in m.tool_calls
                ]
                if not m.content:
                    base["content"] = None
            # Tool response messages
            if m.role == "tool":
                base["tool_call_id"] = m.tool_call_id or ""
            out.append(base)
        return out

    @staticmethod
    def _to_openai_tools(tools: tuple[ToolDefinition, ...]) -> list[dict[str, Any]]:
        return [t.to_tool_schema() for t in tools]

    async def stream_native(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        """Streaming chat; yields text deltas, then buffered tool calls on finish."""
        client = self._get_client()
        params: dict[str, Any] = {
            "model": context.model,
            "messages": self._to_openai_messages(context.messages, context.system_prompt),
            "stream": True,
        }
        if context.tools:
            params["tools"] = self._to_openai_tools(context.tools)

        stream = None
        try:
            stream = await client.chat.completions.create(**params)
            tool_calls_buffer: dict[int, dict[str, Any]] = {}
            finished = False

            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = getattr(choice, "delta", None)
                if delta is not None:
                    # Text deltas
                    if getattr(delta, "content", None):
                        yield TextEvent(content=delta.content)

                    # Tool call deltas arrive in pieces keyed by index
                    for tc in getattr(delta, "tool_calls", None) or []:
                        idx = getattr(tc, "index", 0)
                        buf = tool_calls_buffer.setdefault(
                            idx, {"id": "", "name": "", "arguments": ""}
                        )
                        if getattr(tc, "id", None):
                            buf["id"] = tc.id
                        fn = getattr(tc, "function", None)
                        if fn is not None:
                            if getattr(fn, "name", None):
                                buf["name"] = fn.name
                            if getattr(fn, "arguments", None):
                                buf["arguments"] += fn.arguments

                if getattr(choice, "finish_reason", None):
                    finished = True

            if not finished:
                raise ProviderProtocolError("OpenAI stream ended without a finish_reason")
            for idx in sorted(tool_calls_buffer):
                buf = tool_calls_buffer[idx]
                if not buf["name"]:
                    raise ProviderProtocolError(f"OpenAI tool call {idx} has no function name")
                yield tool_use(buf["id"] or f"call_{idx}", buf["name"], buf["arguments"])
        except openai.APIError as e:
            raise ProviderTransportError(
                f"OpenAI request failed: {e}",
                retryable=isinstance(e, _RETRYABLE),
                status_code=getattr(e, "status_code", None),
            ) from e
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                await close()
