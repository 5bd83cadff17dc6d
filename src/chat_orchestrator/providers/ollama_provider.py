"""Ollama provider adapter."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from typing import Any

import httpx
import ollama
from ollama import AsyncClient

from ..errors import ProviderProtocolError, ProviderTransportError
from ..events import StreamEvent, TextEvent
from ..models import Message, ToolDefinition
from .base import ProviderAdapter, ProviderContext, tool_use


def _message_to_chat(m: Message) -> dict[str, Any]:
    """Convert our Message to Ollama chat format."""
    out: dict[str, Any] = {"role": m.role, "content": m.content or ""}
    if m.tool_calls:
        out["tool_calls"] = [
            {"function": {"name": tc.name, "arguments": tc.arguments}}
            for tc in m.tool_calls
        ]
    if m.role == "tool" and m.name:
        out["tool_name"] = m.name
    return out


class OllamaProvider(ProviderAdapter):
    """Ollama-backed adapter."""

    name = "ollama"

    def __init__(
        self,
        default_model: str = "llama3.2",
        base_url: str | None = None,
        client: Any | None = None,
    ):
        super().__init__(default_model)
        self.base_url = base_url or "http://localhost:11434"
        self._client = client

    @staticmethod
    def _to_ollama_tools(tools: tuple[ToolDefinition, ...]) -> list[dict[str, Any]]:
        return [t.to_tool_schema() for t in tools]

    async def stream_native(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        client = self._client or AsyncClient(host=self.base_url)
        chat_messages = [_message_to_chat(m) for m in context.messages]
        if context.system_prompt:
            chat_messages.insert(0, {"role": "system", "content": context.system_prompt})

        stream = None
        try:
            stream = await client.chat(
                model=context.model,
                messages=chat_messages,
                tools=self._to_ollama_tools(context.tools) if context.tools else None,
                stream=True,
            )
            finished = False
            async for chunk in stream:
                msg = getattr(chunk, "message", None)
                if msg is not None:
                    delta = getattr(msg, "content", None) or ""
                    if delta:
                        yield TextEvent(content=delta)
                    # Ollama sends whole tool calls, never partial ones
                    for tc in getattr(msg, "tool_calls", None) or []:
                        fn = getattr(tc, "function", None)
                        if fn is None or not getattr(fn, "name", None):
                            raise ProviderProtocolError("Ollama tool call without a function name")
                        yield tool_use(uuid.uuid4().hex, fn.name, getattr(fn, "arguments", None))
                if getattr(chunk, "done", False):
                    finished = True
            if not finished:
                raise ProviderProtocolError("Ollama stream ended before done")
        except ollama.ResponseError as e:
            raise ProviderTransportError(
                f"Ollama request failed: {e.error}",
                retryable=e.status_code >= 500,
                status_code=e.status_code,
            ) from e
        except (httpx.HTTPError, ConnectionError) as e:
            raise ProviderTransportError(f"Ollama connection failed: {e}", retryable=True) from e
        finally:
            close_stream = getattr(stream, "aclose", None)
            if callable(close_stream):
                await close_stream()
            if self._client is None:
                aclose = getattr(client, "aclose", None)
                if callable(aclose):
                    await aclose()
