"""Anthropic Claude provider adapter (Messages API, raw stream events)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from ..config import CLAUDE_MAX_TOKENS
from ..errors import ProviderProtocolError, ProviderTransportError
from ..events import StreamEvent, TextEvent
from ..models import Message, ToolDefinition
from .base import ProviderAdapter, ProviderContext, tool_use

_RETRYABLE = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


class ClaudeProvider(ProviderAdapter):
    """Claude adapter using ``AsyncAnthropic().messages.create(stream=True)``."""

    name = "anthropic"

    def __init__(
        self,
        default_model: str = "claude-sonnet-4-5",
        api_key: str | None = None,
        max_tokens: int = CLAUDE_MAX_TOKENS,
        client: Any | None = None,
    ) -> None:
        super().__init__(default_model)
        self.api_key = api_key or ""
        self.max_tokens = max_tokens
        self._client = client

    def _get_client(self) -> Any:
        if not self._client:
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    @staticmethod
    def _to_claude_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert internal messages into Claude content blocks.

        Tool results become ``tool_result`` blocks inside a user turn; results
        for the same assistant turn are merged into one user message.
        """
        out: list[dict[str, Any]] = []
        for m in messages:
            if m.role == "system":
                continue
            if m.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": m.tool_call_id or "",
                    "content": m.content or "",
                    "is_error": m.is_error,
                }
                prev = out[-1] if out else None
                if (
                    prev is not None
                    and prev["role"] == "user"
                    and isinstance(prev["content"], list)
                    and all(b.get("type") == "tool_result" for b in prev["content"])
                ):
                    prev["content"].append(block)
                else:
                    out.append({"role": "user", "content": [block]})
                continue
            if m.role == "assistant" and m.tool_calls:
                blocks: list[dict[str, Any]] = []
                if m.content:
                    blocks.append({"type": "text", "text": m.content})
                blocks.extend(
                    {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments}
                    for tc in m.tool_calls
                )
                out.append({"role": "assistant", "content": blocks})
                continue
            # Claude rejects empty text turns
            if not m.content:
                continue
            out.append({"role": m.role, "content": m.content})
        return out

    @staticmethod
    def _to_claude_tools(tools: tuple[ToolDefinition, ...]) -> list[dict[str, Any]]:
        return [
            {"name": t.name, "description": t.description, "input_schema": t.parameters}
            for t in tools
        ]

    async def stream_native(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        client = self._get_client()
        params: dict[str, Any] = {
            "model": context.model,
            "max_tokens": self.max_tokens,
            "messages": self._to_claude_messages(context.messages),
            "stream": True,
        }
        if context.system_prompt:
            params["system"] = context.system_prompt
        if context.tools:
            params["tools"] = self._to_claude_tools(context.tools)

        stream = None
        try:
            stream = await client.messages.create(**params)
            # index -> {"id", "name", "json"} for tool_use blocks being streamed
            blocks: dict[int, dict[str, str]] = {}
            stopped = False

            async for event in stream:
                etype = getattr(event, "type", None)
                if etype == "content_block_start":
                    block = event.content_block
                    if getattr(block, "type", None) == "tool_use":
                        blocks[event.index] = {"id": block.id, "name": block.name, "json": ""}
                elif etype == "content_block_delta":
                    delta = event.delta
                    dtype = getattr(delta, "type", None)
                    if dtype == "text_delta":
                        if delta.text:
                            yield TextEvent(content=delta.text)
                    elif dtype == "input_json_delta":
                        buf = blocks.get(event.index)
                        if buf is None:
                            raise ProviderProtocolError(
                                f"input_json_delta for unknown content block {event.index}"
                            )
                        buf["json"] += delta.partial_json or ""
                elif etype == "content_block_stop":
                    buf = blocks.pop(event.index, None)
                    if buf is not None:
                        yield tool_use(buf["id"], buf["name"], buf["json"])
                elif etype == "message_stop":
                    stopped = True
                elif etype == "error":
                    error = getattr(event, "error", None)
                    raise ProviderTransportError(
                        f"Claude stream error: {getattr(error, 'message', error)}",
                        retryable=getattr(error, "type", "") == "overloaded_error",
                    )

            if not stopped:
                raise ProviderProtocolError("Claude stream ended without message_stop")
            if blocks:
                raise ProviderProtocolError("Claude stream ended with unterminated tool_use blocks")
        except (AttributeError, KeyError) as e:
            raise ProviderProtocolError(f"Malformed Claude stream event: {e}") from e
        except anthropic.APIError as e:
            raise ProviderTransportError(
                f"Claude request failed: {e}",
                retryable=isinstance(e, _RETRYABLE),
                status_code=getattr(e, "status_code", None),
            ) from e
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                await close()
