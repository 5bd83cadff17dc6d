"""Google Gemini provider adapter."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..errors import ProviderProtocolError, ProviderTransportError
from ..events import StreamEvent, TextEvent
from ..models import Message, ToolDefinition
from .base import ProviderAdapter, ProviderContext, tool_use


class GeminiProvider(ProviderAdapter):
    """Gemini adapter using the google-genai SDK."""

    name = "gemini"

    def __init__(
        self,
        default_model: str = "gemini-2.5-flash",
        api_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(default_model)
        self.api_key = api_key or ""
        self._client = client

    def _get_client(self) -> Any:
        if not self._client:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options={"api_version": "v1beta"},
            )
        return self._client

    @staticmethod
    def _to_gemini_contents(messages: list[Message]) -> list[genai_types.Content]:
        """Convert internal Message objects into Gemini contents.

        Consecutive tool results are grouped into one user turn of
        function_response parts, answering the preceding function_call turn.
        """
        contents: list[genai_types.Content] = []
        for m in messages:
            if m.role == "system":
                continue
            if m.role == "tool":
                key = "error" if m.is_error else "result"
                part = genai_types.Part(
                    function_response=genai_types.FunctionResponse(
                        name=m.name or "",
                        response={key: m.content or ""},
                    )
                )
                prev = contents[-1] if contents else None
                if prev is not None and prev.role == "user" and all(
                    p.function_response is not None for p in prev.parts or []
                ):
                    prev.parts.append(part)
                else:
                    contents.append(genai_types.Content(role="user", parts=[part]))
                continue

            role = "model" if m.role == "assistant" else "user"
            parts: list[genai_types.Part] = []
            if m.content:
                # Construct Part directly to avoid signature issues with from_text()
                parts.append(genai_types.Part(text=m.content))
            for tc in m.tool_calls or ():
                parts.append(
                    genai_types.Part(
                        function_call=genai_types.FunctionCall(name=tc.name, args=tc.arguments)
                    )
                )
            if parts:
                contents.append(genai_types.Content(role=role, parts=parts))
        return contents

    @staticmethod
    def _to_gemini_tools(tools: tuple[ToolDefinition, ...]) -> list[genai_types.Tool] | None:
        """Convert function tools into Gemini Tool declarations."""
        if not tools:
            return None
        return [
            genai_types.Tool(
                function_declarations=[
                    genai_types.FunctionDeclaration(
                        name=t.name,
                        description=t.description,
                        parameters=t.parameters,
                    )
                    for t in tools
                ]
            )
        ]

    def _build_config(self, context: ProviderContext) -> genai_types.GenerateContentConfig:
        config_args: dict[str, Any] = {}
        gemini_tools = self._to_gemini_tools(context.tools)
        if gemini_tools:
            config_args["tools"] = gemini_tools
            config_args["tool_config"] = genai_types.ToolConfig(
                function_calling_config=genai_types.FunctionCallingConfig(
                    mode=genai_types.FunctionCallingConfigMode.AUTO
                )
            )
            # Tool calls are executed by the orchestrator, never by the SDK
            config_args["automatic_function_calling"] = genai_types.AutomaticFunctionCallingConfig(
                disable=True
            )
        if context.system_prompt:
            config_args["system_instruction"] = context.system_prompt
        return genai_types.GenerateContentConfig(**config_args)

    async def stream_native(self, context: ProviderContext) -> AsyncIterator[StreamEvent]:
        client = self._get_client()
        stream = None
        try:
            stream = await client.aio.models.generate_content_stream(
                model=context.model,
                contents=self._to_gemini_contents(context.messages),
                config=self._build_config(context),
            )
            async for chunk in stream:
                for cand in getattr(chunk, "candidates", None) or []:
                    content = getattr(cand, "content", None)
                    for part in getattr(content, "parts", None) or []:
                        if getattr(part, "text", None):
                            yield TextEvent(content=part.text)
                        fc = getattr(part, "function_call", None)
                        if fc is None:
                            continue
                        if not fc.name:
                            raise ProviderProtocolError("Gemini function call without a name")
                        yield tool_use(fc.id or uuid.uuid4().hex, fc.name, fc.args)
        except genai_errors.APIError as e:
            raise ProviderTransportError(
                f"Gemini request failed: {e}",
                retryable=isinstance(e, genai_errors.ServerError) or e.code == 429,
                status_code=e.code,
            ) from e
        finally:
            aclose = getattr(stream, "aclose", None)
            if callable(aclose):
                await aclose()
