"""Chat router: streaming (SSE) and non-streaming turn endpoints."""

from __future__ import annotations

from contextlib import aclosing
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from src.chat_orchestrator.errors import ErrorCode
from src.chat_orchestrator.orchestrator import TurnOptions
from src.chat_orchestrator.service import ChatServices
from src.chat_orchestrator.system_prompt_loader import resolve_system_prompt

from .deps import get_services

router = APIRouter(prefix="/chat", tags=["chat"])

_ERROR_STATUS = {
    ErrorCode.SESSION_BUSY: 409,
    ErrorCode.PROVIDER_CONFIG_ERROR: 400,
    ErrorCode.PROVIDER_TRANSPORT_ERROR: 502,
    ErrorCode.PROVIDER_PROTOCOL_ERROR: 502,
    ErrorCode.TURN_TIMED_OUT: 504,
    ErrorCode.TURN_CANCELLED: 499,
}


class ChatRequest(BaseModel):
    """Request body for POST /chat and POST /chat/stream."""

    message: str = Field(..., min_length=1, description="User message")
    session_id: str | None = Field(None, description="Optional session id to continue")
    system_prompt: str | None = Field(None, description="Optional system prompt")
    model: str | None = Field(
        None,
        description=(
            "LLM model in 'provider:model' format (e.g. 'anthropic:claude-sonnet-4-5', "
            "'openai:gpt-4.1-nano'). If no ':' is present, the value is treated as an "
            "Ollama model name. Defaults to the configured model."
        ),
    )


class ChatResponse(BaseModel):
    """Response for POST /chat."""

    session_id: str
    reply: str
    events: list[dict[str, Any]] = Field(default_factory=list)


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool


def _turn_options(request: ChatRequest) -> TurnOptions:
    return TurnOptions(
        model=request.model,
        system_prompt=resolve_system_prompt(request.system_prompt),
    )


@router.post("/stream")
async def chat_stream(
    request: ChatRequest,
    services: ChatServices = Depends(get_services),
) -> EventSourceResponse:
    """Run one turn and stream its events as server-sent events.

    Each SSE message is named after the event kind; ``done`` is always last.
    A client disconnect cancels the turn and purges its pending permission.
    """
    events = services.orchestrator.run_turn(
        request.session_id,
        request.message,
        options=_turn_options(request),
    )

    async def event_generator():
        async with aclosing(events) as stream:
            async for event in stream:
                yield event.to_sse()

    return EventSourceResponse(event_generator())


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    services: ChatServices = Depends(get_services),
) -> ChatResponse:
    """Run one turn and return the assistant reply with the full event log.

    Gated tools still wait for POST /permissions/confirm while this request is open.
    """
    collected: list[dict[str, Any]] = []
    session_id = request.session_id or ""
    reply = ""
    failure: tuple[int, dict[str, Any]] | None = None
    async with aclosing(
        services.orchestrator.run_turn(
            request.session_id,
            request.message,
            options=_turn_options(request),
        )
    ) as stream:
        async for event in stream:
            collected.append(event.model_dump(mode="json"))
            session_id = event.session_id or session_id
            if event.type == "result":
                reply = event.content
            elif event.type == "error":
                failure = (
                    _ERROR_STATUS.get(event.code, 500),
                    {"code": event.code.value, "message": event.message, "session_id": session_id},
                )

    if failure is not None:
        status_code, detail = failure
        raise HTTPException(status_code=status_code, detail=detail)
    return ChatResponse(session_id=session_id, reply=reply, events=collected)


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_turn(
    session_id: str,
    services: ChatServices = Depends(get_services),
) -> CancelResponse:
    """Stop the running turn of a session, if any."""
    return CancelResponse(session_id=session_id, cancelled=services.orchestrator.cancel(session_id))
