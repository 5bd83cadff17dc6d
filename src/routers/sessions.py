"""Session router: list sessions, read history, delete."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from src.chat_orchestrator.errors import SessionNotFound
from src.chat_orchestrator.models import Message
from src.chat_orchestrator.service import ChatServices

from .deps import get_services

router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionSummary(BaseModel):
    session_id: str
    created_at: datetime
    last_active_at: datetime
    message_count: int
    turn_active: bool


def _not_found(e: SessionNotFound) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": e.code.value, "message": e.message})


@router.get("", response_model=list[SessionSummary])
async def list_sessions(services: ChatServices = Depends(get_services)) -> list[SessionSummary]:
    return [
        SessionSummary(
            session_id=s.session_id,
            created_at=s.created_at,
            last_active_at=s.last_active_at,
            message_count=len(s.messages),
            turn_active=s.turn_active,
        )
        for s in services.store.list_sessions()
    ]


@router.get("/{session_id}/messages", response_model=list[Message])
async def get_messages(
    session_id: str,
    services: ChatServices = Depends(get_services),
) -> list[Message]:
    try:
        return services.store.history(session_id)
    except SessionNotFound as e:
        raise _not_found(e)


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    services: ChatServices = Depends(get_services),
) -> Response:
    """Delete a session; a running turn is cancelled and its pending request purged."""
    try:
        services.delete_session(session_id)
    except SessionNotFound as e:
        raise _not_found(e)
    return Response(status_code=204)
