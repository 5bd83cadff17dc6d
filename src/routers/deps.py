"""FastAPI dependencies: the ChatServices bundle lives on app.state."""

from __future__ import annotations

from fastapi import Request

from src.chat_orchestrator.service import ChatServices


def get_services(request: Request) -> ChatServices:
    return request.app.state.services
