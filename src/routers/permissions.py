"""Permission router: list pending approvals and submit decisions."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from src.chat_orchestrator.errors import PermissionAlreadyResolved, PermissionNotFound
from src.chat_orchestrator.models import PermissionDecision, PermissionRequest
from src.chat_orchestrator.service import ChatServices

from .deps import get_services

router = APIRouter(prefix="/permissions", tags=["permissions"])


class PermissionView(BaseModel):
    request_id: str
    session_id: str
    invocation_id: str
    tool: str
    arguments: dict[str, Any]
    description: str
    state: str
    created_at: datetime
    resolved_at: datetime | None = None

    @classmethod
    def from_request(cls, request: PermissionRequest) -> PermissionView:
        return cls(
            request_id=request.request_id,
            session_id=request.session_id,
            invocation_id=request.invocation.id,
            tool=request.invocation.name,
            arguments=request.invocation.arguments,
            description=request.describe(),
            state=request.state.value,
            created_at=request.created_at,
            resolved_at=request.resolved_at,
        )


class ConfirmRequest(BaseModel):
    """Body for POST /permissions/confirm. Accepts ``permissionRequestId`` too."""

    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(..., alias="permissionRequestId", min_length=1)
    decision: PermissionDecision


@router.get("", response_model=list[PermissionView])
async def list_pending(
    session_id: str | None = None,
    services: ChatServices = Depends(get_services),
) -> list[PermissionView]:
    return [PermissionView.from_request(r) for r in services.permissions.pending(session_id)]


@router.post("/confirm", response_model=PermissionView)
async def confirm(
    body: ConfirmRequest,
    services: ChatServices = Depends(get_services),
) -> PermissionView:
    """Resolve a pending request with ``allow`` or ``deny``.

    404 when the id is unknown or its turn already gave up on it, 409 when it
    was already decided.
    """
    try:
        request = services.permissions.resolve(body.request_id, body.decision)
    except PermissionNotFound as e:
        raise HTTPException(status_code=404, detail={"code": e.code.value, "message": e.message})
    except PermissionAlreadyResolved as e:
        raise HTTPException(status_code=409, detail={"code": e.code.value, "message": e.message})
    return PermissionView.from_request(request)
