"""Tool router: the catalog the model is offered."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.chat_orchestrator.service import ChatServices

from .deps import get_services

router = APIRouter(prefix="/tools", tags=["tools"])


class ToolView(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any]
    requires_permission: bool


@router.get("", response_model=list[ToolView])
async def list_tools(services: ChatServices = Depends(get_services)) -> list[ToolView]:
    return [
        ToolView(
            name=d.name,
            description=d.description,
            parameters=d.parameters,
            requires_permission=d.requires_permission,
        )
        for d in services.executor.catalog()
    ]
