"""Run the FastAPI app for the chat orchestrator."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from main_config import LOG_LEVEL
from src.chat_orchestrator.config import SESSION_IDLE_TIMEOUT_SECONDS, SESSION_SWEEP_INTERVAL_SECONDS
from src.chat_orchestrator.service import ChatServices, build_services
from src.routers import chat_router, permissions_router, sessions_router, tools_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def _sweep_idle_sessions(services: ChatServices) -> None:
    while True:
        await asyncio.sleep(SESSION_SWEEP_INTERVAL_SECONDS)
        services.evict_idle_sessions(SESSION_IDLE_TIMEOUT_SECONDS)


def create_app(services: ChatServices | None = None) -> FastAPI:
    """Build the app. Tests pass their own services (scripted providers, fake tools)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = None
        if SESSION_IDLE_TIMEOUT_SECONDS > 0:
            sweeper = asyncio.create_task(_sweep_idle_sessions(app.state.services))
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                try:
                    await sweeper
                except asyncio.CancelledError:
                    pass

    app = FastAPI(title="Chat Orchestrator", version="0.1.0", lifespan=lifespan)
    app.state.services = services or build_services()
    app.include_router(chat_router)
    app.include_router(permissions_router)
    app.include_router(sessions_router)
    app.include_router(tools_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
