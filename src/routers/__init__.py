"""HTTP routers for the chat orchestrator."""

from .chat import router as chat_router
from .permissions import router as permissions_router
from .sessions import router as sessions_router
from .tools import router as tools_router

__all__ = ["chat_router", "permissions_router", "sessions_router", "tools_router"]
