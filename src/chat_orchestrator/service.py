"""Wiring of the store, registry, tools, providers and orchestrator into one bundle."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .llm import ProviderResolver
from .orchestrator import ConversationOrchestrator, TurnOptions
from .permissions import PermissionRegistry
from .session_store import SessionStore
from .tools import BaseTool, ToolExecutor, get_default_tools


@dataclass
class ChatServices:
    """Everything the HTTP layer needs, built once per application."""

    store: SessionStore
    permissions: PermissionRegistry
    executor: ToolExecutor
    providers: ProviderResolver
    orchestrator: ConversationOrchestrator

    def delete_session(self, session_id: str) -> None:
        """Delete a session, stopping its turn and dropping its permission requests.

        Raises SessionNotFound for an unknown id.
        """
        self.store.delete(session_id)
        self.orchestrator.cancel(session_id)
        self.permissions.purge_session(session_id)

    def evict_idle_sessions(self, max_idle_seconds: float) -> list[str]:
        evicted = self.store.evict_idle(max_idle_seconds)
        for session_id in evicted:
            self.permissions.purge_session(session_id)
        return evicted


def build_services(
    *,
    providers: ProviderResolver | None = None,
    tools: Iterable[BaseTool] | None = None,
    options: TurnOptions | None = None,
) -> ChatServices:
    store = SessionStore()
    permissions = PermissionRegistry()
    executor = ToolExecutor(get_default_tools() if tools is None else tools)
    resolver = providers or ProviderResolver()
    orchestrator = ConversationOrchestrator(store, permissions, executor, resolver, options)
    return ChatServices(
        store=store,
        permissions=permissions,
        executor=executor,
        providers=resolver,
        orchestrator=orchestrator,
    )
