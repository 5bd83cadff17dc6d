"""Unit tests for the permission registry."""
from __future__ import annotations

import asyncio
import unittest

from src.chat_orchestrator.errors import (
    PermissionAlreadyResolved,
    PermissionNotFound,
    TurnCancelled,
    TurnTimedOut,
)
from src.chat_orchestrator.models import PermissionDecision, PermissionState, ToolInvocation
from src.chat_orchestrator.permissions import PermissionRegistry


def _invocation() -> ToolInvocation:
    return ToolInvocation(id="call_1", name="web_search", arguments={"query": "weather"})


class TestPermissionRegistry(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.registry = PermissionRegistry()

    async def test_create_is_pending(self) -> None:
        request = self.registry.create("s1", _invocation())
        self.assertEqual(request.state, PermissionState.PENDING)
        self.assertEqual(self.registry.pending("s1"), [request])
        self.assertEqual(self.registry.pending("other"), [])
        self.assertIn("web_search", request.describe())

    async def test_resolve_then_await_returns_decision(self) -> None:
        request = self.registry.create("s1", _invocation())
        resolved = self.registry.resolve(request.request_id, "allow")
        self.assertEqual(resolved.state, PermissionState.ALLOWED)
        self.assertIsNotNone(resolved.resolved_at)
        decision = await self.registry.await_decision(request.request_id, timeout=1)
        self.assertIs(decision, PermissionDecision.ALLOW)
        self.assertEqual(len(self.registry), 0)

    async def test_await_wakes_on_resolve(self) -> None:
        request = self.registry.create("s1", _invocation())
        waiter = asyncio.create_task(self.registry.await_decision(request.request_id, timeout=5))
        await asyncio.sleep(0)
        self.registry.resolve(request.request_id, PermissionDecision.DENY)
        self.assertIs(await waiter, PermissionDecision.DENY)

    async def test_second_resolve_is_already_resolved(self) -> None:
        request = self.registry.create("s1", _invocation())
        self.registry.resolve(request.request_id, "deny")
        with self.assertRaises(PermissionAlreadyResolved):
            self.registry.resolve(request.request_id, "allow")
        await self.registry.await_decision(request.request_id)
        with self.assertRaises(PermissionAlreadyResolved):
            self.registry.resolve(request.request_id, "allow")

    async def test_unknown_request(self) -> None:
        with self.assertRaises(PermissionNotFound):
            self.registry.resolve("nope", "allow")
        with self.assertRaises(PermissionNotFound):
            await self.registry.await_decision("nope")

    async def test_invalid_decision(self) -> None:
        request = self.registry.create("s1", _invocation())
        with self.assertRaises(ValueError):
            self.registry.resolve(request.request_id, "maybe")
        self.assertEqual(self.registry.get(request.request_id).state, PermissionState.PENDING)

    async def test_timeout_purges_request(self) -> None:
        request = self.registry.create("s1", _invocation())
        with self.assertRaises(TurnTimedOut):
            await self.registry.await_decision(request.request_id, timeout=0.01)
        with self.assertRaises(PermissionNotFound):
            self.registry.resolve(request.request_id, "allow")

    async def test_cancel_event_interrupts_wait(self) -> None:
        request = self.registry.create("s1", _invocation())
        cancel = asyncio.Event()
        waiter = asyncio.create_task(
            self.registry.await_decision(request.request_id, timeout=5, cancel_event=cancel)
        )
        await asyncio.sleep(0)
        cancel.set()
        with self.assertRaises(TurnCancelled):
            await waiter
        self.assertEqual(len(self.registry), 0)

    async def test_purge_session_cancels_waiter(self) -> None:
        request = self.registry.create("s1", _invocation())
        other = self.registry.create("s2", _invocation())
        waiter = asyncio.create_task(self.registry.await_decision(request.request_id, timeout=5))
        await asyncio.sleep(0)
        self.assertEqual(self.registry.purge_session("s1"), 1)
        with self.assertRaises(TurnCancelled):
            await waiter
        self.assertEqual(self.registry.pending(), [self.registry.get(other.request_id)])

    async def test_tombstones_are_bounded(self) -> None:
        registry = PermissionRegistry(resolved_history=2)
        ids = []
        for _ in range(3):
            request = registry.create("s1", _invocation())
            registry.resolve(request.request_id, "allow")
            registry.discard(request.request_id)
            ids.append(request.request_id)
        with self.assertRaises(PermissionNotFound):
            registry.resolve(ids[0], "allow")
        with self.assertRaises(PermissionAlreadyResolved):
            registry.resolve(ids[2], "allow")


if __name__ == "__main__":
    unittest.main()
