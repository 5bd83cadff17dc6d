"""Unit tests for the in-memory session store."""
from __future__ import annotations

import asyncio
import unittest
from datetime import timedelta

from src.chat_orchestrator.errors import SessionNotFound
from src.chat_orchestrator.models import Message, utc_now
from src.chat_orchestrator.session_store import SessionStore


class TestSessionStore(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SessionStore()

    def test_get_or_create_generates_id(self) -> None:
        session = self.store.get_or_create()
        self.assertTrue(session.session_id)
        self.assertIn(session.session_id, self.store)

    def test_get_or_create_is_idempotent(self) -> None:
        first = self.store.get_or_create("s1")
        second = self.store.get_or_create("s1")
        self.assertIs(first, second)
        self.assertEqual(len(self.store), 1)

    def test_append_assigns_sequence_numbers(self) -> None:
        self.store.get_or_create("s1")
        a = self.store.append("s1", Message(role="user", content="hi"))
        b = self.store.append("s1", Message(role="assistant", content="hello"))
        self.assertEqual((a.seq, b.seq), (0, 1))
        self.assertEqual([m.content for m in self.store.history("s1")], ["hi", "hello"])

    def test_history_is_a_copy(self) -> None:
        self.store.get_or_create("s1")
        self.store.append("s1", Message(role="user", content="hi"))
        history = self.store.history("s1")
        history.clear()
        self.assertEqual(len(self.store.history("s1")), 1)

    def test_sessions_are_isolated(self) -> None:
        self.store.get_or_create("a")
        self.store.get_or_create("b")
        self.store.append("a", Message(role="user", content="only a"))
        self.assertEqual(self.store.history("b"), [])

    def test_unknown_session_raises(self) -> None:
        with self.assertRaises(SessionNotFound):
            self.store.history("missing")
        with self.assertRaises(SessionNotFound):
            self.store.append("missing", Message(role="user", content="x"))
        with self.assertRaises(SessionNotFound):
            self.store.delete("missing")

    def test_delete_removes_session(self) -> None:
        self.store.get_or_create("s1")
        self.store.delete("s1")
        self.assertNotIn("s1", self.store)
        with self.assertRaises(SessionNotFound):
            self.store.get("s1")

    def test_evict_idle(self) -> None:
        self.store.get_or_create("old")
        self.store.get_or_create("fresh")
        later = utc_now() + timedelta(seconds=120)
        self.store.get("fresh").last_active_at = later
        evicted = self.store.evict_idle(60, now=later)
        self.assertEqual(evicted, ["old"])
        self.assertIn("fresh", self.store)


class TestSessionStoreTurns(unittest.IsolatedAsyncioTestCase):
    async def test_evict_idle_skips_active_turn(self) -> None:
        store = SessionStore()
        session = store.get_or_create("busy")
        async with session.turn_lock:
            evicted = store.evict_idle(0, now=utc_now() + timedelta(seconds=10))
        self.assertEqual(evicted, [])
        self.assertIn("busy", store)

    async def test_concurrent_appends_keep_every_message(self) -> None:
        store = SessionStore()
        store.get_or_create("s1")

        async def writer(n: int) -> None:
            for i in range(20):
                store.append("s1", Message(role="user", content=f"{n}-{i}"))
                await asyncio.sleep(0)

        await asyncio.gather(*(writer(n) for n in range(5)))
        history = store.history("s1")
        self.assertEqual(len(history), 100)
        self.assertEqual([m.seq for m in history], list(range(100)))


class TestServiceEviction(unittest.IsolatedAsyncioTestCase):
    async def test_evicted_sessions_lose_their_permission_requests(self) -> None:
        from src.chat_orchestrator.models import ToolInvocation

        from tests.fakes import EchoProvider, make_services

        services = make_services(EchoProvider())
        session = services.store.get_or_create("old")
        session.last_active_at = utc_now() - timedelta(minutes=10)
        services.permissions.create("old", ToolInvocation(id="c1", name="web_search", arguments={"query": "x"}))
        self.assertEqual(services.evict_idle_sessions(60), ["old"])
        self.assertEqual(services.permissions.pending(), [])


if __name__ == "__main__":
    unittest.main()
