"""HTTP endpoint tests (FastAPI TestClient and httpx ASGI transport)."""
from __future__ import annotations

import asyncio
import json
import unittest

import httpx
from fastapi.testclient import TestClient

from main import create_app
from src.chat_orchestrator.events import TextEvent, parse_event
from src.chat_orchestrator.providers.base import tool_use

from tests.fakes import EchoProvider, FakeSearchTool, ScriptedProvider, make_services


class TestSyncEndpoints(unittest.TestCase):
    def setUp(self) -> None:
        self.services = make_services(EchoProvider())
        self.client = TestClient(create_app(self.services))

    def test_tools_catalog(self) -> None:
        resp = self.client.get("/tools")
        self.assertEqual(resp.status_code, 200)
        by_name = {t["name"]: t for t in resp.json()}
        self.assertEqual(set(by_name), {"get_time", "calculator", "web_search"})
        self.assertTrue(by_name["web_search"]["requires_permission"])

    def test_chat_and_sessions(self) -> None:
        resp = self.client.post("/chat", json={"message": "hello", "session_id": "s1"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["reply"], "echo: hello")
        self.assertEqual(body["session_id"], "s1")
        self.assertEqual(body["events"][-1]["type"], "done")

        sessions = self.client.get("/sessions").json()
        self.assertEqual([s["session_id"] for s in sessions], ["s1"])
        self.assertEqual(sessions[0]["message_count"], 2)
        self.assertFalse(sessions[0]["turn_active"])

        messages = self.client.get("/sessions/s1/messages").json()
        self.assertEqual([m["role"] for m in messages], ["user", "assistant"])

        self.assertEqual(self.client.delete("/sessions/s1").status_code, 204)
        self.assertEqual(self.client.delete("/sessions/s1").status_code, 404)
        self.assertEqual(self.client.get("/sessions/s1/messages").status_code, 404)

    def test_chat_rejects_empty_message(self) -> None:
        self.assertEqual(self.client.post("/chat", json={"message": ""}).status_code, 422)

    def test_chat_unknown_provider(self) -> None:
        resp = self.client.post("/chat", json={"message": "hi", "model": "nowhere:x"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"]["code"], "provider_config_error")

    def test_cancel_without_turn(self) -> None:
        resp = self.client.post("/chat/s1/cancel")
        self.assertEqual(resp.json(), {"session_id": "s1", "cancelled": False})

    def test_confirm_unknown_request(self) -> None:
        resp = self.client.post("/permissions/confirm", json={"request_id": "nope", "decision": "allow"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"]["code"], "permission_not_found")

    def test_confirm_bad_decision(self) -> None:
        resp = self.client.post("/permissions/confirm", json={"permissionRequestId": "x", "decision": "maybe"})
        self.assertEqual(resp.status_code, 422)

    def test_stream_emits_sse_events(self) -> None:
        with self.client.stream("POST", "/chat/stream", json={"message": "hi", "session_id": "s2"}) as resp:
            self.assertEqual(resp.status_code, 200)
            names = []
            payloads = []
            for line in resp.iter_lines():
                if line.startswith("event:"):
                    names.append(line.split(":", 1)[1].strip())
                elif line.startswith("data:"):
                    payloads.append(parse_event(line.split(":", 1)[1].strip()))
        self.assertEqual(names, ["text", "text", "result", "done"])
        self.assertEqual(payloads[2].content, "echo: hi")
        self.assertTrue(all(p.session_id == "s2" for p in payloads))


class TestPermissionFlow(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        provider = ScriptedProvider(
            [
                [tool_use("w1", "web_search", {"query": "news"})],
                [TextEvent(content="Skipped the search.")],
            ]
        )
        self.search = FakeSearchTool()
        self.services = make_services(provider, tools=[self.search])
        transport = httpx.ASGITransport(app=create_app(self.services))
        self.client = httpx.AsyncClient(transport=transport, base_url="http://test")
        self.addAsyncCleanup(self.client.aclose)

    async def _wait_for_pending(self) -> list[dict]:
        for _ in range(200):
            pending = (await self.client.get("/permissions", params={"session_id": "s1"})).json()
            if pending:
                return pending
            await asyncio.sleep(0.01)
        self.fail("no permission request appeared")

    async def test_deny_over_http(self) -> None:
        turn = asyncio.create_task(self.client.post("/chat", json={"message": "search news", "session_id": "s1"}))
        pending = await self._wait_for_pending()
        self.assertEqual(pending[0]["tool"], "web_search")
        self.assertEqual(pending[0]["state"], "pending")
        request_id = pending[0]["request_id"]

        resp = await self.client.post(
            "/permissions/confirm", json={"permissionRequestId": request_id, "decision": "deny"}
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["state"], "denied")

        result = await turn
        self.assertEqual(result.status_code, 200)
        events = result.json()["events"]
        self.assertEqual(
            [e["type"] for e in events],
            ["tool_use", "permission_request", "tool_result", "text", "result", "done"],
        )
        self.assertEqual(events[2]["status"], "denied")
        self.assertEqual(self.search.queries, [])

        again = await self.client.post("/permissions/confirm", json={"request_id": request_id, "decision": "allow"})
        self.assertEqual(again.status_code, 409)
        self.assertEqual(json.loads(again.text)["detail"]["code"], "permission_already_resolved")


if __name__ == "__main__":
    unittest.main()
