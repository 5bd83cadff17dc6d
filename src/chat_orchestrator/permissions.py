"""Permission registry: pending human approvals for gated tool invocations.

A request is created by the orchestrator, resolved exactly once by the
decision endpoint, and awaited by the turn that created it. Whatever way the
wait ends (decision, timeout, cancellation) the request leaves the pending
map, so abandoned requests never accumulate.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass

from .config import RESOLVED_PERMISSION_HISTORY
from .errors import (
    PermissionAlreadyResolved,
    PermissionNotFound,
    TurnCancelled,
    TurnTimedOut,
)
from .models import (
    PermissionDecision,
    PermissionRequest,
    PermissionState,
    ToolInvocation,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class _Pending:
    request: PermissionRequest
    future: asyncio.Future[PermissionDecision]


class PermissionRegistry:
    """Tracks outstanding permission requests keyed by request id.

    Must be used from the event loop that runs the turns (the HTTP endpoints
    calling ``resolve`` are ``async def`` for that reason).
    """

    def __init__(self, resolved_history: int = RESOLVED_PERMISSION_HISTORY) -> None:
        self._pending: dict[str, _Pending] = {}
        # Tombstones of consumed requests so a repeated resolve reports
        # "already resolved" instead of "not found".
        self._resolved: OrderedDict[str, PermissionState] = OrderedDict()
        self._resolved_history = resolved_history

    def __len__(self) -> int:
        return len(self._pending)

    def create(self, session_id: str, invocation: ToolInvocation) -> PermissionRequest:
        request = PermissionRequest(
            request_id=uuid.uuid4().hex,
            session_id=session_id,
            invocation=invocation,
        )
        future: asyncio.Future[PermissionDecision] = asyncio.get_running_loop().create_future()
        self._pending[request.request_id] = _Pending(request=request, future=future)
        logger.info(
            "Permission request %s created for %s in session %s",
            request.request_id,
            invocation.name,
            session_id,
        )
        return request

    def get(self, request_id: str) -> PermissionRequest:
        entry = self._pending.get(request_id)
        if entry is None:
            raise PermissionNotFound(request_id)
        return entry.request

    def pending(self, session_id: str | None = None) -> list[PermissionRequest]:
        return [
            e.request
            for e in self._pending.values()
            if e.request.state is PermissionState.PENDING
            and (session_id is None or e.request.session_id == session_id)
        ]

    def resolve(self, request_id: str, decision: PermissionDecision | str) -> PermissionRequest:
        """Record the human decision. Raises ValueError for an unknown decision."""
        decision = PermissionDecision(decision)
        if request_id in self._resolved:
            raise PermissionAlreadyResolved(request_id)
        entry = self._pending.get(request_id)
        if entry is None:
            raise PermissionNotFound(request_id)
        if entry.request.state is not PermissionState.PENDING or entry.future.done():
            raise PermissionAlreadyResolved(request_id)
        entry.request = entry.request.model_copy(
            update={"state": decision.state, "resolved_at": utc_now()}
        )
        entry.future.set_result(decision)
        logger.info("Permission request %s resolved: %s", request_id, decision.value)
        return entry.request

    async def await_decision(
        self,
        request_id: str,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> PermissionDecision:
        """Suspend until the request is resolved, the timeout expires or ``cancel_event`` fires.

        Raises:
            PermissionNotFound: the request is unknown (or was already consumed).
            TurnTimedOut: no decision within ``timeout`` seconds.
            TurnCancelled: ``cancel_event`` was set first.
        """
        if cancel_event is not None and cancel_event.is_set():
            self.discard(request_id)
            raise TurnCancelled(f"Turn cancelled before permission {request_id} was decided")
        entry = self._pending.get(request_id)
        if entry is None:
            raise PermissionNotFound(request_id)

        waiters: set[asyncio.Future] = {entry.future}
        cancel_waiter: asyncio.Future | None = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if entry.future in done:
                if entry.future.cancelled():
                    raise TurnCancelled(f"Permission request {request_id} was purged")
                return entry.future.result()
            if cancel_waiter is not None and cancel_waiter in done:
                raise TurnCancelled(f"Turn cancelled while awaiting permission {request_id}")
            raise TurnTimedOut(f"No decision for permission request {request_id} within {timeout}s")
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            self.discard(request_id)

    def purge_session(self, session_id: str) -> int:
        """Drop every request owned by ``session_id``; waiting turns see a cancellation."""
        ids = [rid for rid, e in self._pending.items() if e.request.session_id == session_id]
        for rid in ids:
            entry = self._pending.get(rid)
            if entry is not None and not entry.future.done():
                entry.future.cancel()
            self.discard(rid)
        return len(ids)

    def discard(self, request_id: str) -> None:
        """Forget a request; idempotent. Decided requests leave a tombstone."""
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        state = entry.request.state
        if state is PermissionState.PENDING:
            logger.info("Permission request %s purged without a decision", request_id)
            return
        self._resolved[request_id] = state
        while len(self._resolved) > self._resolved_history:
            self._resolved.popitem(last=False)
