"""In-memory session store: lookup, append-only history, delete and idle eviction."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from .errors import SessionNotFound
from .models import Message, Session, utc_now

logger = logging.getLogger(__name__)


class SessionStore:
    """Owns every Session and its messages.

    Operations are atomic per session id: the map itself is only touched with
    single ``dict`` calls and each session's message list has its own lock.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get_or_create(self, session_id: str | None = None) -> Session:
        """Return the session for ``session_id``, creating it on first reference.

        A missing id gets a fresh UUID.
        """
        sid = session_id or str(uuid.uuid4())
        session = self._sessions.get(sid)
        if session is not None:
            return session
        session = self._sessions.setdefault(sid, Session(session_id=sid))
        logger.debug("Session %s ready", sid)
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def append(self, session_id: str, message: Message) -> Message:
        """Append ``message`` and return the stored copy carrying its ``seq``."""
        session = self.get(session_id)
        with session._lock:
            stored = message.model_copy(update={"seq": len(session.messages)})
            session.messages.append(stored)
            session.touch()
        return stored

    def history(self, session_id: str) -> list[Message]:
        session = self.get(session_id)
        with session._lock:
            return list(session.messages)

    def delete(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFound(session_id)
        logger.info("Deleted session %s", session_id)

    def list_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def evict_idle(self, max_idle_seconds: float, now: datetime | None = None) -> list[str]:
        """Drop sessions idle for longer than ``max_idle_seconds``.

        Sessions with a turn in flight are never evicted. Returns evicted ids.
        """
        cutoff = (now or utc_now()) - timedelta(seconds=max_idle_seconds)
        evicted: list[str] = []
        for session in self.list_sessions():
            if session.turn_active or session.last_active_at > cutoff:
                continue
            if self._sessions.pop(session.session_id, None) is not None:
                evicted.append(session.session_id)
        if evicted:
            logger.info("Evicted %d idle session(s)", len(evicted))
        return evicted
