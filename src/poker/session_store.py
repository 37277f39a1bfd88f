"""
In-memory store of planning poker sessions.

The store is the only owner of Session objects. Everything else refers to a
session by its key. Sessions are created lazily on first join and live for a
fixed lifetime from creation; activity does not extend it. Expired sessions
stay usable until the next sweep removes them.

All methods are synchronous. The server runs every handler and the reaper on
one event loop, so each call completes without interleaving.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from poker.models import Session, utc_now

logger = logging.getLogger(__name__)

SESSION_LIFETIME = timedelta(hours=24)


class SessionStore:
    """Registry of live sessions keyed by session id."""

    def __init__(
        self,
        lifetime: timedelta = SESSION_LIFETIME,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.lifetime = lifetime
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> Session:
        """Return the session, creating an empty one with a fresh expiry if absent."""
        session = self._sessions.get(session_id)
        if session is None:
            now = self._clock()
            session = Session(id=session_id, created_at=now, expires_at=now + self.lifetime)
            self._sessions[session_id] = session
            logger.info("Created session %s (expires %s)", session_id, session.expires_at)
        return session

    def put(self, session_id: str, session: Session) -> None:
        self._sessions[session_id] = session

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def expired_ids(self, now: datetime) -> list[str]:
        return [sid for sid, session in self._sessions.items() if session.is_expired(now)]

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Remove every session whose expiry has passed. Returns how many were removed."""
        now = now or self._clock()
        expired = self.expired_ids(now)
        for session_id in expired:
            del self._sessions[session_id]
            logger.info("Cleaned up expired session: %s", session_id)
        return len(expired)
