"""Tracks which session each live connection is attached to."""

from collections import defaultdict


class ConnectionRegistry:
    """
    Maps connection ids to session ids (never to Session objects).

    A connection is bound to at most one session. A reverse index gives the
    members of a session for broadcast.
    """

    def __init__(self) -> None:
        self._session_of: dict[str, str] = {}
        self._members: defaultdict[str, set[str]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._session_of)

    def bind(self, connection_id: str, session_id: str) -> None:
        """Attach a connection to a session, detaching it from any previous one."""
        previous = self._session_of.get(connection_id)
        if previous == session_id:
            return
        if previous is not None:
            self._discard_member(previous, connection_id)
        self._session_of[connection_id] = session_id
        self._members[session_id].add(connection_id)

    def current_session_of(self, connection_id: str) -> str | None:
        return self._session_of.get(connection_id)

    def unbind(self, connection_id: str) -> None:
        session_id = self._session_of.pop(connection_id, None)
        if session_id is not None:
            self._discard_member(session_id, connection_id)

    def members(self, session_id: str) -> set[str]:
        """Connections currently bound to the session (a copy)."""
        return set(self._members.get(session_id, ()))

    def _discard_member(self, session_id: str, connection_id: str) -> None:
        members = self._members.get(session_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._members[session_id]
