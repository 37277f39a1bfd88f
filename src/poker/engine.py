"""
Session engine: the state transitions of a planning poker session.

Each operation reads or creates a session through the SessionStore, mutates
it, writes it back, and returns the OutboundEvents to deliver. Snapshots are
taken at emit time, so a later mutation never changes an event already
produced.

Voting round state machine (per session):
    Open      isVotingRevealed = False, accepting votes
    Revealed  isVotingRevealed = True

    Open     --reveal_votes-->          Revealed
    Revealed --select_story/hide_votes--> Open (votes cleared)

Every operation except join is a silent no-op when the session does not
exist. Users are not removed on disconnect; they only leave a session when
the same connection joins a different one.
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from poker.connection_registry import ConnectionRegistry
from poker.models import Session, User, Vote, utc_now
from poker.session_store import SessionStore

logger = logging.getLogger(__name__)

ACCEPT_LATE_VOTES = os.getenv("ACCEPT_LATE_VOTES", "true").lower() == "true"


@dataclass(frozen=True)
class OutboundEvent:
    """
    A message to fan out.

    Attributes:
        type: Event name, e.g. "vote-submitted"
        payload: Event body, always including a "session" snapshot
        session_id: Deliver to members of this session
        to: Deliver to this single connection instead
        exclude: Connection to skip when delivering to a session
    """

    type: str
    payload: dict[str, Any]
    session_id: str | None = None
    to: str | None = None
    exclude: str | None = None


class SessionEngine:
    """Applies inbound operations to sessions and decides what to broadcast."""

    def __init__(
        self,
        store: SessionStore,
        connections: ConnectionRegistry,
        clock: Callable[[], datetime] = utc_now,
        accept_late_votes: bool = ACCEPT_LATE_VOTES,
    ) -> None:
        self.store = store
        self.connections = connections
        self.accept_late_votes = accept_late_votes
        self._clock = clock

    def _broadcast(self, event_type: str, session: Session, **payload: Any) -> OutboundEvent:
        return OutboundEvent(
            type=event_type,
            payload={**payload, "session": session.to_dict()},
            session_id=session.id,
        )

    def join(self, connection_id: str, session_id: str, user: dict[str, Any]) -> list[OutboundEvent]:
        events: list[OutboundEvent] = []
        user_id = user["id"]

        previous_id = self.connections.current_session_of(connection_id)
        if previous_id is not None and previous_id != session_id:
            previous = self.store.get(previous_id)
            if previous is not None:
                previous.users = [u for u in previous.users if u.id != user_id]
                self.store.put(previous_id, previous)
                events.append(
                    OutboundEvent(
                        type="user-left",
                        payload={"user": dict(user), "session": previous.to_dict()},
                        session_id=previous_id,
                        exclude=connection_id,
                    )
                )
                logger.info("User %s left session %s", user.get("name"), previous_id)

        self.connections.bind(connection_id, session_id)
        session = self.store.get_or_create(session_id)

        row = User.from_dict(user, last_activity=self._clock())
        for i, existing in enumerate(session.users):
            if existing.id == user_id:
                session.users[i] = row
                break
        else:
            session.users.append(row)
        self.store.put(session_id, session)

        snapshot = session.to_dict()
        user_data = row.to_dict()
        events.append(
            OutboundEvent(
                type="session-joined",
                payload={"session": snapshot, "user": user_data},
                to=connection_id,
            )
        )
        events.append(
            OutboundEvent(
                type="user-joined",
                payload={"user": user_data, "session": snapshot},
                session_id=session_id,
                exclude=connection_id,
            )
        )
        logger.info("User %s joined session %s", row.name, session_id)
        return events

    def update_session(self, session_id: str, partial: dict[str, Any]) -> list[OutboundEvent]:
        session = self.store.get(session_id)
        if session is None:
            return []
        try:
            session.merge(partial)
        except (TypeError, ValueError) as e:
            logger.warning("Rejected update for session %s: %s", session_id, e)
            return []
        self.store.put(session_id, session)
        logger.info("Session %s updated", session_id)
        return [self._broadcast("session-updated", session)]

    def select_story(self, session_id: str, story: dict[str, Any] | None) -> list[OutboundEvent]:
        session = self.store.get(session_id)
        if session is None:
            return []
        session.current_story = story
        session.votes = []
        session.is_voting_revealed = False
        self.store.put(session_id, session)
        logger.info(
            "Story selected in session %s: %s", session_id, (story or {}).get("number", "none")
        )
        return [self._broadcast("story-selected", session, story=story)]

    def submit_vote(self, session_id: str, vote: dict[str, Any]) -> list[OutboundEvent]:
        session = self.store.get(session_id)
        if session is None:
            return []
        if session.is_voting_revealed and not self.accept_late_votes:
            logger.info(
                "Dropped late vote in session %s by user %s", session_id, vote.get("userId")
            )
            return []

        row = Vote.from_dict(vote, timestamp=self._clock())
        session.votes = [v for v in session.votes if v.user_id != row.user_id]
        session.votes.append(row)
        self.store.put(session_id, session)
        logger.info("Vote submitted in session %s by user %s", session_id, row.user_id)
        return [self._broadcast("vote-submitted", session, vote=vote)]

    def reveal_votes(self, session_id: str) -> list[OutboundEvent]:
        session = self.store.get(session_id)
        if session is None:
            return []
        session.is_voting_revealed = True
        self.store.put(session_id, session)
        logger.info("Votes revealed in session %s", session_id)
        return [self._broadcast("votes-revealed", session)]

    def hide_votes(self, session_id: str) -> list[OutboundEvent]:
        session = self.store.get(session_id)
        if session is None:
            return []
        session.is_voting_revealed = False
        session.votes = []
        self.store.put(session_id, session)
        logger.info("Votes hidden in session %s", session_id)
        return [self._broadcast("votes-hidden", session)]

    def add_story(self, session_id: str, story: dict[str, Any]) -> list[OutboundEvent]:
        session = self.store.get(session_id)
        if session is None:
            return []
        session.stories.append(story)
        self.store.put(session_id, session)
        logger.info("Story added to session %s: %s", session_id, story.get("number"))
        return [self._broadcast("story-added", session, story=story)]

    def touch_activity(self, session_id: str, user_id: str) -> list[OutboundEvent]:
        session = self.store.get(session_id)
        if session is None:
            return []
        user = session.find_user(user_id)
        if user is not None:
            user.last_activity = self._clock()
            self.store.put(session_id, session)
        return []

    def disconnect(self, connection_id: str) -> list[OutboundEvent]:
        # User rows stay in the session so a reconnecting client keeps its place
        self.connections.unbind(connection_id)
        return []
