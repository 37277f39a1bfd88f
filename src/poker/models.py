"""
Shared data types for planning poker sessions.

Sessions are held in memory as dataclasses and converted to plain dicts
(camelCase keys, ISO-8601 timestamps) whenever a snapshot is sent to clients.
Story and vote payloads are client-defined and passed through untouched.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Fields that a partial session update may never overwrite
PROTECTED_FIELDS = frozenset({"id"})


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(ts: datetime) -> str:
    """Format a timestamp like JavaScript's Date.toISOString()."""
    return ts.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_ts(value: datetime | str) -> datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    ts = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


@dataclass
class User:
    """A session participant. `extra` carries any client-defined fields."""

    id: str
    name: str
    last_activity: datetime = field(default_factory=utc_now)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], last_activity: datetime | None = None) -> User:
        """Build a row from wire fields. An explicit last_activity wins over the payload's."""
        extra = {k: v for k, v in data.items() if k not in ("id", "name", "lastActivity")}
        if last_activity is None:
            sent = data.get("lastActivity")
            last_activity = parse_ts(sent) if sent else utc_now()
        return cls(id=data["id"], name=data.get("name", ""), last_activity=last_activity, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "name": self.name,
            "lastActivity": to_iso(self.last_activity),
        }


@dataclass
class Vote:
    """A single user's estimate for the current story."""

    user_id: str
    value: Any
    timestamp: datetime = field(default_factory=utc_now)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], timestamp: datetime | None = None) -> Vote:
        extra = {k: v for k, v in data.items() if k not in ("userId", "value", "timestamp")}
        if timestamp is None:
            sent = data.get("timestamp")
            timestamp = parse_ts(sent) if sent else utc_now()
        return cls(user_id=data["userId"], value=data.get("value"), timestamp=timestamp, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "userId": self.user_id,
            "value": self.value,
            "timestamp": to_iso(self.timestamp),
        }


@dataclass
class Session:
    """
    Shared state of one planning poker session.

    Attributes:
        id: Session key, never changed after creation
        users: Participants in join order, unique by id
        current_story: Story being estimated (opaque payload) or None
        stories: Stories added over the session's life
        votes: Votes for the current story, at most one per user
        is_voting_revealed: True once votes are revealed for this round
        created_at: Creation time
        expires_at: Fixed expiry, not refreshed by activity
        extra: Unknown top-level fields merged in by clients
    """

    id: str
    created_at: datetime
    expires_at: datetime
    users: list[User] = field(default_factory=list)
    current_story: dict[str, Any] | None = None
    stories: list[dict[str, Any]] = field(default_factory=list)
    votes: list[Vote] = field(default_factory=list)
    is_voting_revealed: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def find_user(self, user_id: str) -> User | None:
        return next((u for u in self.users if u.id == user_id), None)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def to_dict(self) -> dict[str, Any]:
        """Snapshot for broadcast. Lists are copied so later mutation can't leak."""
        return {
            **self.extra,
            "id": self.id,
            "users": [u.to_dict() for u in self.users],
            "currentStory": self.current_story,
            "stories": list(self.stories),
            "votes": [v.to_dict() for v in self.votes],
            "isVotingRevealed": self.is_voting_revealed,
            "createdAt": to_iso(self.created_at),
            "expiresAt": to_iso(self.expires_at),
        }

    def merge(self, partial: dict[str, Any]) -> None:
        """
        Shallow-merge client fields over this session, skipping protected ones.

        Every value is converted before anything is assigned, so a bad value
        (ValueError/TypeError) leaves the session untouched. Repeated user or
        vote ids collapse to one row: the last one wins, in first-seen position.
        """
        updates: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in partial.items():
            if key in PROTECTED_FIELDS:
                continue
            if key == "users":
                users = [u if isinstance(u, User) else User.from_dict(u) for u in value or []]
                updates["users"] = _unique_by_id(users, lambda u: u.id)
            elif key == "votes":
                votes = [v if isinstance(v, Vote) else Vote.from_dict(v) for v in value or []]
                updates["votes"] = _unique_by_id(votes, lambda v: v.user_id)
            elif key == "stories":
                updates["stories"] = list(value or [])
            elif key == "currentStory":
                updates["current_story"] = value
            elif key == "isVotingRevealed":
                updates["is_voting_revealed"] = bool(value)
            elif key in ("createdAt", "expiresAt"):
                # null keeps the stored timestamp
                if value is not None:
                    updates["created_at" if key == "createdAt" else "expires_at"] = parse_ts(value)
            else:
                extra[key] = value

        for attr, value in updates.items():
            setattr(self, attr, value)
        self.extra.update(extra)


def _unique_by_id(rows: list, key: Callable[[Any], str]) -> list:
    by_id: dict[str, Any] = {}
    for row in rows:
        by_id[key(row)] = row
    return list(by_id.values())
