"""
Inbound WebSocket message schemas.

Clients send JSON text frames shaped like {"type": "<event>", ...fields}.
Users, votes, stories and session patches allow extra client-defined fields,
which the engine passes through untouched.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from poker.models import utc_now


class UserPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    lastActivity: datetime | None = None


class VotePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    userId: str
    value: Any
    timestamp: datetime | None = None


class SessionPatch(BaseModel):
    """Partial session for update-session. Only fields actually sent are merged."""

    model_config = ConfigDict(extra="allow")

    users: list[UserPayload] = Field(default_factory=list)
    currentStory: dict[str, Any] | None = None
    stories: list[dict[str, Any]] = Field(default_factory=list)
    votes: list[VotePayload] = Field(default_factory=list)
    isVotingRevealed: bool = False
    createdAt: datetime = Field(default_factory=utc_now)
    expiresAt: datetime = Field(default_factory=utc_now)


class JoinSession(BaseModel):
    type: Literal["join-session"]
    sessionId: str
    user: UserPayload


class UpdateSession(BaseModel):
    type: Literal["update-session"]
    sessionId: str
    session: SessionPatch


class StorySelected(BaseModel):
    type: Literal["story-selected"]
    sessionId: str
    story: dict[str, Any] | None = None


class VoteSubmitted(BaseModel):
    type: Literal["vote-submitted"]
    sessionId: str
    vote: VotePayload


class RevealVotes(BaseModel):
    type: Literal["reveal-votes"]
    sessionId: str


class HideVotes(BaseModel):
    type: Literal["hide-votes"]
    sessionId: str


class StoryAdded(BaseModel):
    type: Literal["story-added"]
    sessionId: str
    story: dict[str, Any]


class UserActivity(BaseModel):
    type: Literal["user-activity"]
    sessionId: str
    userId: str


InboundEvent = Annotated[
    JoinSession
    | UpdateSession
    | StorySelected
    | VoteSubmitted
    | RevealVotes
    | HideVotes
    | StoryAdded
    | UserActivity,
    Field(discriminator="type"),
]

_adapter = TypeAdapter(InboundEvent)

EVENT_TYPES = frozenset(
    {
        "join-session",
        "update-session",
        "story-selected",
        "vote-submitted",
        "reveal-votes",
        "hide-votes",
        "story-added",
        "user-activity",
    }
)


class UnknownEventError(ValueError):
    """Raised for a message whose type is not a known inbound event."""


def parse_event(data: dict[str, Any]) -> InboundEvent:
    """Validate a decoded message. Raises pydantic.ValidationError when malformed."""
    event_type = data.get("type") if isinstance(data, dict) else None
    if event_type not in EVENT_TYPES:
        raise UnknownEventError(f"Unknown event type: {event_type!r}")
    return _adapter.validate_python(data)


def payload_fields(payload: BaseModel) -> dict[str, Any]:
    """Fields the client actually sent, as JSON-ready plain values."""
    return payload.model_dump(mode="json", exclude_unset=True)
