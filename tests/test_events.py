"""Tests for inbound message validation."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from poker.events import (
    JoinSession,
    StorySelected,
    UnknownEventError,
    UpdateSession,
    VoteSubmitted,
    parse_event,
    payload_fields,
)
from poker.models import parse_ts


class TestParseEvent:
    """Tests for parse_event."""

    def test_join_session(self):
        event = parse_event(
            {"type": "join-session", "sessionId": "S1", "user": {"id": "u1", "name": "Alice"}}
        )
        assert isinstance(event, JoinSession)
        assert payload_fields(event.user) == {"id": "u1", "name": "Alice"}

    def test_user_extra_fields_pass_through(self):
        event = parse_event(
            {
                "type": "join-session",
                "sessionId": "S1",
                "user": {"id": "u1", "name": "Alice", "isHost": True},
            }
        )
        assert payload_fields(event.user)["isHost"] is True

    def test_vote_value_is_opaque(self):
        event = parse_event(
            {"type": "vote-submitted", "sessionId": "S1", "vote": {"userId": "u1", "value": 5}}
        )
        assert isinstance(event, VoteSubmitted)
        assert event.vote.value == 5

    def test_story_selected_null(self):
        event = parse_event({"type": "story-selected", "sessionId": "S1", "story": None})
        assert isinstance(event, StorySelected)
        assert event.story is None

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            parse_event({"type": "join-session", "sessionId": "S1"})

    def test_missing_vote_value(self):
        with pytest.raises(ValidationError):
            parse_event({"type": "vote-submitted", "sessionId": "S1", "vote": {"userId": "u1"}})

    def test_unknown_type(self):
        with pytest.raises(UnknownEventError, match="Unknown event type"):
            parse_event({"type": "explode", "sessionId": "S1"})

    def test_not_an_object(self):
        with pytest.raises(UnknownEventError):
            parse_event(["join-session"])


class TestPayloadFields:
    """Tests for payload_fields on session patches."""

    def test_only_sent_fields(self):
        event = parse_event(
            {"type": "update-session", "sessionId": "S1", "session": {"isVotingRevealed": True}}
        )
        assert isinstance(event, UpdateSession)
        assert payload_fields(event.session) == {"isVotingRevealed": True}

    def test_extra_and_id_kept_for_merge(self):
        event = parse_event(
            {
                "type": "update-session",
                "sessionId": "S1",
                "session": {"id": "other", "deck": "tshirt"},
            }
        )
        assert payload_fields(event.session) == {"id": "other", "deck": "tshirt"}

    def test_timestamps_parsed(self):
        event = parse_event(
            {
                "type": "update-session",
                "sessionId": "S1",
                "session": {"expiresAt": "2024-05-02T09:00:00.000Z"},
            }
        )
        expires_at = payload_fields(event.session)["expiresAt"]
        assert isinstance(expires_at, str)
        assert parse_ts(expires_at) == datetime(2024, 5, 2, 9, 0, tzinfo=UTC)

    def test_null_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            parse_event(
                {"type": "update-session", "sessionId": "S1", "session": {"createdAt": None}}
            )
