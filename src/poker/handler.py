"""
WebSocket handler for planning poker clients.

One handler runs per connection. It validates each JSON text frame, applies
it through the SessionEngine, and hands the resulting events to the
BroadcastGateway. Each frame is processed to completion before the next
await, so engine operations never interleave.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field

from fastapi import WebSocket
from pydantic import ValidationError

from poker.broadcast import BroadcastGateway
from poker.connection_registry import ConnectionRegistry
from poker.engine import OutboundEvent, SessionEngine
from poker.events import (
    HideVotes,
    InboundEvent,
    JoinSession,
    RevealVotes,
    StoryAdded,
    StorySelected,
    UnknownEventError,
    UpdateSession,
    UserActivity,
    VoteSubmitted,
    parse_event,
    payload_fields,
)
from poker.reaper import Reaper
from poker.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class Coordinator:
    """Process-wide state, built once at startup and torn down at shutdown."""

    store: SessionStore = field(default_factory=SessionStore)
    connections: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    engine: SessionEngine = field(init=False)
    gateway: BroadcastGateway = field(init=False)
    reaper: Reaper = field(init=False)

    def __post_init__(self) -> None:
        self.engine = SessionEngine(self.store, self.connections)
        self.gateway = BroadcastGateway(self.connections)
        self.reaper = Reaper(self.store)

    async def shutdown(self) -> None:
        await self.reaper.stop()
        await self.gateway.close()


def dispatch(engine: SessionEngine, connection_id: str, event: InboundEvent) -> list[OutboundEvent]:
    """Route a validated inbound event to its engine operation."""
    match event:
        case JoinSession():
            return engine.join(connection_id, event.sessionId, payload_fields(event.user))
        case UpdateSession():
            return engine.update_session(event.sessionId, payload_fields(event.session))
        case StorySelected():
            return engine.select_story(event.sessionId, event.story)
        case VoteSubmitted():
            return engine.submit_vote(event.sessionId, payload_fields(event.vote))
        case RevealVotes():
            return engine.reveal_votes(event.sessionId)
        case HideVotes():
            return engine.hide_votes(event.sessionId)
        case StoryAdded():
            return engine.add_story(event.sessionId, event.story)
        case UserActivity():
            return engine.touch_activity(event.sessionId, event.userId)
    return []


async def handle_websocket(websocket: WebSocket, coordinator: Coordinator) -> None:
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    coordinator.gateway.register(connection_id, websocket)
    logger.info("Client connected: %s", connection_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                continue

            try:
                event = parse_event(json.loads(text))
            except (json.JSONDecodeError, ValidationError, UnknownEventError) as e:
                logger.warning("Ignoring malformed message from %s: %s", connection_id, e)
                continue

            try:
                coordinator.gateway.publish_all(dispatch(coordinator.engine, connection_id, event))
            except Exception:
                logger.exception("Failed to handle %s from %s", event.type, connection_id)
    except Exception as e:
        logger.error("Socket error for %s: %s", connection_id, e)
    finally:
        coordinator.engine.disconnect(connection_id)
        await coordinator.gateway.unregister(connection_id)
        logger.info("Client disconnected: %s", connection_id)
