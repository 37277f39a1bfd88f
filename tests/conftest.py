"""Pytest configuration and fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from poker.connection_registry import ConnectionRegistry
from poker.engine import SessionEngine
from poker.session_store import SessionStore


class FakeClock:
    """Controllable clock; call it to read, advance() to move time forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def connections():
    return ConnectionRegistry()


@pytest.fixture
def engine(store, connections, clock):
    return SessionEngine(store, connections, clock=clock)


@pytest.fixture
def alice():
    return {"id": "u1", "name": "Alice"}


@pytest.fixture
def bob():
    return {"id": "u2", "name": "Bob"}
