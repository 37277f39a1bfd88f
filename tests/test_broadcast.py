"""Tests for the broadcast gateway."""

import asyncio
import json

from poker.broadcast import BroadcastGateway
from poker.engine import OutboundEvent


class FakeWebSocket:
    """Records sent frames; optionally fails every send."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise ConnectionError("peer gone")
        self.sent.append(json.loads(text))


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestRecipients:
    """Tests for recipient resolution."""

    def test_direct(self, connections):
        gateway = BroadcastGateway(connections)
        event = OutboundEvent(type="session-joined", payload={}, to="c1")
        assert gateway.recipients(event) == ["c1"]

    def test_session_members_minus_excluded(self, connections):
        connections.bind("c1", "S1")
        connections.bind("c2", "S1")
        connections.bind("c3", "S2")
        gateway = BroadcastGateway(connections)
        event = OutboundEvent(type="user-joined", payload={}, session_id="S1", exclude="c1")
        assert gateway.recipients(event) == ["c2"]

    def test_no_target(self, connections):
        gateway = BroadcastGateway(connections)
        assert gateway.recipients(OutboundEvent(type="x", payload={})) == []


class TestPublish:
    """Tests for queued delivery."""

    def test_delivers_in_order(self, connections):
        connections.bind("c1", "S1")
        ws = FakeWebSocket()

        async def scenario():
            gateway = BroadcastGateway(connections)
            gateway.register("c1", ws)
            gateway.publish_all(
                [
                    OutboundEvent(type="vote-submitted", payload={"n": 1}, session_id="S1"),
                    OutboundEvent(type="votes-revealed", payload={"n": 2}, session_id="S1"),
                ]
            )
            await settle()
            await gateway.close()

        asyncio.run(scenario())
        assert ws.sent == [{"type": "vote-submitted", "n": 1}, {"type": "votes-revealed", "n": 2}]

    def test_skips_unregistered(self, connections):
        connections.bind("c1", "S1")

        async def scenario():
            gateway = BroadcastGateway(connections)
            return gateway.publish(OutboundEvent(type="votes-hidden", payload={}, session_id="S1"))

        assert asyncio.run(scenario()) == 0

    def test_failed_send_drops_connection(self, connections):
        connections.bind("c1", "S1")
        connections.bind("c2", "S1")
        good, bad = FakeWebSocket(), FakeWebSocket(fail=True)

        async def scenario():
            gateway = BroadcastGateway(connections)
            gateway.register("c1", good)
            gateway.register("c2", bad)
            gateway.publish(OutboundEvent(type="votes-revealed", payload={}, session_id="S1"))
            await settle()
            count = gateway.connected_count
            await gateway.close()
            return count

        assert asyncio.run(scenario()) == 1
        assert good.sent == [{"type": "votes-revealed"}]

    def test_stalled_connection_dropped_when_outbox_full(self, connections):
        connections.bind("c1", "S1")
        connections.bind("c2", "S1")

        class StalledWebSocket(FakeWebSocket):
            async def send_text(self, text: str) -> None:
                await asyncio.Event().wait()

        good, stalled = FakeWebSocket(), StalledWebSocket()

        async def scenario():
            gateway = BroadcastGateway(connections, max_pending=2)
            gateway.register("c1", good)
            gateway.register("c2", stalled)
            queued = []
            for n in range(4):
                queued.append(
                    gateway.publish(OutboundEvent(type="vote-submitted", payload={"n": n}, session_id="S1"))
                )
                await settle()
            count = gateway.connected_count
            await gateway.close()
            return queued, count

        queued, count = asyncio.run(scenario())
        assert count == 1
        assert queued[0] == 2
        assert queued[-1] == 1
        assert [m["n"] for m in good.sent] == [0, 1, 2, 3]
