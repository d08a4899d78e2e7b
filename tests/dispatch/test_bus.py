"""Tests for the in-process EventBus."""

import pytest

from dqengine.dispatch.bus import EventBus, EventMessage


def _event(kind: str = "agent-message") -> EventMessage:
    return EventMessage(event_type=kind, source="test", data={"n": 1})


class TestEventBus:
    @pytest.mark.anyio
    async def test_send_reaches_only_target(self) -> None:
        bus = EventBus()
        alice = bus.subscribe("alice")
        bob = bus.subscribe("bob")
        assert bus.send("alice", _event()) == 1

        received = await alice.get()
        assert received.to_wire() == {"event": "agent-message", "data": {"n": 1}}
        bob.close()
        assert await bob.get() is None

    @pytest.mark.anyio
    async def test_broadcast_excludes(self) -> None:
        bus = EventBus()
        subs = {name: bus.subscribe(name) for name in ("a", "b", "c")}
        assert bus.broadcast(_event("task-completed"), exclude={"a"}) == 2
        assert (await subs["b"].get()).event_type == "task-completed"
        assert (await subs["c"].get()).event_type == "task-completed"
        subs["a"].close()
        assert await subs["a"].get() is None

    def test_send_to_absent_listener_dropped(self) -> None:
        assert EventBus().send("nobody", _event()) == 0

    @pytest.mark.anyio
    async def test_close_unsubscribes(self) -> None:
        bus = EventBus()
        sub = bus.subscribe("x")
        assert bus.listeners == ["x"]
        sub.close()
        assert bus.listeners == []
        assert bus.send("x", _event()) == 0
        assert [e async for e in sub.events()] == []

    @pytest.mark.anyio
    async def test_multiple_connections_same_listener(self) -> None:
        bus = EventBus()
        first = bus.subscribe("x")
        second = bus.subscribe("x")
        assert bus.send("x", _event()) == 2
        first.close()
        assert bus.listeners == ["x"]
        assert (await second.get()).event_type == "agent-message"
