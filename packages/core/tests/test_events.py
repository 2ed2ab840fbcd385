"""Tests for the event bus."""

import pytest

from prchorus_core.events import EventBus


class TestEventBus:
    @pytest.mark.asyncio
    async def test_every_subscriber_receives_every_event(self):
        bus = EventBus()
        a, b = [], []
        bus.subscribe("review:progress", lambda e: a.append(e.data["n"]))
        bus.subscribe("review:progress", lambda e: b.append(e.data["n"]))

        await bus.publish("review:progress", {"n": 1})
        await bus.publish("review:progress", {"n": 2})

        assert a == [1, 2]
        assert b == [1, 2]

    @pytest.mark.asyncio
    async def test_async_callbacks_awaited(self):
        bus = EventBus()
        received = []

        async def callback(event):
            received.append(event.name)

        bus.subscribe("review:complete", callback)
        await bus.publish("review:complete")
        assert received == ["review:complete"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe("x", lambda e: received.append(1))
        unsubscribe()
        unsubscribe()  # idempotent
        await bus.publish("x")
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_delivery(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("observer bug")

        bus.subscribe("x", broken)
        bus.subscribe("x", lambda e: received.append(1))
        await bus.publish("x")
        assert received == [1]

    @pytest.mark.asyncio
    async def test_clear_subscriptions(self):
        bus = EventBus()
        received = []
        bus.subscribe("x", lambda e: received.append("x"))
        bus.subscribe("y", lambda e: received.append("y"))

        bus.clear_subscriptions("x")
        await bus.publish("x")
        await bus.publish("y")
        bus.clear_subscriptions()
        await bus.publish("y")

        assert received == ["y"]
