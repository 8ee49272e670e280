"""Tests for the in-process session broadcaster."""

import pytest

from src.core.broadcaster import InMemorySessionBroadcaster


class TestInMemorySessionBroadcaster:
    @pytest.mark.asyncio
    async def test_publish_without_listeners_is_noop(self):
        broadcaster = InMemorySessionBroadcaster()

        await broadcaster.publish("s1", "care_message", {"message": "hi"})

        assert broadcaster.published == 0

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        broadcaster = InMemorySessionBroadcaster()
        subscription = broadcaster.subscribe("s1")

        for i in range(3):
            await broadcaster.publish("s1", "care_audio_chunk", {"index": i})

        events = [await subscription.get(timeout=0.1) for _ in range(3)]
        assert [e.payload["index"] for e in events] == [0, 1, 2]
        subscription.close()

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self):
        broadcaster = InMemorySessionBroadcaster()
        subscription = broadcaster.subscribe("s1")

        await broadcaster.publish("s2", "care_message", {})

        assert await subscription.get(timeout=0.01) is None
        subscription.close()

    @pytest.mark.asyncio
    async def test_fan_out_to_every_listener(self):
        broadcaster = InMemorySessionBroadcaster()
        first = broadcaster.subscribe("s1")
        second = broadcaster.subscribe("s1")

        await broadcaster.publish("s1", "care_error", {"error": "boom"})

        assert (await first.get(timeout=0.1)).event == "care_error"
        assert (await second.get(timeout=0.1)).event == "care_error"
        assert broadcaster.listener_count("s1") == 2

    @pytest.mark.asyncio
    async def test_slow_listener_drops_events(self):
        broadcaster = InMemorySessionBroadcaster(listener_backlog=2)
        subscription = broadcaster.subscribe("s1")

        for i in range(4):
            await broadcaster.publish("s1", "care_audio_chunk", {"index": i})

        assert subscription.dropped == 2
        subscription.close()

    @pytest.mark.asyncio
    async def test_context_manager_detaches(self):
        broadcaster = InMemorySessionBroadcaster()

        async with broadcaster.subscribe("s1"):
            assert broadcaster.listener_count("s1") == 1

        assert broadcaster.listener_count("s1") == 0

    @pytest.mark.asyncio
    async def test_close_session_ends_iteration(self):
        broadcaster = InMemorySessionBroadcaster()
        subscription = broadcaster.subscribe("s1")
        await broadcaster.publish("s1", "care_message", {"n": 1})

        broadcaster.close_session("s1")

        received = [event async for event in subscription]
        assert [e.payload["n"] for e in received] == [1]
