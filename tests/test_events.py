"""Tests for vibecore.engine.events — per-subscriber queues and topic filtering."""

import asyncio

import pytest

from vibecore.engine.events import GATE_RECEIPT, SIGNAL_INSUFFICIENT, VIBE_UPDATED, EventBus


class TestEventBus:
    def test_topic_filtering(self):
        bus = EventBus()
        vibes = bus.subscribe(VIBE_UPDATED)
        everything = bus.subscribe()
        bus.publish(VIBE_UPDATED, {"vibe": "chill"})
        bus.publish(SIGNAL_INSUFFICIENT, {"reason": "no sources"})
        assert vibes.queue.qsize() == 1
        assert everything.queue.qsize() == 2

    def test_full_queue_drops_oldest(self):
        bus = EventBus(maxsize=2)
        sub = bus.subscribe()
        for i in range(3):
            bus.publish(VIBE_UPDATED, {"i": i})
        assert [sub.queue.get_nowait().payload["i"] for _ in range(2)] == [1, 2]

    def test_slow_subscriber_does_not_affect_others(self):
        bus = EventBus(maxsize=1)
        slow = bus.subscribe()
        fast = bus.subscribe()
        bus.publish(VIBE_UPDATED, {"i": 0})
        fast.queue.get_nowait()
        bus.publish(VIBE_UPDATED, {"i": 1})
        assert fast.queue.get_nowait().payload == {"i": 1}
        assert slow.queue.get_nowait().payload == {"i": 1}

    def test_unsubscribe_via_context_manager(self):
        bus = EventBus()
        with bus.subscribe() as sub:
            assert bus.subscriber_count == 1
        assert bus.subscriber_count == 0
        bus.publish(VIBE_UPDATED, {})
        assert sub.queue.empty()

    def test_emit_publishes_gate_receipt(self):
        bus = EventBus()
        sub = bus.subscribe(GATE_RECEIPT)
        bus.emit({"receipt_id": "rcpt_1"})
        event = sub.queue.get_nowait()
        assert event.to_dict()["type"] == GATE_RECEIPT
        assert event.payload == {"receipt_id": "rcpt_1"}

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        bus = EventBus()
        sub = bus.subscribe(VIBE_UPDATED)

        async def produce():
            await asyncio.sleep(0)
            bus.publish(VIBE_UPDATED, {"vibe": "hype"})

        asyncio.get_running_loop().create_task(produce())
        event = await asyncio.wait_for(sub.__anext__(), timeout=1.0)
        assert event.payload["vibe"] == "hype"
