"""Tests for availability change notifications."""

import asyncio

import pytest

from quotagate.events import AvailabilityNotifier, QuotaEvent, QuotaEventKind
from quotagate.tiers import ModelTier


def _event(at: float, kind: QuotaEventKind = QuotaEventKind.SUCCESS) -> QuotaEvent:
    return QuotaEvent(kind=kind, tier=ModelTier.SECONDARY, at=at)


class TestSubscribers:
    """Tests for callback subscribers."""

    @pytest.mark.asyncio
    async def test_sync_and_async_callbacks(self, notifier: AvailabilityNotifier) -> None:
        """Test both callback styles receive events."""
        received = []

        async def on_event(event: QuotaEvent) -> None:
            received.append(("async", event.at))

        notifier.subscribe(lambda event: received.append(("sync", event.at)))
        notifier.subscribe(on_event)

        await notifier.notify(_event(1.0))

        assert received == [("sync", 1.0), ("async", 1.0)]
        assert notifier.subscriber_count == 2

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_isolated(self, notifier: AvailabilityNotifier) -> None:
        """Test one failing subscriber does not stop the others."""
        received = []

        def broken(event: QuotaEvent) -> None:
            raise RuntimeError("observer bug")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)

        await notifier.notify(_event(2.0))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, notifier: AvailabilityNotifier) -> None:
        """Test unsubscribed callbacks stop receiving events."""
        received = []
        notifier.subscribe(received.append)
        assert notifier.unsubscribe(received.append) is True
        assert notifier.unsubscribe(received.append) is False

        await notifier.notify(_event(3.0))
        assert received == []

    def test_event_to_dict(self) -> None:
        """Test event serialization."""
        data = _event(4.0, QuotaEventKind.HARD_BLOCK).to_dict()
        assert data == {"kind": "hard_block", "tier": "secondary", "at": 4.0}


class TestListen:
    """Tests for streaming listeners."""

    @pytest.mark.asyncio
    async def test_listener_receives_events(self, notifier: AvailabilityNotifier) -> None:
        """Test a listener receives published events and deregisters on close."""
        stream = notifier.listen()
        pending = asyncio.create_task(anext(stream))
        await asyncio.sleep(0)
        assert notifier.subscriber_count == 1

        await notifier.notify(_event(5.0))
        assert (await pending).at == 5.0

        await stream.aclose()
        assert notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_listener_buffers_before_first_iteration(self, notifier: AvailabilityNotifier) -> None:
        """Test events published between listen() and the first read are kept."""
        stream = notifier.listen()
        assert notifier.subscriber_count == 1

        await notifier.notify(_event(7.0))

        assert (await anext(stream)).at == 7.0
        await stream.aclose()
        assert notifier.subscriber_count == 0
        with pytest.raises(StopAsyncIteration):
            await anext(stream)

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self) -> None:
        """Test a slow listener keeps the newest events."""
        notifier = AvailabilityNotifier(queue_size=2)
        stream = notifier.listen()
        pending = asyncio.create_task(anext(stream))
        await asyncio.sleep(0)

        for at in (1.0, 2.0, 3.0):
            await notifier.notify(_event(at))

        assert (await pending).at == 2.0
        assert (await anext(stream)).at == 3.0
        await stream.aclose()
