"""Availability change notifications for polling collaborators."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from quotagate.tiers import ModelTier

logger = logging.getLogger(__name__)


class QuotaEventKind(str, Enum):
    """Ledger mutation that triggered a notification."""

    SUCCESS = "success"
    HARD_BLOCK = "hard_block"


@dataclass(frozen=True)
class QuotaEvent:
    """A single ledger mutation."""

    kind: QuotaEventKind
    tier: ModelTier
    at: float
    """Epoch seconds at which the mutation was recorded."""

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "tier": self.tier.value, "at": self.at}


Subscriber = Callable[[QuotaEvent], Any]


class AvailabilityNotifier:
    """
    Broadcasts ledger mutations to subscribers.

    Supports two styles of consumer:
    - Callbacks registered with subscribe() (sync or async)
    - Async iterators from listen(), for streaming endpoints

    A failing subscriber is logged and skipped so that a broken
    observer can never fail the invocation that mutated the ledger.
    """

    def __init__(self, queue_size: int = 100) -> None:
        """
        Initialize the notifier.

        Args:
            queue_size: Buffered events per listen() consumer
        """
        self._subscribers: list[Subscriber] = []
        self._queues: set[asyncio.Queue[QuotaEvent]] = set()
        self._queue_size = queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers) + len(self._queues)

    def subscribe(self, callback: Subscriber) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> bool:
        try:
            self._subscribers.remove(callback)
            return True
        except ValueError:
            return False

    async def notify(self, event: QuotaEvent) -> None:
        """Deliver an event to every subscriber and listener."""
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Quota event subscriber failed: {e}")

        for queue in list(self._queues):
            if queue.full():
                # Drop the oldest event, the newest state matters most
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(event)

    def listen(self) -> EventListener:
        """
        Open a listener for events published from now on.

        The listener is registered before this returns, so events
        published before the first iteration are buffered. Call
        aclose() (or use contextlib.aclosing) to deregister it.
        """
        queue: asyncio.Queue[QuotaEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._queues.add(queue)
        return EventListener(self._queues, queue)


class EventListener:
    """Async iterator over the events buffered for one listen() consumer."""

    def __init__(self, registry: set[asyncio.Queue[QuotaEvent]], queue: asyncio.Queue[QuotaEvent]) -> None:
        self._registry = registry
        self._queue = queue
        self._closed = False

    def __aiter__(self) -> EventListener:
        return self

    async def __anext__(self) -> QuotaEvent:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    async def aclose(self) -> None:
        self._closed = True
        self._registry.discard(self._queue)
