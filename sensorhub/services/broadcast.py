"""
Broadcast Hub - in-process fan-out of raw payloads to live viewers.

One producer, many consumers. Each subscription owns a bounded ring buffer;
when it is full the oldest entry is evicted, so `publish` never waits on a
slow viewer. Every message carries a sequence number, which lets a
subscriber tell "I missed messages" apart from "the stream ended".

Not thread-safe: publish/subscribe/recv must run on the event loop thread.
"""

import asyncio
import logging
from collections import deque

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class SubscriptionLagged(Exception):
    """Raised once by `recv` when buffered messages were evicted before being read."""

    def __init__(self, skipped: int):
        super().__init__(f"subscriber lagged behind, {skipped} message(s) dropped")
        self.skipped = skipped


class SubscriptionClosed(Exception):
    """The hub was closed (and the buffer drained) or the subscription was released."""


class Subscription:
    """Receiving end handed to one viewer. Use as a context manager to release it."""

    def __init__(self, hub: "BroadcastHub", start_seq: int, capacity: int):
        self._hub = hub
        self._buffer: deque[tuple[int, str]] = deque(maxlen=capacity)
        self._next_seq = start_seq
        self._wakeup = asyncio.Event()
        self._closed = False
        self._released = False

    def _push(self, seq: int, message: str) -> None:
        self._buffer.append((seq, message))
        self._wakeup.set()

    def _close(self) -> None:
        self._closed = True
        self._wakeup.set()

    @property
    def pending(self) -> int:
        """Messages buffered and not yet received."""
        return len(self._buffer)

    async def recv(self) -> str:
        """
        Wait for the next message.

        Raises SubscriptionLagged if messages were dropped since the last
        call (the next call returns the oldest retained message), and
        SubscriptionClosed once nothing more will arrive.
        """
        while True:
            if self._released:
                raise SubscriptionClosed()

            if self._buffer:
                seq, message = self._buffer[0]
                if seq > self._next_seq:
                    skipped = seq - self._next_seq
                    self._next_seq = seq
                    raise SubscriptionLagged(skipped)
                self._buffer.popleft()
                self._next_seq = seq + 1
                return message

            if self._closed:
                raise SubscriptionClosed()

            self._wakeup.clear()
            await self._wakeup.wait()

    def release(self) -> None:
        """Detach from the hub. Idempotent."""
        if self._released:
            return
        self._released = True
        self._buffer.clear()
        self._hub._unsubscribe(self)
        self._wakeup.set()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class BroadcastHub:
    """Fan-out point shared by the ingest loop (producer) and viewer sessions."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._subscribers: set[Subscription] = set()
        self._seq = 0
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscription:
        """Register a new subscriber. It only sees messages published from now on."""
        subscription = Subscription(self, self._seq, self.capacity)
        if self._closed:
            subscription._close()
        else:
            self._subscribers.add(subscription)
        return subscription

    def publish(self, message: str) -> int:
        """
        Queue *message* for every current subscriber without waiting.

        Returns the number of subscribers it was queued for (0 is fine).
        """
        if self._closed:
            logger.debug("Publish on closed hub ignored")
            return 0

        seq = self._seq
        self._seq += 1
        for subscription in self._subscribers:
            subscription._push(seq, message)
        return len(self._subscribers)

    def close(self) -> None:
        """End the stream. Subscribers drain what is buffered, then see SubscriptionClosed."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscribers:
            subscription._close()
        logger.info(f"📴 Broadcast hub closed ({len(self._subscribers)} subscriber(s))")

    def _unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)
