"""
Viewer Session - forwards hub messages to one live streaming connection
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from sensorhub.services.broadcast import (
    BroadcastHub,
    SubscriptionClosed,
    SubscriptionLagged,
)

logger = logging.getLogger(__name__)


class ViewerSession:
    """
    One viewer connection.

    The subscription is taken when the session is created, so nothing
    published after that point is missed. `run` forwards each message
    verbatim through `send` until one of:
    - `send` raises (peer went away),
    - `wait_closed` returns (peer closed its side),
    - the hub is closed,
    - `stop()` is called.
    Dropped messages on a slow connection are skipped, not fatal.
    """

    def __init__(
        self,
        hub: BroadcastHub,
        send: Callable[[str], Awaitable[None]],
        wait_closed: Callable[[], Awaitable[None]] | None = None,
        name: str = "viewer",
    ):
        self.name = name
        self.forwarded = 0
        self.dropped = 0
        self._send = send
        self._wait_closed = wait_closed
        self._stop = asyncio.Event()
        self._subscription = hub.subscribe()

    def stop(self) -> None:
        """Ask a running session to end."""
        self._stop.set()

    def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        self._subscription.release()

    async def run(self) -> int:
        """Forward until the session ends. Returns the number of frames sent."""
        logger.info(f"👀 {self.name} connected")
        with self._subscription:
            tasks = {
                asyncio.create_task(self._forward()),
                asyncio.create_task(self._stop.wait()),
            }
            if self._wait_closed is not None:
                tasks.add(asyncio.create_task(self._wait_closed()))
            try:
                await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        logger.info(
            f"👋 {self.name} disconnected (sent {self.forwarded}, dropped {self.dropped})"
        )
        return self.forwarded

    async def _forward(self) -> None:
        while True:
            try:
                message = await self._subscription.recv()
            except SubscriptionLagged as e:
                self.dropped += e.skipped
                logger.debug(f"{self.name} lagged, skipped {e.skipped} message(s)")
                continue
            except SubscriptionClosed:
                logger.debug(f"{self.name}: broadcast ended")
                return

            try:
                await self._send(message)
            except Exception as e:
                logger.debug(f"{self.name}: send failed: {e!r}")
                return
            self.forwarded += 1
