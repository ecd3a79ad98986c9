"""
Ingest Loop - MQTT -> {broadcast hub, database}

Every inbound payload is broadcast verbatim first, whether or not it
decodes. Payloads that decode are then stored through the writer; a
storage failure is logged, followed by a short pause, and the loop moves
on to the next message.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from sensorhub.core.context import AppContext
from sensorhub.mqtt.transport import (
    PahoTransport,
    Transport,
    TransportConnectionLost,
    TransportError,
)
from sensorhub.schemas.telemetry import TelemetryRecord
from sensorhub.services.broadcast import BroadcastHub
from sensorhub.services.decoder import DecodeResult, decode_payload
from sensorhub.services.writer import PersistenceError

logger = logging.getLogger(__name__)


class RecordWriter(Protocol):
    async def write(self, record: TelemetryRecord) -> None: ...


class IngestLoop:
    """
    Consumes the transport for the lifetime of the process.

    Shutdown: `stop()` disconnects the transport; messages received before
    the disconnect are still broadcast and stored, then the hub is closed.
    Messages the broker has not yet delivered are not waited for.
    """

    def __init__(
        self,
        transport: Transport,
        hub: BroadcastHub,
        writer: RecordWriter,
        topic: str,
        qos: int = 1,
        persist_failure_delay: float = 0.2,
        reconnect_initial_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        decoder: Callable[[str], DecodeResult] = decode_payload,
    ):
        self._transport = transport
        self._hub = hub
        self._writer = writer
        self._decode = decoder
        self.topic = topic
        self.qos = qos
        self.persist_failure_delay = persist_failure_delay
        self.reconnect_initial_delay = reconnect_initial_delay
        self.reconnect_max_delay = reconnect_max_delay
        self._stopping = asyncio.Event()

        self.received = 0
        self.persisted = 0
        self.rejected = 0
        self.persist_failures = 0
        self.reconnects = 0

    def stats(self) -> dict[str, int]:
        return {
            "received": self.received,
            "persisted": self.persisted,
            "rejected": self.rejected,
            "persist_failures": self.persist_failures,
            "reconnects": self.reconnects,
        }

    async def run(self) -> None:
        """Main run loop. Returns only after stop()."""
        logger.info("🚀 Starting ingest loop...")
        delay = self.reconnect_initial_delay
        try:
            while not self._stopping.is_set():
                try:
                    await self._transport.connect()
                    await self._transport.subscribe(self.topic, self.qos)
                except TransportError as e:
                    logger.warning(f"⚠️ {e}; retrying in {delay:.1f}s")
                    await self._backoff(delay)
                    delay = min(delay * 2, self.reconnect_max_delay)
                    continue

                logger.info(f"📡 Subscribed to: {self.topic}")
                received_before = self.received
                if self._stopping.is_set():
                    # stop() arrived while we were connecting
                    await self._transport.disconnect()

                try:
                    await self._consume()
                except TransportConnectionLost as e:
                    self.reconnects += 1
                    if self.received > received_before:
                        # Connection delivered traffic, start backing off from scratch
                        delay = self.reconnect_initial_delay
                    logger.warning(f"⚠️ {e}; reconnecting in {delay:.1f}s")
                    await self._backoff(delay)
                    delay = min(delay * 2, self.reconnect_max_delay)
                    continue

                if not self._stopping.is_set():
                    logger.warning("⚠️ Transport closed unexpectedly, reconnecting")
                    self.reconnects += 1
        finally:
            self._hub.close()
            logger.info(f"⏹️ Ingest loop stopped: {self.stats()}")

    async def stop(self) -> None:
        """Stop consuming. `run()` returns once already-received messages are handled."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        await self._transport.disconnect()

    async def _consume(self) -> None:
        while True:
            message = await self._transport.next_message()
            if message is None:
                return
            try:
                await self.handle_message(message.payload)
            except Exception:
                logger.exception(f"❌ Error processing message from {message.topic}")

    async def handle_message(self, payload: bytes | str) -> None:
        """Broadcast one payload, then try to store it."""
        if isinstance(payload, (bytes, bytearray)):
            text = bytes(payload).decode("utf-8", errors="replace")
        else:
            text = payload
        self.received += 1

        self._hub.publish(text)

        result = self._decode(text)
        if not result.ok:
            self.rejected += 1
            logger.debug(f"🚫 Not stored, undecodable payload: {result.error}")
            return

        try:
            await self._writer.write(result.record)
        except PersistenceError as e:
            self.persist_failures += 1
            logger.error(f"❌ Database error: {e}")
            await asyncio.sleep(self.persist_failure_delay)
            return

        self.persisted += 1

    async def _backoff(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass


def build_ingest_loop(context: AppContext, transport: Transport | None = None) -> IngestLoop:
    """Wire an ingest loop to the shared hub and writer."""
    settings = context.settings
    if transport is None:
        transport = PahoTransport(
            settings.mqtt_broker,
            settings.mqtt_port,
            client_id=settings.mqtt_client_id,
            keepalive=settings.mqtt_keepalive,
            connect_timeout=settings.mqtt_connect_timeout,
        )
    return IngestLoop(
        transport,
        context.hub,
        context.writer,
        topic=settings.mqtt_topic,
        qos=settings.mqtt_qos,
        persist_failure_delay=settings.persist_failure_delay,
        reconnect_initial_delay=settings.reconnect_initial_delay,
        reconnect_max_delay=settings.reconnect_max_delay,
    )
