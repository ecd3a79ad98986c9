"""
MQTT transport - subscribes to device topics and hands messages to asyncio.

paho-mqtt runs its network loop on its own thread; every callback is
bridged onto the event loop with call_soon_threadsafe, so consumers only
ever see messages through an asyncio.Queue.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Could not connect or subscribe to the broker."""


class TransportConnectionLost(TransportError):
    """An established connection dropped without being asked to."""


@dataclass(frozen=True)
class InboundMessage:
    topic: str
    payload: bytes


class Transport(Protocol):
    """What the ingest loop needs from a publish/subscribe client."""

    async def connect(self) -> None: ...

    async def subscribe(self, pattern: str, qos: int) -> None: ...

    async def next_message(self) -> InboundMessage | None:
        """Next message; None after disconnect(); raises TransportConnectionLost on a drop."""
        ...

    async def disconnect(self) -> None: ...


_CLOSED = object()


class PahoTransport:
    """Transport backed by paho-mqtt. A fresh client is created on every connect."""

    def __init__(
        self,
        host: str,
        port: int = 1883,
        client_id: str = "",
        keepalive: int = 60,
        connect_timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self.connect_timeout = connect_timeout
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue | None = None
        self._connack: asyncio.Future | None = None
        self._disconnecting = False

    def _create_client(self) -> mqtt.Client:
        return mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)

    async def connect(self) -> None:
        """Open the connection and wait for the broker's CONNACK."""
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._connack = self._loop.create_future()
        self._disconnecting = False

        client = self._create_client()
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self._client = client

        logger.info(f"📡 Connecting to {self.host}:{self.port}")
        try:
            await asyncio.to_thread(client.connect, self.host, self.port, self.keepalive)
        except (OSError, ValueError) as e:
            self._client = None
            raise TransportError(f"Cannot connect to {self.host}:{self.port}: {e}") from e

        if self._disconnecting or self._client is not client:
            # disconnect() ran while the socket was opening; flush DISCONNECT without a network thread
            try:
                client.disconnect()
                await asyncio.to_thread(client.loop, 0.1)
            except Exception as e:
                logger.debug(f"Ignoring error while dropping MQTT client: {e}")
            if self._connack.done() and not self._connack.cancelled():
                self._connack.exception()
            raise TransportError(f"Disconnect requested while connecting to {self.host}:{self.port}")

        client.loop_start()
        try:
            await asyncio.wait_for(self._connack, timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            await self._teardown()
            raise TransportError(f"No CONNACK from {self.host}:{self.port} within {self.connect_timeout}s")
        except TransportError:
            await self._teardown()
            raise

        logger.info(f"✅ Connected to MQTT broker: {self.host}:{self.port}")

    async def subscribe(self, pattern: str, qos: int) -> None:
        if self._client is None:
            raise TransportError("Not connected")
        result, _mid = self._client.subscribe(pattern, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Subscribe to {pattern} failed: {mqtt.error_string(result)}")

    async def next_message(self) -> InboundMessage | None:
        if self._queue is None:
            raise TransportError("Not connected")

        item = await self._queue.get()
        if item is _CLOSED:
            return None
        if isinstance(item, TransportConnectionLost):
            await self._teardown()
            raise item
        return item

    async def disconnect(self) -> None:
        """Close the connection. Messages already received stay queued ahead of the end marker."""
        self._disconnecting = True
        client = self._client
        self._client = None
        self._resolve_connack(TransportError("Disconnect requested"))
        if client is not None:
            client.disconnect()
            await asyncio.to_thread(client.loop_stop)
            logger.info(f"⏹️ Disconnected from {self.host}:{self.port}")
        if self._queue is not None:
            self._queue.put_nowait(_CLOSED)

    async def _teardown(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            client.disconnect()
        except Exception as e:
            logger.debug(f"Ignoring error while dropping MQTT client: {e}")
        await asyncio.to_thread(client.loop_stop)

    # paho callbacks, called on paho's network thread

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            error = TransportError(f"Broker refused connection: {reason_code}")
            self._loop.call_soon_threadsafe(self._resolve_connack, error)
        else:
            self._loop.call_soon_threadsafe(self._resolve_connack, None)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        if self._disconnecting:
            return
        logger.warning(f"⚠️ Disconnected from MQTT broker: {reason_code}")
        lost = TransportConnectionLost(f"Connection to {self.host}:{self.port} lost: {reason_code}")
        self._loop.call_soon_threadsafe(self._resolve_connack, lost)
        self._loop.call_soon_threadsafe(self._queue.put_nowait, lost)

    def _on_message(self, client, userdata, msg):
        self._loop.call_soon_threadsafe(
            self._queue.put_nowait, InboundMessage(msg.topic, bytes(msg.payload))
        )

    def _resolve_connack(self, error: TransportError | None) -> None:
        if self._connack is None or self._connack.done():
            return
        if error is None:
            self._connack.set_result(None)
        else:
            self._connack.set_exception(error)
