"""
Tests for the paho-mqtt transport, with the paho client mocked out.
"""

import asyncio
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from conftest import wait_until
from sensorhub.mqtt.transport import (
    InboundMessage,
    PahoTransport,
    TransportConnectionLost,
    TransportError,
)


def fake_client(refuse: bool = False, ack: bool = True):
    """MagicMock client that answers CONNACK as soon as its loop starts."""
    client = MagicMock()
    client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)

    def loop_start():
        if ack:
            client.on_connect(client, None, {}, SimpleNamespace(is_failure=refuse), None)

    client.loop_start.side_effect = loop_start
    return client


def make_transport(client, **kwargs):
    transport = PahoTransport("broker.local", 1883, client_id="test", **kwargs)
    transport._create_client = lambda: client
    return transport


def mqtt_message(payload: bytes, topic: str = "devices/esp32/esp1/state"):
    return SimpleNamespace(topic=topic, payload=payload)


class TestConnect:
    """Connection setup."""

    @pytest.mark.asyncio
    async def test_connect_waits_for_connack(self):
        client = fake_client()
        transport = make_transport(client)

        await transport.connect()

        client.connect.assert_called_once_with("broker.local", 1883, 60)
        client.loop_start.assert_called_once()

    @pytest.mark.asyncio
    async def test_refused_connection(self):
        client = fake_client(refuse=True)
        transport = make_transport(client)

        with pytest.raises(TransportError):
            await transport.connect()

        client.loop_stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_socket_error(self):
        client = fake_client()
        client.connect.side_effect = ConnectionRefusedError("refused")
        transport = make_transport(client)

        with pytest.raises(TransportError):
            await transport.connect()

        client.loop_start.assert_not_called()

    @pytest.mark.asyncio
    async def test_connack_timeout(self):
        client = fake_client(ack=False)
        transport = make_transport(client, connect_timeout=0.05)

        with pytest.raises(TransportError):
            await transport.connect()

        client.loop_stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect_while_socket_opening(self):
        client = fake_client()
        release = threading.Event()
        client.connect.side_effect = lambda *args: release.wait(1)
        transport = make_transport(client)

        task = asyncio.create_task(transport.connect())
        await wait_until(lambda: client.connect.called)
        await transport.disconnect()
        release.set()

        with pytest.raises(TransportError):
            await asyncio.wait_for(task, timeout=1)

        client.loop_start.assert_not_called()
        client.loop.assert_called_once_with(0.1)
        assert transport._client is None

    @pytest.mark.asyncio
    async def test_disconnect_while_waiting_for_connack(self):
        client = fake_client(ack=False)
        transport = make_transport(client, connect_timeout=5)

        task = asyncio.create_task(transport.connect())
        await wait_until(lambda: client.loop_start.called)
        await transport.disconnect()

        with pytest.raises(TransportError):
            await asyncio.wait_for(task, timeout=1)


class TestSubscribe:
    """Topic subscription."""

    @pytest.mark.asyncio
    async def test_subscribe(self):
        client = fake_client()
        transport = make_transport(client)
        await transport.connect()

        await transport.subscribe("devices/esp32/+/state", 1)

        client.subscribe.assert_called_once_with("devices/esp32/+/state", qos=1)

    @pytest.mark.asyncio
    async def test_subscribe_rejected(self):
        client = fake_client()
        client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)
        transport = make_transport(client)
        await transport.connect()

        with pytest.raises(TransportError):
            await transport.subscribe("devices/esp32/+/state", 1)

    @pytest.mark.asyncio
    async def test_subscribe_before_connect(self):
        transport = make_transport(fake_client())

        with pytest.raises(TransportError):
            await transport.subscribe("devices/esp32/+/state", 1)


class TestMessages:
    """Bridging paho callbacks onto the event loop."""

    @pytest.mark.asyncio
    async def test_message_delivered(self):
        client = fake_client()
        transport = make_transport(client)
        await transport.connect()

        transport._on_message(client, None, mqtt_message(b'{"device":"esp1"}'))

        message = await transport.next_message()
        assert message == InboundMessage("devices/esp32/esp1/state", b'{"device":"esp1"}')

    @pytest.mark.asyncio
    async def test_unexpected_disconnect_raises(self):
        client = fake_client()
        transport = make_transport(client)
        await transport.connect()

        transport._on_disconnect(client, None, {}, "keepalive timeout", None)

        with pytest.raises(TransportConnectionLost):
            await transport.next_message()
        client.loop_stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect_keeps_received_messages(self):
        client = fake_client()
        transport = make_transport(client)
        await transport.connect()

        transport._on_message(client, None, mqtt_message(b"one"))
        transport._on_message(client, None, mqtt_message(b"two"))
        await transport.disconnect()

        assert (await transport.next_message()).payload == b"one"
        assert (await transport.next_message()).payload == b"two"
        assert await transport.next_message() is None
        client.disconnect.assert_called_once()

    @pytest.mark.asyncio
    async def test_requested_disconnect_is_not_a_loss(self):
        client = fake_client()
        transport = make_transport(client)
        await transport.connect()

        await transport.disconnect()
        transport._on_disconnect(client, None, {}, "normal", None)

        assert await transport.next_message() is None

    @pytest.mark.asyncio
    async def test_next_message_before_connect(self):
        transport = make_transport(fake_client())

        with pytest.raises(TransportError):
            await transport.next_message()
