"""
Pytest configuration and fixtures for Sensor Hub tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest
from sqlalchemy.exc import SQLAlchemyError

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from sensorhub.core.config import Settings  # noqa: E402
from sensorhub.mqtt.transport import (  # noqa: E402
    InboundMessage,
    TransportConnectionLost,
    TransportError,
)


SCENARIO_A = (
    '{"ts":1690000000,"device":"esp1",'
    '"bno055":{"ok":true,"heading_deg":10.0},"ultrasonic_cm":50.0}'
)


# ==================== FAKE STORE ====================

class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)


class FakeSession:
    """Just enough of AsyncSession for the writer and the API handlers."""

    def __init__(self, store: "FakeStore"):
        self.store = store
        self.pending = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def add(self, obj):
        self.pending.append(obj)

    async def commit(self):
        self.store.attempts += 1
        if self.store.failing:
            raise self.store.error
        self.store.rows.extend(self.pending)
        self.store.commits += 1
        self.pending = []

    async def execute(self, statement):
        if self.store.failing:
            raise self.store.error
        self.store.statements.append(statement)
        return FakeResult(self.store.query_result)


class FakeStore:
    """Stands in for async_sessionmaker; rows are kept in memory."""

    def __init__(self):
        self.rows = []
        self.statements = []
        self.query_result = []
        self.commits = 0
        self.attempts = 0
        self.failing = False
        self.error: Exception = SQLAlchemyError("store unavailable")

    def __call__(self):
        return FakeSession(self)


# ==================== FAKE TRANSPORT ====================

class FakeTransport:
    """In-memory broker: tests feed payloads, the ingest loop consumes them."""

    def __init__(self, connect_failures: int = 0):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.connect_failures = connect_failures
        self.connect_calls = 0
        self.subscriptions = []
        self.disconnect_calls = 0

    async def connect(self):
        self.connect_calls += 1
        if self.connect_failures:
            self.connect_failures -= 1
            raise TransportError("connection refused")

    async def subscribe(self, pattern, qos):
        self.subscriptions.append((pattern, qos))

    async def next_message(self):
        item = await self.queue.get()
        if item is None:
            return None
        if isinstance(item, Exception):
            raise item
        return item

    async def disconnect(self):
        self.disconnect_calls += 1
        self.queue.put_nowait(None)

    def feed(self, payload, topic="devices/esp32/esp1/state"):
        if isinstance(payload, str):
            payload = payload.encode()
        self.queue.put_nowait(InboundMessage(topic, payload))

    def drop_connection(self):
        self.queue.put_nowait(TransportConnectionLost("connection lost"))


async def wait_until(predicate, timeout: float = 2.0):
    """Poll *predicate* until true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


# ==================== FIXTURES ====================

@pytest.fixture
def settings():
    return Settings(
        database_url="postgresql+asyncpg://sensorhub@localhost/sensorhub_test",
        create_tables=False,
        ingest_enabled=False,
        persist_failure_delay=0.0,
        reconnect_initial_delay=0.01,
        reconnect_max_delay=0.05,
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def full_payload():
    """Every field the firmware can send."""
    return {
        "ts": 1690000000,
        "device": "A1B2C3D4E5F6",
        "wifi": {"rssi": -61},
        "bno055": {
            "ok": True,
            "heading_deg": 123.5,
            "roll_deg": -3.25,
            "pitch_deg": 1.5,
            "temp_c": 27.0,
            "linear_accel_ms2": {"x": 0.01, "y": -0.02, "z": 0.03},
            "gyro_rads": {"x": 0.001, "y": 0.002, "z": -0.003},
            "mag_uT": {"x": 22.5, "y": -4.125, "z": -40.25},
            "calib": {"sys": 3, "gyro": 3, "accel": 2, "mag": 1},
        },
        "ultrasonic_cm": 87.5,
    }
