"""
Persistence Writer - appends one decoded record to the sensor_data table
"""

import asyncio
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sensorhub.models.telemetry import SensorData
from sensorhub.schemas.telemetry import TelemetryRecord

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """The store was unreachable or rejected the write."""


def record_to_row(record: TelemetryRecord) -> dict[str, Any]:
    """Flatten a record into sensor_data columns. Absent values map to None."""
    bno = record.bno055
    accel = bno.linear_accel_ms2 if bno else None
    gyro = bno.gyro_rads if bno else None
    mag = bno.mag_uT if bno else None
    calib = bno.calib if bno else None

    return {
        "ts": record.recorded_at,
        "device": record.device,
        "wifi_rssi": record.wifi.rssi if record.wifi else None,
        "bno_ok": bno.ok if bno else None,
        "heading_deg": bno.heading_deg if bno else None,
        "roll_deg": bno.roll_deg if bno else None,
        "pitch_deg": bno.pitch_deg if bno else None,
        "temp_c": bno.temp_c if bno else None,
        "accel_x": accel.x if accel else None,
        "accel_y": accel.y if accel else None,
        "accel_z": accel.z if accel else None,
        "gyro_x": gyro.x if gyro else None,
        "gyro_y": gyro.y if gyro else None,
        "gyro_z": gyro.z if gyro else None,
        "mag_x": mag.x if mag else None,
        "mag_y": mag.y if mag else None,
        "mag_z": mag.z if mag else None,
        "calib_sys": calib.sys if calib else None,
        "calib_gyro": calib.gyro if calib else None,
        "calib_accel": calib.accel if calib else None,
        "calib_mag": calib.mag if calib else None,
        "ultrasonic_cm": record.ultrasonic_cm,
    }


class TelemetryWriter:
    """Single-attempt insert of telemetry rows. Retry policy belongs to the caller."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def write(self, record: TelemetryRecord) -> None:
        """Insert one row for *record*. Raises PersistenceError on any storage failure."""
        try:
            async with self._session_maker() as session:
                session.add(SensorData(**record_to_row(record)))
                await session.commit()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise PersistenceError(f"Failed to store telemetry from {record.device}: {e}") from e

        logger.debug(f"💾 Saved telemetry for {record.device} @ {record.ts}")
