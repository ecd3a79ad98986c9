"""
Telemetry wire models - JSON published by the ESP32 devices.

Models are frozen and strict: a field of the wrong type rejects the whole
payload instead of being coerced. Unknown keys are ignored.
"""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Matches the INTEGER columns of sensor_data
Int32 = Annotated[int, Field(ge=-2**31, le=2**31 - 1)]


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")


class Vector3(_WireModel):
    x: float
    y: float
    z: float


class Calibration(_WireModel):
    """BNO055 calibration status per subsystem (0 = uncalibrated, 3 = fully calibrated)."""

    sys: Int32
    gyro: Int32
    accel: Int32
    mag: Int32


class WifiInfo(_WireModel):
    rssi: Int32


class OrientationReading(_WireModel):
    """BNO055 absolute orientation sensor block."""

    ok: bool
    heading_deg: float | None = None  # yaw
    roll_deg: float | None = None
    pitch_deg: float | None = None
    temp_c: float | None = None
    linear_accel_ms2: Vector3 | None = None
    gyro_rads: Vector3 | None = None
    mag_uT: Vector3 | None = None
    calib: Calibration | None = None


class TelemetryRecord(_WireModel):
    """One device observation. Only `ts` and `device` are mandatory."""

    ts: int  # epoch seconds
    device: str
    wifi: WifiInfo | None = None
    bno055: OrientationReading | None = None
    ultrasonic_cm: float | None = None

    @field_validator("ts")
    @classmethod
    def _ts_is_representable(cls, value: int) -> int:
        try:
            datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValueError(f"timestamp {value} is out of range")
        return value

    @property
    def recorded_at(self) -> datetime:
        """Absolute UTC instant of the observation."""
        return datetime.fromtimestamp(self.ts, tz=timezone.utc)
