"""
API request/response models
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class SensorDataOut(BaseModel):
    """Persisted telemetry row. Unknown values are null, never zero."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    ts: datetime
    device: str
    wifi_rssi: int | None = None
    bno_ok: bool | None = None
    heading_deg: float | None = None
    roll_deg: float | None = None
    pitch_deg: float | None = None
    temp_c: float | None = None
    accel_x: float | None = None
    accel_y: float | None = None
    accel_z: float | None = None
    gyro_x: float | None = None
    gyro_y: float | None = None
    gyro_z: float | None = None
    mag_x: float | None = None
    mag_y: float | None = None
    mag_z: float | None = None
    calib_sys: int | None = None
    calib_gyro: int | None = None
    calib_accel: int | None = None
    calib_mag: int | None = None
    ultrasonic_cm: float | None = None
