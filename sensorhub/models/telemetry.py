"""
SensorData model - one row per decoded device observation
"""

from datetime import datetime
from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sensorhub.core.database import Base


class SensorData(Base):
    """Flattened telemetry reading. Every sensor column is nullable: absent means unknown."""

    __tablename__ = "sensor_data"

    id: Mapped[int] = mapped_column(primary_key=True)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    device: Mapped[str] = mapped_column(String, index=True)

    wifi_rssi: Mapped[int | None] = mapped_column(Integer, nullable=True)  # dBm

    # BNO055 orientation sensor
    bno_ok: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    heading_deg: Mapped[float | None] = mapped_column(Float, nullable=True)
    roll_deg: Mapped[float | None] = mapped_column(Float, nullable=True)
    pitch_deg: Mapped[float | None] = mapped_column(Float, nullable=True)
    temp_c: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Linear acceleration (m/s²)
    accel_x: Mapped[float | None] = mapped_column(Float, nullable=True)
    accel_y: Mapped[float | None] = mapped_column(Float, nullable=True)
    accel_z: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Angular rate (rad/s)
    gyro_x: Mapped[float | None] = mapped_column(Float, nullable=True)
    gyro_y: Mapped[float | None] = mapped_column(Float, nullable=True)
    gyro_z: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Magnetic field (uT)
    mag_x: Mapped[float | None] = mapped_column(Float, nullable=True)
    mag_y: Mapped[float | None] = mapped_column(Float, nullable=True)
    mag_z: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Calibration quality, 0-3 per channel
    calib_sys: Mapped[int | None] = mapped_column(Integer, nullable=True)
    calib_gyro: Mapped[int | None] = mapped_column(Integer, nullable=True)
    calib_accel: Mapped[int | None] = mapped_column(Integer, nullable=True)
    calib_mag: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Ultrasonic range finder
    ultrasonic_cm: Mapped[float | None] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<SensorData device={self.device} ts={self.ts}>"
