"""
Sensor Hub - Configuration
All settings loaded from environment variables
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    create_tables: bool = True

    # MQTT
    mqtt_broker: str = "test.mosquitto.org"
    mqtt_port: int = 1883
    mqtt_client_id: str = "sensorhub-subscriber"
    mqtt_topic: str = "devices/esp32/+/state"
    mqtt_qos: int = 1
    mqtt_keepalive: int = 60  # seconds
    mqtt_connect_timeout: float = 10.0  # seconds

    # Ingest
    ingest_enabled: bool = True
    persist_failure_delay: float = 0.2  # seconds
    reconnect_initial_delay: float = 1.0  # seconds
    reconnect_max_delay: float = 30.0  # seconds

    # Live viewers
    broadcast_capacity: int = 100  # messages buffered per viewer

    # HTTP
    http_host: str = "0.0.0.0"
    http_port: int = 8000
    telemetry_query_limit: int = 50

    log_level: str = "INFO"

    class Config:
        env_file = ".env"  # Fallback for local development
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
