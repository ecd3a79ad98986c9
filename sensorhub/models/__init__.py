# Database models
from sensorhub.models.item import Item
from sensorhub.models.telemetry import SensorData

__all__ = ["Item", "SensorData"]
