"""Data models for device telemetry."""

from trvcal.models._base import TelemetryModel
from trvcal.models.readings import TemperatureSensorReading, ValveReading

__all__ = [
    "TelemetryModel",
    "TemperatureSensorReading",
    "ValveReading",
]
