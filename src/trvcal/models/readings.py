"""Decoded sensor and valve readings."""

from __future__ import annotations

from pydantic import Field

from trvcal.models._base import TelemetryModel


class TemperatureSensorReading(TelemetryModel):
    """State published by the reference temperature sensor.

    Parameters
    ----------
    temperature : float
        Measured temperature in degrees Celsius.
    """

    temperature: float


class ValveReading(TelemetryModel):
    """State published by the thermostatic valve.

    Parameters
    ----------
    local_temperature : float
        Temperature the valve currently displays, calibration included.
    local_calibration : float
        Calibration offset currently applied on the valve. Carried on the
        wire as ``local_temperature_calibration``.
    """

    local_temperature: float
    local_calibration: float = Field(alias="local_temperature_calibration")
