"""In-memory per-device state store.

This is the only component allowed to mutate device state. Handlers write
through it; the exporter reads copies from it.
"""

from __future__ import annotations

import abc
import logging
import threading
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from trvcal.exceptions import StoreKeyMissingError
from trvcal.models import TemperatureSensorReading, ValveReading

_logger = logging.getLogger(__name__)


def _blank_sensor() -> TemperatureSensorReading:
    return TemperatureSensorReading(temperature=0.0)


def _blank_valve() -> ValveReading:
    return ValveReading(local_temperature=0.0, local_calibration=0.0)


class CoupledDeviceState(BaseModel):
    """Latest sensor and valve readings for one device pairing.

    The ``*_seen`` flags are set by the first reading of each kind and are
    never cleared; later readings only replace the values.
    """

    model_config = ConfigDict(extra="forbid")

    sensor: TemperatureSensorReading = Field(default_factory=_blank_sensor)
    valve: ValveReading = Field(default_factory=_blank_valve)
    sensor_seen: bool = False
    valve_seen: bool = False

    def set_sensor(self, reading: TemperatureSensorReading) -> None:
        self.sensor = reading
        self.sensor_seen = True

    def set_valve(self, reading: ValveReading) -> None:
        self.valve = reading
        self.valve_seen = True

    @property
    def is_ready(self) -> bool:
        return self.sensor_seen and self.valve_seen

    def freeze(self) -> DeviceSnapshot:
        # Readings are frozen models, so sharing them with the snapshot is safe.
        return DeviceSnapshot(sensor=self.sensor, valve=self.valve, ready=self.is_ready)


class DeviceSnapshot(BaseModel):
    """Point-in-time copy of one device's coupled state."""

    model_config = ConfigDict(frozen=True)

    sensor: TemperatureSensorReading
    valve: ValveReading
    ready: bool

    @property
    def can_calibrate(self) -> bool:
        """Both readings seen and neither still at a non-positive default."""
        return self.ready and self.sensor.temperature > 0 and self.valve.local_temperature > 0


class DeviceStateStore(abc.ABC):
    """Interface for the device state store.

    Implementations decide the locking strategy; callers only rely on each
    method being atomic per device.
    """

    @property
    @abc.abstractmethod
    def device_ids(self) -> list[str]: ...

    @abc.abstractmethod
    def update_sensor(self, device_id: str, reading: TemperatureSensorReading) -> DeviceSnapshot:
        """Record a sensor reading and return the device state right after the write."""

    @abc.abstractmethod
    def update_valve(self, device_id: str, reading: ValveReading) -> DeviceSnapshot:
        """Record a valve reading and return the device state right after the write."""

    @abc.abstractmethod
    def get(self, device_id: str) -> DeviceSnapshot: ...

    @abc.abstractmethod
    def snapshot(self) -> dict[str, DeviceSnapshot]:
        """Copy of every device's state."""


class LockedDeviceStateStore(DeviceStateStore):
    """Store guarded by one lock over the whole mapping.

    Every critical section is an O(1) update or a shallow copy, so a single
    coarse lock is enough at household device counts. A ``threading.Lock``
    makes the store safe to read from threads other than the event loop's.
    """

    def __init__(self, device_ids: Iterable[str]) -> None:
        self._lock = threading.Lock()
        self._devices: dict[str, CoupledDeviceState] = {device_id: CoupledDeviceState() for device_id in device_ids}

    @property
    def device_ids(self) -> list[str]:
        return list(self._devices)

    def _state(self, device_id: str) -> CoupledDeviceState:
        state = self._devices.get(device_id)
        if state is None:
            raise StoreKeyMissingError(device_id)
        return state

    def update_sensor(self, device_id: str, reading: TemperatureSensorReading) -> DeviceSnapshot:
        with self._lock:
            state = self._state(device_id)
            state.set_sensor(reading)
            snapshot = state.freeze()
        _logger.debug("Sensor state updated device=%s temperature=%s", device_id, reading.temperature)
        return snapshot

    def update_valve(self, device_id: str, reading: ValveReading) -> DeviceSnapshot:
        with self._lock:
            state = self._state(device_id)
            state.set_valve(reading)
            snapshot = state.freeze()
        _logger.debug(
            "Valve state updated device=%s local_temperature=%s calibration=%s",
            device_id,
            reading.local_temperature,
            reading.local_calibration,
        )
        return snapshot

    def get(self, device_id: str) -> DeviceSnapshot:
        with self._lock:
            return self._state(device_id).freeze()

    def snapshot(self) -> dict[str, DeviceSnapshot]:
        with self._lock:
            return {device_id: state.freeze() for device_id, state in self._devices.items()}
