from __future__ import annotations

import threading

import pytest

from trvcal.exceptions import StoreKeyMissingError
from trvcal.models import TemperatureSensorReading, ValveReading
from trvcal.state.store import LockedDeviceStateStore


def _valve(displayed: float, calibration: float) -> ValveReading:
    return ValveReading(local_temperature=displayed, local_calibration=calibration)


def test_new_device_is_not_ready() -> None:
    store = LockedDeviceStateStore(["living_room"])

    snapshot = store.get("living_room")
    assert snapshot.ready is False
    assert snapshot.sensor.temperature == 0.0
    assert snapshot.valve.local_temperature == 0.0
    assert snapshot.valve.local_calibration == 0.0


def test_ready_only_after_both_readings() -> None:
    store = LockedDeviceStateStore(["living_room"])

    after_sensor = store.update_sensor("living_room", TemperatureSensorReading(temperature=21.0))
    assert after_sensor.ready is False

    after_valve = store.update_valve("living_room", _valve(20.0, 0.5))
    assert after_valve.ready is True


def test_readiness_is_never_cleared_by_later_readings() -> None:
    store = LockedDeviceStateStore(["living_room"])
    store.update_sensor("living_room", TemperatureSensorReading(temperature=21.0))
    store.update_valve("living_room", _valve(20.0, 0.5))

    store.update_sensor("living_room", TemperatureSensorReading(temperature=0.0))
    store.update_valve("living_room", _valve(0.0, 0.0))

    snapshot = store.get("living_room")
    assert snapshot.ready is True
    assert snapshot.sensor.temperature == 0.0
    assert snapshot.can_calibrate is False


def test_sensor_update_leaves_valve_untouched() -> None:
    store = LockedDeviceStateStore(["living_room"])
    store.update_valve("living_room", _valve(19.5, 1.0))

    store.update_sensor("living_room", TemperatureSensorReading(temperature=22.3))

    snapshot = store.get("living_room")
    assert snapshot.sensor.temperature == 22.3
    assert snapshot.valve == _valve(19.5, 1.0)


def test_unknown_device_raises() -> None:
    store = LockedDeviceStateStore(["living_room"])

    with pytest.raises(StoreKeyMissingError) as excinfo:
        store.update_sensor("garage", TemperatureSensorReading(temperature=10.0))
    assert excinfo.value.device_id == "garage"
    assert store.device_ids == ["living_room"]


def test_snapshot_is_a_copy() -> None:
    store = LockedDeviceStateStore(["living_room", "bedroom"])
    store.update_sensor("bedroom", TemperatureSensorReading(temperature=18.0))

    before = store.snapshot()
    store.update_sensor("bedroom", TemperatureSensorReading(temperature=19.0))

    assert before["bedroom"].sensor.temperature == 18.0
    assert store.snapshot()["bedroom"].sensor.temperature == 19.0
    assert set(before) == {"living_room", "bedroom"}


def test_concurrent_writers_and_readers_never_see_torn_state() -> None:
    store = LockedDeviceStateStore(["living_room"])
    errors: list[str] = []

    def writer() -> None:
        for i in range(1, 500):
            store.update_valve("living_room", _valve(float(i), float(i)))

    def reader() -> None:
        for _ in range(500):
            valve = store.snapshot()["living_room"].valve
            if valve.local_temperature != valve.local_calibration:
                errors.append(f"torn read {valve}")

    threads = [threading.Thread(target=writer) for _ in range(2)] + [threading.Thread(target=reader) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
