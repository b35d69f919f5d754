from __future__ import annotations

import pytest

from tests.fakes import FakeTransport
from trvcal.config import CalibratorConfig, DeviceConfig, MqttConfig


def _devices() -> tuple[DeviceConfig, ...]:
    return (
        DeviceConfig("living_room", "living_room/temp_sensor", "living_room/thermo_valve"),
        DeviceConfig("bedroom", "bedroom/temp_sensor", "bedroom/thermo_valve"),
    )


@pytest.fixture
def devices() -> tuple[DeviceConfig, ...]:
    return _devices()


@pytest.fixture
def config() -> CalibratorConfig:
    return CalibratorConfig(
        mqtt=MqttConfig(host="broker.local", base_topic="zigbee2mqtt"),
        devices=_devices(),
        drain_timeout=1.0,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
