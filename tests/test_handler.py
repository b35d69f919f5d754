from __future__ import annotations

import json
import logging

import pytest

from trvcal.config import DeviceConfig
from trvcal.exceptions import DecodeError
from trvcal.handler import MessageHandler, decode_sensor_payload, decode_valve_payload
from trvcal.publisher import UpdatePublisher
from trvcal.registry import DeviceRegistry
from trvcal.state.store import LockedDeviceStateStore

from tests.fakes import FakeTransport

SENSOR = "zigbee2mqtt/living_room/temp_sensor"
VALVE = "zigbee2mqtt/living_room/thermo_valve"
SET_TOPIC = "zigbee2mqtt/living_room/thermo_valve/set/local_temperature_calibration"


def _payload(**fields: float) -> bytes:
    return json.dumps(fields).encode()


def _build(
    devices: tuple[DeviceConfig, ...],
    transport: FakeTransport,
    store_ids: list[str] | None = None,
) -> tuple[MessageHandler, LockedDeviceStateStore]:
    registry = DeviceRegistry(devices, base_topic="zigbee2mqtt")
    store = LockedDeviceStateStore(store_ids if store_ids is not None else registry.device_ids)
    handler = MessageHandler(
        registry=registry,
        store=store,
        publisher=UpdatePublisher(transport, registry),
    )
    return handler, store


class TestDecode:
    def test_sensor_payload_ignores_extra_keys(self) -> None:
        reading = decode_sensor_payload(b'{"temperature": 21.4, "humidity": 40, "linkquality": 120}')
        assert reading.temperature == 21.4

    def test_valve_payload_uses_wire_names(self) -> None:
        reading = decode_valve_payload(_payload(local_temperature=19.5, local_temperature_calibration=-1.5))
        assert reading.local_temperature == 19.5
        assert reading.local_calibration == -1.5

    @pytest.mark.parametrize(
        "payload",
        [b"not json", b"[]", b'{"local_temperature": 20.0}', b'{"local_temperature": "warm", "local_temperature_calibration": 0}'],
    )
    def test_malformed_valve_payload_raises(self, payload: bytes) -> None:
        with pytest.raises(DecodeError) as excinfo:
            decode_valve_payload(payload, topic=VALVE)
        assert excinfo.value.topic == VALVE

    def test_nan_is_rejected(self) -> None:
        with pytest.raises(DecodeError):
            decode_sensor_payload(b'{"temperature": NaN}')


@pytest.mark.asyncio
async def test_publishes_once_both_readings_are_known(devices: tuple[DeviceConfig, ...], transport: FakeTransport) -> None:
    handler, store = _build(devices, transport)

    await handler.handle_message(VALVE, _payload(local_temperature=18.0, local_temperature_calibration=1.0))
    assert transport.published == []

    await handler.handle_message(SENSOR, _payload(temperature=21.6))
    assert transport.published == [(SET_TOPIC, "4.5", 1)]
    assert store.get("living_room").ready is True


@pytest.mark.asyncio
async def test_no_publish_when_calibration_already_matches(
    devices: tuple[DeviceConfig, ...], transport: FakeTransport
) -> None:
    handler, _store = _build(devices, transport)

    await handler.handle_message(SENSOR, _payload(temperature=21.2))
    await handler.handle_message(VALVE, _payload(local_temperature=21.0, local_temperature_calibration=1.0))

    assert transport.published == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("sensor_temp", "displayed"),
    [(0.0, 20.0), (21.0, 0.0), (-2.0, 20.0), (21.0, -1.0)],
)
async def test_no_publish_while_a_reading_is_non_positive(
    devices: tuple[DeviceConfig, ...],
    transport: FakeTransport,
    sensor_temp: float,
    displayed: float,
) -> None:
    handler, store = _build(devices, transport)

    await handler.handle_message(SENSOR, _payload(temperature=sensor_temp))
    await handler.handle_message(VALVE, _payload(local_temperature=displayed, local_temperature_calibration=3.0))

    assert store.get("living_room").ready is True
    assert transport.published == []


@pytest.mark.asyncio
async def test_sensor_topic_updates_only_sensor(devices: tuple[DeviceConfig, ...], transport: FakeTransport) -> None:
    handler, store = _build(devices, transport)

    await handler.handle_message(SENSOR, _payload(temperature=22.0))

    living_room = store.get("living_room")
    assert living_room.sensor.temperature == 22.0
    assert living_room.valve.local_temperature == 0.0
    assert living_room.ready is False
    assert store.get("bedroom").sensor.temperature == 0.0


@pytest.mark.asyncio
async def test_decode_failure_is_logged_and_dropped(
    devices: tuple[DeviceConfig, ...],
    transport: FakeTransport,
    caplog: pytest.LogCaptureFixture,
) -> None:
    handler, store = _build(devices, transport)
    await handler.handle_message(SENSOR, _payload(temperature=21.0))

    with caplog.at_level(logging.WARNING, logger="trvcal.handler"):
        await handler.handle_message(SENSOR, b"{broken")

    assert store.get("living_room").sensor.temperature == 21.0
    assert any("Dropping message" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_unmatched_topic_is_ignored(devices: tuple[DeviceConfig, ...], transport: FakeTransport) -> None:
    handler, store = _build(devices, transport)

    await handler.handle_message("zigbee2mqtt/kitchen/temp_sensor", b"{broken")

    assert all(not snapshot.ready for snapshot in store.snapshot().values())
    assert transport.published == []


@pytest.mark.asyncio
async def test_missing_store_entry_is_logged_not_raised(
    devices: tuple[DeviceConfig, ...],
    transport: FakeTransport,
    caplog: pytest.LogCaptureFixture,
) -> None:
    handler, _store = _build(devices, transport, store_ids=["living_room"])

    with caplog.at_level(logging.ERROR, logger="trvcal.handler"):
        await handler.handle_message("zigbee2mqtt/bedroom/temp_sensor", _payload(temperature=19.0))

    assert any("bedroom" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_publish_failure_is_logged_and_retried_on_next_report(
    devices: tuple[DeviceConfig, ...],
    transport: FakeTransport,
    caplog: pytest.LogCaptureFixture,
) -> None:
    handler, _store = _build(devices, transport)
    transport.fail_publish = True

    with caplog.at_level(logging.WARNING, logger="trvcal.handler"):
        await handler.handle_message(SENSOR, _payload(temperature=21.6))
        await handler.handle_message(VALVE, _payload(local_temperature=18.0, local_temperature_calibration=1.0))
    assert any("publish failed" in record.message for record in caplog.records)

    transport.fail_publish = False
    await handler.handle_message(VALVE, _payload(local_temperature=18.0, local_temperature_calibration=1.0))
    assert transport.published == [(SET_TOPIC, "4.5", 1)]
