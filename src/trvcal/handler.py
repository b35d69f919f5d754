"""Telemetry message handling.

Translates raw MQTT payloads into readings, applies them to the state store
and, once a device has both readings, asks the publisher to correct the
valve calibration.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from trvcal.calibration import compute_calibration
from trvcal.exceptions import DecodeError, PublishError, StoreKeyMissingError
from trvcal.models import TemperatureSensorReading, ValveReading
from trvcal.publisher import UpdatePublisher
from trvcal.registry import DeviceKind, DeviceRegistry, Route
from trvcal.state.store import DeviceSnapshot, DeviceStateStore

_logger = logging.getLogger(__name__)


def decode_sensor_payload(payload: bytes, *, topic: str = "") -> TemperatureSensorReading:
    """Decode a sensor state payload, raising :class:`DecodeError` when malformed."""
    try:
        return TemperatureSensorReading.model_validate_json(payload)
    except ValidationError as exc:
        raise DecodeError(f"Invalid sensor payload: {exc.errors(include_url=False)}", topic=topic) from exc


def decode_valve_payload(payload: bytes, *, topic: str = "") -> ValveReading:
    """Decode a valve state payload, raising :class:`DecodeError` when malformed."""
    try:
        return ValveReading.model_validate_json(payload)
    except ValidationError as exc:
        raise DecodeError(f"Invalid valve payload: {exc.errors(include_url=False)}", topic=topic) from exc


class MessageHandler:
    def __init__(
        self,
        *,
        registry: DeviceRegistry,
        store: DeviceStateStore,
        publisher: UpdatePublisher,
    ) -> None:
        self._registry = registry
        self._store = store
        self._publisher = publisher

    async def handle_message(self, topic: str, payload: bytes) -> None:
        """Resolve *topic* and handle the message; unknown topics are ignored."""
        route = self._registry.resolve(topic)
        if route is None:
            _logger.debug("Ignoring message on unmatched topic=%s", topic)
            return
        await self.handle(route, topic, payload)

    async def handle(self, route: Route, topic: str, payload: bytes) -> None:
        """Apply one message for an already resolved device.

        Decode failures, missing store entries and publish failures are
        logged here and never propagate.
        """
        try:
            snapshot = self._apply(route, topic, payload)
        except DecodeError as exc:
            _logger.warning("Dropping message device=%s topic=%s: %s", route.device_id, topic, exc)
            return
        except StoreKeyMissingError as exc:
            _logger.error("Error: %s (topic=%s)", exc, topic)
            return

        if not snapshot.can_calibrate:
            return

        sensor_temp = snapshot.sensor.temperature
        old_calibration = snapshot.valve.local_calibration
        displayed_temp = snapshot.valve.local_temperature
        new_calibration = compute_calibration(sensor_temp, old_calibration, displayed_temp)
        _logger.debug(
            "Computed calibration device=%s sensor=%s displayed=%s old=%s new=%s",
            route.device_id,
            sensor_temp,
            displayed_temp,
            old_calibration,
            new_calibration,
        )
        try:
            await self._publisher.maybe_publish(route.device_id, new_calibration, old_calibration)
        except PublishError as exc:
            _logger.warning("Calibration publish failed device=%s: %s", route.device_id, exc)

    def _apply(self, route: Route, topic: str, payload: bytes) -> DeviceSnapshot:
        if route.kind is DeviceKind.SENSOR:
            sensor = decode_sensor_payload(payload, topic=topic)
            _logger.debug("Temperature sensor reading device=%s %s", route.device_id, sensor)
            return self._store.update_sensor(route.device_id, sensor)
        valve = decode_valve_payload(payload, topic=topic)
        _logger.debug("Thermo valve reading device=%s %s", route.device_id, valve)
        return self._store.update_valve(route.device_id, valve)
