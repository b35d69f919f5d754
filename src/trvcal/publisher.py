"""Calibration publishing decision."""

from __future__ import annotations

import logging

from trvcal.calibration import should_publish
from trvcal.registry import DeviceRegistry
from trvcal.transport import Transport

_logger = logging.getLogger(__name__)

CALIBRATION_QOS = 1


class UpdatePublisher:
    """Sends a new calibration to a valve when it moved by at least one grid step."""

    def __init__(self, transport: Transport, registry: DeviceRegistry) -> None:
        self._transport = transport
        self._registry = registry

    async def maybe_publish(self, device_id: str, new_calibration: float, old_calibration: float) -> bool:
        """Publish *new_calibration* if it differs enough from *old_calibration*.

        Returns ``True`` when a message was handed to the transport. Transport
        failures propagate as :class:`~trvcal.exceptions.PublishError`; there
        is no retry here, the next valve report triggers a fresh attempt.
        """
        if not should_publish(new_calibration, old_calibration):
            _logger.debug(
                "Calibration unchanged device=%s current=%s computed=%s",
                device_id,
                old_calibration,
                new_calibration,
            )
            return False

        topic = self._registry.calibration_topic(device_id)
        payload = str(new_calibration)
        _logger.info(
            "Sending calibration update device=%s old=%s new=%s topic=%s",
            device_id,
            old_calibration,
            new_calibration,
            topic,
        )
        await self._transport.publish(topic, payload, qos=CALIBRATION_QOS)
        return True
