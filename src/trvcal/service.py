"""Wiring and lifecycle for the calibration service."""

from __future__ import annotations

import logging

from trvcal._mqtt import MqttTransport
from trvcal.config import CalibratorConfig
from trvcal.dispatch import Dispatcher
from trvcal.handler import MessageHandler
from trvcal.publisher import UpdatePublisher
from trvcal.registry import DeviceRegistry
from trvcal.server import StateExporter, StateServer
from trvcal.state.store import DeviceStateStore, LockedDeviceStateStore
from trvcal.transport import Transport

_logger = logging.getLogger(__name__)


class CalibrationService:
    """Keeps every configured valve calibrated against its reference sensor.

    Usage::

        async with CalibrationService(config) as service:
            await service.run()

    Entering the context connects to the broker (raising
    :class:`~trvcal.exceptions.TransportConnectError` when that fails),
    subscribes to every device topic and starts the state endpoint.
    Leaving it drains queued messages for at most ``drain_timeout`` seconds
    and then disconnects.
    """

    def __init__(
        self,
        config: CalibratorConfig,
        *,
        transport: Transport | None = None,
        store: DeviceStateStore | None = None,
        serve_http: bool = True,
    ) -> None:
        self._config = config
        self.registry = DeviceRegistry(config.devices, base_topic=config.mqtt.base_topic)
        self.store = store if store is not None else LockedDeviceStateStore(self.registry.device_ids)
        self.transport: Transport = transport if transport is not None else MqttTransport(config.mqtt)
        self.publisher = UpdatePublisher(self.transport, self.registry)
        self.handler = MessageHandler(registry=self.registry, store=self.store, publisher=self.publisher)
        self.dispatcher = Dispatcher(
            registry=self.registry,
            handler=self.handler,
            queue_size=config.device_queue_size,
        )
        self.exporter = StateExporter(self.store)
        self._server = StateServer(self.exporter, config.http) if serve_http else None

    async def __aenter__(self) -> CalibrationService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def start(self) -> None:
        await self.transport.connect()
        try:
            await self.transport.subscribe(self.registry.subscription_topics())
            if self._server is not None:
                await self._server.start()
        except BaseException:
            await self.transport.close()
            raise

    async def run(self) -> None:
        """Dispatch inbound messages until the transport closes or the task is cancelled."""
        await self.dispatcher.run(self.transport)

    async def stop(self) -> None:
        drained = await self.dispatcher.drain(self._config.drain_timeout)
        if not drained:
            _logger.warning("Shutting down with unhandled messages")
        if self._server is not None:
            await self._server.stop()
        await self.transport.close()
        _logger.info("Calibration service stopped")
