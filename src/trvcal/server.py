"""Read-only HTTP view of the device state store."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from trvcal.config import HttpConfig
from trvcal.state.store import DeviceStateStore

_logger = logging.getLogger(__name__)


class StateExporter:
    """Serializes store snapshots for the ``/state`` endpoint."""

    def __init__(self, store: DeviceStateStore) -> None:
        self._store = store

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Map each device id to ``{"sensor": ..., "valve": ..., "ready": ...}``.

        The store lock is only held while copying; serialization happens on
        the copy.
        """
        copies = self._store.snapshot()
        return {device_id: device.model_dump(mode="json", by_alias=True) for device_id, device in copies.items()}


EXPORTER_KEY = web.AppKey("exporter", StateExporter)


async def get_state(request: web.Request) -> web.Response:
    exporter = request.app[EXPORTER_KEY]
    return web.json_response(exporter.snapshot())


def create_app(exporter: StateExporter) -> web.Application:
    app = web.Application()
    app[EXPORTER_KEY] = exporter
    app.router.add_get("/state", get_state)
    return app


class StateServer:
    """Runs the state application on the configured host and port."""

    def __init__(self, exporter: StateExporter, config: HttpConfig) -> None:
        self._app = create_app(exporter)
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        runner = web.AppRunner(self._app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._config.host, self._config.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        _logger.info("State endpoint listening on http://%s:%s/state", self._config.host, self._config.port)

    async def stop(self) -> None:
        runner = self._runner
        self._runner = None
        if runner is not None:
            await runner.cleanup()
