"""Topic-to-device routing.

Suffixes are matched against the trailing ``/``-separated segments of a
topic, so ``zigbee2mqtt/living_room/valve`` resolves through the suffix
``living_room/valve`` but not through ``room/valve`` or ``valve2``.
Construction rejects suffix sets for which a topic could match more than
one entry, which keeps resolution unique.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from trvcal.config import DeviceConfig
from trvcal.exceptions import ConfigError

CALIBRATION_SET_PATH = "set/local_temperature_calibration"


class DeviceKind(StrEnum):
    SENSOR = "sensor"
    VALVE = "valve"


@dataclass(frozen=True)
class Route:
    """A topic resolved to the device and role that publish on it."""

    device_id: str
    kind: DeviceKind


def _segments(suffix: str) -> tuple[str, ...]:
    return tuple(suffix.strip("/").split("/"))


class DeviceRegistry:
    """Immutable mapping from telemetry topics to configured devices."""

    def __init__(self, devices: Iterable[DeviceConfig], *, base_topic: str) -> None:
        self._base_topic = base_topic.strip("/")
        self._devices: dict[str, DeviceConfig] = {}
        self._routes: dict[tuple[str, ...], Route] = {}

        for device in devices:
            if device.device_id in self._devices:
                raise ConfigError(f"Duplicate device id {device.device_id!r}")
            self._devices[device.device_id] = device
            self._add(device.sensor_suffix, Route(device.device_id, DeviceKind.SENSOR))
            self._add(device.valve_suffix, Route(device.device_id, DeviceKind.VALVE))

        self._check_ambiguity()
        self._max_depth = max((len(key) for key in self._routes), default=0)

    def _add(self, suffix: str, route: Route) -> None:
        key = _segments(suffix)
        existing = self._routes.get(key)
        if existing is not None:
            raise ConfigError(
                f"Suffix {suffix!r} is used by both {existing.device_id}/{existing.kind} "
                f"and {route.device_id}/{route.kind}"
            )
        self._routes[key] = route

    def _check_ambiguity(self) -> None:
        # A suffix equal to the tail of a longer suffix would match the same topics.
        for key in self._routes:
            for depth in range(1, len(key)):
                tail = key[-depth:]
                other = self._routes.get(tail)
                if other is not None:
                    raise ConfigError(
                        f"Suffix {'/'.join(tail)!r} ({other.device_id}) is a trailing part of "
                        f"{'/'.join(key)!r} ({self._routes[key].device_id})"
                    )

    @property
    def base_topic(self) -> str:
        return self._base_topic

    @property
    def device_ids(self) -> list[str]:
        return list(self._devices)

    def device(self, device_id: str) -> DeviceConfig:
        return self._devices[device_id]

    def resolve(self, topic: str) -> Route | None:
        """Return the route for *topic*, or ``None`` when no device publishes on it."""
        parts = _segments(topic)
        for depth in range(1, min(len(parts), self._max_depth) + 1):
            route = self._routes.get(parts[-depth:])
            if route is not None:
                return route
        return None

    def resolve_sensor(self, topic: str) -> str | None:
        route = self.resolve(topic)
        if route is None or route.kind is not DeviceKind.SENSOR:
            return None
        return route.device_id

    def resolve_valve(self, topic: str) -> str | None:
        route = self.resolve(topic)
        if route is None or route.kind is not DeviceKind.VALVE:
            return None
        return route.device_id

    def subscription_topics(self) -> list[str]:
        """Telemetry topics for every sensor, then every valve."""
        sensors = [f"{self._base_topic}/{d.sensor_suffix}" for d in self._devices.values()]
        valves = [f"{self._base_topic}/{d.valve_suffix}" for d in self._devices.values()]
        return sensors + valves

    def calibration_topic(self, device_id: str) -> str:
        """Topic that sets the calibration on *device_id*'s valve."""
        valve = self._devices[device_id].valve_suffix
        return f"{self._base_topic}/{valve}/{CALIBRATION_SET_PATH}"
