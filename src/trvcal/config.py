"""Service configuration for trvcal."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from trvcal.exceptions import ConfigError

_ENV_MQTT_MAP = {
    "TRVCAL_MQTT_HOST": "host",
    "TRVCAL_MQTT_BASE_TOPIC": "base_topic",
    "TRVCAL_MQTT_USERNAME": "username",
    "TRVCAL_MQTT_PASSWORD": "password",
    "TRVCAL_MQTT_CLIENT_ID": "client_id",
}


def _env_int(value: str | None, name: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _coerce(value: Any, kind: type, name: str) -> Any:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class MqttConfig:
    """Broker connection parameters.

    Parameters
    ----------
    host : str
        Broker host name or address.
    port : int
        Broker TCP port.
    base_topic : str
        Topic prefix under which device telemetry is published
        (``zigbee2mqtt`` for a default Zigbee2MQTT install).
    username : str or None
        Optional broker user.
    password : str or None
        Optional broker password.
    client_id : str
        MQTT client identifier. A fixed id keeps the broker session
        (and its queued QoS 1 messages) across restarts.
    keepalive : int
        Keepalive interval in seconds.
    qos : int
        QoS used for telemetry subscriptions.
    connect_timeout : float
        Seconds to wait for the broker to acknowledge the first connection.
    publish_timeout : float
        Seconds to wait for a calibration publish to be acknowledged.
    reconnect_min_delay : int
        Initial reconnect backoff in seconds.
    reconnect_max_delay : int
        Upper bound for the reconnect backoff in seconds.
    """

    host: str
    port: int = 1883
    base_topic: str = "zigbee2mqtt"
    username: str | None = None
    password: str | None = None
    client_id: str = "trvcal"
    keepalive: int = 30
    qos: int = 1
    connect_timeout: float = 10.0
    publish_timeout: float = 5.0
    reconnect_min_delay: int = 1
    reconnect_max_delay: int = 60


@dataclasses.dataclass(frozen=True)
class HttpConfig:
    """Listener for the state endpoint."""

    host: str = "127.0.0.1"
    port: int = 3030


@dataclasses.dataclass(frozen=True)
class DeviceConfig:
    """One reference sensor paired with one valve actuator.

    Suffixes are joined to ``MqttConfig.base_topic`` to form the topics
    the devices publish their state on.
    """

    device_id: str
    sensor_suffix: str
    valve_suffix: str


@dataclasses.dataclass(frozen=True)
class CalibratorConfig:
    """Complete service configuration."""

    mqtt: MqttConfig
    devices: tuple[DeviceConfig, ...]
    http: HttpConfig = dataclasses.field(default_factory=HttpConfig)
    drain_timeout: float = 5.0
    device_queue_size: int = 16

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], **overrides: Any) -> CalibratorConfig:
        """Build configuration from a parsed YAML document.

        Environment variables ``TRVCAL_MQTT_*`` and ``TRVCAL_HTTP_*``
        override file values; explicit keyword arguments override both.

        Raises
        ------
        ConfigError
            When a required section or key is missing or malformed.
        """
        if not isinstance(data, Mapping):
            raise ConfigError("Configuration root must be a mapping")

        mqtt = _parse_mqtt(data.get("mqtt"))
        http = _parse_http(data.get("http"))
        devices = _parse_devices(data.get("devices"))

        config_kwargs: dict[str, Any] = {"mqtt": mqtt, "http": http, "devices": devices}
        for key in ("drain_timeout", "device_queue_size"):
            if key in data:
                config_kwargs[key] = data[key]
        config_kwargs.update(overrides)

        if "drain_timeout" in config_kwargs:
            config_kwargs["drain_timeout"] = _coerce(config_kwargs["drain_timeout"], float, "drain_timeout")
        if "device_queue_size" in config_kwargs:
            config_kwargs["device_queue_size"] = _coerce(config_kwargs["device_queue_size"], int, "device_queue_size")

        try:
            config = cls(**config_kwargs)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc
        if config.drain_timeout < 0:
            raise ConfigError("drain_timeout must not be negative")
        # One pending slot per reading kind.
        if config.device_queue_size < 2:
            raise ConfigError("device_queue_size must be at least 2")
        return config

    @classmethod
    def from_file(cls, path: str | Path, **overrides: Any) -> CalibratorConfig:
        """Load configuration from a YAML file."""
        try:
            with open(path, encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except OSError as exc:
            raise ConfigError(f"Cannot read configuration file {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        return cls.from_mapping(data or {}, **overrides)


def _parse_mqtt(section: Any) -> MqttConfig:
    if not isinstance(section, Mapping):
        raise ConfigError("Missing 'mqtt' section")

    env = os.environ
    kwargs: dict[str, Any] = {}
    field_names = {f.name for f in dataclasses.fields(MqttConfig)}
    for key, value in section.items():
        # "qos_value" is the key used by older configuration files.
        name = "qos" if key == "qos_value" else key
        if name in field_names:
            kwargs[name] = value

    for env_key, field_name in _ENV_MQTT_MAP.items():
        val = env.get(env_key)
        if val is not None:
            kwargs[field_name] = val

    port = _env_int(env.get("TRVCAL_MQTT_PORT"), "TRVCAL_MQTT_PORT")
    if port is not None:
        kwargs["port"] = port

    if not kwargs.get("host"):
        raise ConfigError("mqtt.host is required")
    base_topic = str(kwargs.get("base_topic", MqttConfig.base_topic)).strip("/")
    if not base_topic:
        raise ConfigError("mqtt.base_topic must be non-empty")
    kwargs["base_topic"] = base_topic
    if kwargs.get("qos", 1) not in (0, 1, 2):
        raise ConfigError(f"mqtt.qos must be 0, 1 or 2, got {kwargs['qos']!r}")
    return MqttConfig(**kwargs)


def _parse_http(section: Any) -> HttpConfig:
    if section is None:
        section = {}
    if not isinstance(section, Mapping):
        raise ConfigError("'http' section must be a mapping")

    env = os.environ
    kwargs: dict[str, Any] = {k: v for k, v in section.items() if k in ("host", "port")}
    host = env.get("TRVCAL_HTTP_HOST")
    if host is not None:
        kwargs["host"] = host
    port = _env_int(env.get("TRVCAL_HTTP_PORT"), "TRVCAL_HTTP_PORT")
    if port is not None:
        kwargs["port"] = port
    return HttpConfig(**kwargs)


def _parse_devices(section: Any) -> tuple[DeviceConfig, ...]:
    if not isinstance(section, Mapping) or not section:
        raise ConfigError("'devices' section must map at least one device id to its topics")

    devices: list[DeviceConfig] = []
    for device_id, entry in section.items():
        if not isinstance(entry, Mapping):
            raise ConfigError(f"Device {device_id!r} must be a mapping")
        sensor = entry.get("temperature_sensor")
        valve = entry.get("valve_actuator")
        if not isinstance(sensor, str) or not sensor.strip("/"):
            raise ConfigError(f"Device {device_id!r} is missing 'temperature_sensor'")
        if not isinstance(valve, str) or not valve.strip("/"):
            raise ConfigError(f"Device {device_id!r} is missing 'valve_actuator'")
        devices.append(
            DeviceConfig(
                device_id=str(device_id),
                sensor_suffix=sensor.strip("/"),
                valve_suffix=valve.strip("/"),
            )
        )
    return tuple(devices)
