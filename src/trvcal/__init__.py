"""trvcal - Keep thermostatic valve calibration in line with a reference sensor."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("trvcal")
except PackageNotFoundError:
    __version__ = "0+local"
from trvcal.calibration import compute_calibration, should_publish
from trvcal.config import CalibratorConfig, DeviceConfig, HttpConfig, MqttConfig
from trvcal.exceptions import (
    ConfigError,
    DecodeError,
    PublishError,
    StoreKeyMissingError,
    TransportConnectError,
    TransportError,
    TransportPollError,
    TrvCalError,
)
from trvcal.models import TemperatureSensorReading, ValveReading
from trvcal.registry import DeviceRegistry
from trvcal.service import CalibrationService
from trvcal.state import DeviceSnapshot, DeviceStateStore, LockedDeviceStateStore

__all__ = [
    "__version__",
    "CalibrationService",
    "CalibratorConfig",
    "ConfigError",
    "DecodeError",
    "DeviceConfig",
    "DeviceRegistry",
    "DeviceSnapshot",
    "DeviceStateStore",
    "HttpConfig",
    "LockedDeviceStateStore",
    "MqttConfig",
    "PublishError",
    "StoreKeyMissingError",
    "TemperatureSensorReading",
    "TransportConnectError",
    "TransportError",
    "TransportPollError",
    "TrvCalError",
    "ValveReading",
    "compute_calibration",
    "should_publish",
]
