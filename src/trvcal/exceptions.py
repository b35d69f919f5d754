"""Custom exception hierarchy for trvcal."""

from __future__ import annotations


class TrvCalError(Exception):
    """Base exception for all trvcal errors."""


class ConfigError(TrvCalError):
    """Invalid or missing configuration."""


class DecodeError(TrvCalError):
    """Telemetry payload for a resolved topic could not be decoded."""

    def __init__(self, message: str, *, topic: str = "") -> None:
        self.topic = topic
        super().__init__(message)


class StoreKeyMissingError(TrvCalError):
    """A resolved device identifier has no entry in the state store.

    Entries are fixed when the store is built from configuration, so this
    indicates the registry and the store were built from different device
    sets.
    """

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(f"Device {device_id!r} not found in state store")


class TransportError(TrvCalError):
    """MQTT-level failure."""


class TransportConnectError(TransportError):
    """Initial broker connection failed or was rejected."""


class TransportPollError(TransportError):
    """Connection to the broker was lost while running."""


class PublishError(TransportError):
    """A calibration message could not be delivered to the broker."""

    def __init__(self, message: str, *, topic: str = "") -> None:
        self.topic = topic
        super().__init__(message)
