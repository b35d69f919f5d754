"""State/store layer.

This package holds the single source of truth for the latest readings of
every configured device pairing.
"""

from trvcal.state.store import CoupledDeviceState, DeviceSnapshot, DeviceStateStore, LockedDeviceStateStore

__all__ = [
    "CoupledDeviceState",
    "DeviceSnapshot",
    "DeviceStateStore",
    "LockedDeviceStateStore",
]
