"""Publish/subscribe transport contract."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class InboundMessage:
    """One telemetry message as delivered by the broker."""

    topic: str
    payload: bytes


class Transport(Protocol):
    """Structural transport interface used by the dispatcher and publisher.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`MqttTransport`) concrete.
    """

    async def connect(self) -> None: ...

    async def subscribe(self, topics: Iterable[str]) -> None: ...

    async def publish(self, topic: str, payload: str, *, qos: int = 1) -> None: ...

    def messages(self) -> AsyncIterator[InboundMessage]: ...

    async def close(self) -> None: ...
