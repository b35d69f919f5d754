"""Inbound message dispatch.

Each configured device owns a bounded queue consumed by one worker task.
Messages for one device are therefore handled in the order the broker
delivered them, while a slow publish for one device never holds up the
others. The ingest loop only routes and enqueues; it never waits for a
handler to finish.
"""

from __future__ import annotations

import asyncio
import logging

from trvcal.handler import MessageHandler
from trvcal.registry import DeviceRegistry, Route
from trvcal.transport import InboundMessage, Transport

_logger = logging.getLogger(__name__)

_QueueItem = tuple[Route, InboundMessage]

MIN_QUEUE_SIZE = 2


class Dispatcher:
    def __init__(
        self,
        *,
        registry: DeviceRegistry,
        handler: MessageHandler,
        queue_size: int = 16,
    ) -> None:
        if queue_size < MIN_QUEUE_SIZE:
            raise ValueError(f"queue_size must be at least {MIN_QUEUE_SIZE}, got {queue_size}")
        self._registry = registry
        self._handler = handler
        self._queues: dict[str, asyncio.Queue[_QueueItem]] = {
            device_id: asyncio.Queue(maxsize=queue_size) for device_id in registry.device_ids
        }
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Messages discarded because a device queue was full."""
        return self._dropped

    def start(self) -> None:
        for device_id, queue in self._queues.items():
            if device_id not in self._workers:
                self._workers[device_id] = asyncio.create_task(
                    self._worker(device_id, queue),
                    name=f"trvcal-worker-{device_id}",
                )

    def submit(self, message: InboundMessage) -> bool:
        """Route *message* to its device queue without waiting.

        Returns ``False`` when the topic belongs to no configured device.
        """
        route = self._registry.resolve(message.topic)
        if route is None:
            _logger.debug("Ignoring message on unmatched topic=%s", message.topic)
            return False

        queue = self._queues.get(route.device_id)
        if queue is None:
            _logger.error("Error: no dispatch queue for device=%s", route.device_id)
            return False

        if queue.full():
            self._evict_superseded(route, queue)
        queue.put_nowait((route, message))
        return True

    def _evict_superseded(self, incoming: Route, queue: asyncio.Queue[_QueueItem]) -> None:
        """Drop the oldest pending message that a later message of the same kind replaces.

        Sensor and valve updates overwrite their own half of the device state,
        so only a reading with a newer one of its kind behind it is safe to
        discard. With at least two slots such a reading always exists.
        """
        pending: list[_QueueItem] = []
        while not queue.empty():
            pending.append(queue.get_nowait())
        taken = len(pending)

        kinds = [route.kind for route, _message in pending] + [incoming.kind]
        for index, (route, message) in enumerate(pending):
            if route.kind in kinds[index + 1 :]:
                del pending[index]
                self._dropped += 1
                _logger.warning(
                    "Dispatch queue full for device=%s, dropped superseded %s message topic=%s",
                    route.device_id,
                    route.kind,
                    message.topic,
                )
                break

        for item in pending:
            queue.put_nowait(item)
        # Unfinished count must stay above zero while pending work exists.
        for _ in range(taken):
            queue.task_done()

    async def run(self, transport: Transport) -> None:
        """Consume the transport's message stream until it ends or is cancelled."""
        self.start()
        _logger.info("Waiting for messages...")
        async for message in transport.messages():
            self.submit(message)
        _logger.debug("Transport message stream ended")

    async def _worker(self, device_id: str, queue: asyncio.Queue[_QueueItem]) -> None:
        while True:
            route, message = await queue.get()
            try:
                await self._handler.handle(route, message.topic, message.payload)
            except Exception:
                _logger.exception("Unexpected error handling message device=%s topic=%s", device_id, message.topic)
            finally:
                queue.task_done()

    async def drain(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for queued messages, then stop the workers.

        Returns ``True`` when every queued message was handled in time.
        """
        drained = True
        if self._workers:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*(queue.join() for queue in self._queues.values())),
                    timeout,
                )
            except TimeoutError:
                drained = False
                pending = sum(queue.qsize() for queue in self._queues.values())
                _logger.warning("Drain timed out after %.1fs with %d queued messages", timeout, pending)

        workers = list(self._workers.values())
        self._workers.clear()
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        return drained
