"""paho-mqtt transport running its network loop in a background thread."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any, cast

import paho.mqtt.client as mqtt

from trvcal.config import MqttConfig
from trvcal.exceptions import PublishError, TransportConnectError, TransportError, TransportPollError
from trvcal.transport import InboundMessage

ClientFactory = Callable[[MqttConfig], mqtt.Client]

# Queue sentinel marking the end of the inbound stream.
_CLOSED = None


def _default_client_factory(config: MqttConfig) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=config.client_id,
        protocol=mqtt.MQTTv311,
        clean_session=False,
    )


class MqttTransport:
    """Threaded paho-mqtt client that feeds inbound messages onto an asyncio loop.

    paho owns reconnection: after an unexpected disconnect its network
    thread reconnects with exponential backoff between
    ``reconnect_min_delay`` and ``reconnect_max_delay``, and subscriptions
    are restored from ``on_connect``.
    """

    def __init__(
        self,
        config: MqttConfig,
        *,
        client_factory: ClientFactory = _default_client_factory,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._inbound: asyncio.Queue[InboundMessage | None] = asyncio.Queue()
        self._topics: list[str] = []
        self._connected: asyncio.Future[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the network loop is active."""
        return self._running

    def _require_client(self) -> mqtt.Client:
        if self._client is None:
            raise TransportError("MQTT transport is not connected")
        return self._client

    async def connect(self) -> None:
        """Connect and wait for the broker's acknowledgement.

        Raises
        ------
        TransportConnectError
            When the broker is unreachable, rejects the connection, or does
            not answer within ``connect_timeout``.
        """
        self._loop = asyncio.get_running_loop()
        self._connected = self._loop.create_future()
        config = self._config
        self._logger.info("Connecting to the MQTT server %s:%s...", config.host, config.port)

        client = self._client_factory(config)
        client.enable_logger(self._logger)
        if config.username:
            client.username_pw_set(config.username, config.password)
        client.reconnect_delay_set(min_delay=config.reconnect_min_delay, max_delay=config.reconnect_max_delay)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        try:
            await self._loop.run_in_executor(None, client.connect, config.host, config.port, config.keepalive)
        except OSError as exc:
            raise TransportConnectError(f"Cannot reach MQTT broker {config.host}:{config.port}: {exc}") from exc

        self._client = client
        client.loop_start()
        self._running = True
        self._logger.debug("MQTT network loop started")

        try:
            await asyncio.wait_for(asyncio.shield(self._connected), config.connect_timeout)
        except TimeoutError as exc:
            await self.close()
            raise TransportConnectError(f"MQTT broker did not acknowledge within {config.connect_timeout}s") from exc
        except TransportConnectError:
            await self.close()
            raise

    async def subscribe(self, topics: Iterable[str]) -> None:
        """Subscribe now and after every reconnect."""
        self._topics = list(topics)
        self._logger.info("Subscribing to topics: %s", self._topics)
        self._subscribe_all(self._require_client())

    def _subscribe_all(self, client: mqtt.Client) -> None:
        if not self._topics:
            return
        result, _mid = client.subscribe([(topic, self._config.qos) for topic in self._topics])
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("MQTT subscribe failed: %s", mqtt.error_string(result))

    async def publish(self, topic: str, payload: str, *, qos: int = 1) -> None:
        """Publish and wait for the broker to acknowledge delivery.

        Raises
        ------
        PublishError
            When paho refuses the message or the acknowledgement does not
            arrive within ``publish_timeout``.
        """
        client = self._require_client()
        info = client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"Publish rejected: {mqtt.error_string(info.rc)}", topic=topic)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, info.wait_for_publish, self._config.publish_timeout)
        except (RuntimeError, ValueError) as exc:
            raise PublishError(f"Publish failed: {exc}", topic=topic) from exc
        if not info.is_published():
            raise PublishError(
                f"Publish not acknowledged within {self._config.publish_timeout}s",
                topic=topic,
            )

    async def messages(self) -> AsyncIterator[InboundMessage]:
        """Yield inbound messages in broker delivery order until closed."""
        while True:
            message = await self._inbound.get()
            if message is _CLOSED:
                return
            yield message

    async def close(self) -> None:
        """Unsubscribe, disconnect and stop the network loop."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._inbound.put_nowait(_CLOSED)

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                if self._topics:
                    client.unsubscribe(self._topics)
                client.disconnect()
        finally:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, client.loop_stop)
            self._logger.debug("MQTT network loop stopped")

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _call_in_loop(self, callback: Callable[..., Any], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback, *args)

    def _on_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.value != 0:
            self._logger.warning("MQTT connect failed: %s", reason_code)
            self._call_in_loop(
                self._resolve_connected,
                TransportConnectError(f"MQTT broker rejected connection: {reason_code}"),
            )
            return
        self._logger.info("MQTT connected reason=%s", reason_code)
        self._subscribe_all(client)
        self._call_in_loop(self._resolve_connected, None)

    def _resolve_connected(self, error: Exception | None) -> None:
        future = self._connected
        if future is None or future.done():
            return
        if error is None:
            future.set_result(None)
        else:
            future.set_exception(error)

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if not self._running:
            return
        error = TransportPollError(f"Lost connection to MQTT broker: {reason_code}")
        self._logger.warning("%s. Attempting reconnect.", error)

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self._logger.debug("Received PUBLISH topic=%s bytes=%d", msg.topic, len(msg.payload))
        self._call_in_loop(self._inbound.put_nowait, InboundMessage(topic=msg.topic, payload=bytes(msg.payload)))
