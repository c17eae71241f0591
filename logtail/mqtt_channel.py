"""MQTT push channel to a log server."""

import asyncio
import json
import logging
import uuid
from typing import Any

import paho.mqtt.client as mqtt

from .channel import ChannelError, PushChannel
from .config import MQTTConfig
from .models import parse_message

logger = logging.getLogger(__name__)


class MQTTPushChannel(PushChannel):
    """Push channel carried over an MQTT broker.

    Topics, relative to the configured prefix:
    - subscribe: subscription requests sent by this client
    - groups/<group>/events: live events for a group
    - clients/<client_id>/messages: catch-up and replayed events for this client

    Paho runs its network loop on its own thread; inbound messages and
    closures are handed to the asyncio loop with call_soon_threadsafe.
    """

    def __init__(self, config: MQTTConfig, client_name: str = "logtail"):
        super().__init__()
        self.config = config
        self.client_id = f"{client_name}-{uuid.uuid4().hex[:8]}"

        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

        # Connection state, written from the paho thread
        self._connected = False
        self._connect_error: str | None = None
        self._closing = False

    @property
    def request_topic(self) -> str:
        return f"{self.config.topic_prefix}/subscribe"

    @property
    def client_topic(self) -> str:
        return f"{self.config.topic_prefix}/clients/{self.client_id}/messages"

    def group_topic(self, group: str) -> str:
        return f"{self.config.topic_prefix}/groups/{group}/events"

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)
        client.on_connect = self._handle_connect
        client.on_message = self._handle_message
        client.on_disconnect = self._handle_disconnect
        client.on_connect_fail = self._handle_connect_fail

        if self.config.username and self.config.password:
            client.username_pw_set(self.config.username, self.config.password)
        return client

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        """Handle connection to broker."""
        if client is not self._client:
            return

        if reason_code == 0:
            client.subscribe(self.client_topic, qos=1)
            self._connected = True
            logger.info(f"Connected to MQTT broker at {self.config.broker}:{self.config.port}")
        else:
            self._connect_error = str(reason_code)
            logger.error(f"MQTT broker refused connection: {reason_code}")

    def _handle_connect_fail(self, client: mqtt.Client, userdata: Any) -> None:
        """Handle a broker that could not be reached at all."""
        if client is not self._client:
            return

        self._connect_error = "broker unreachable"
        logger.error(f"Could not reach MQTT broker at {self.config.broker}:{self.config.port}")

    def _handle_message(
        self,
        client: mqtt.Client,
        userdata: Any,
        msg: mqtt.MQTTMessage,
    ) -> None:
        """Decode an incoming message and pass it to the event loop."""
        if client is not self._client:
            return

        try:
            message = parse_message(json.loads(msg.payload.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Dropping undecodable message on {msg.topic}: {e}")
            return

        logger.debug(f"Received {type(message).__name__} on {msg.topic}")

        if self._loop:
            self._loop.call_soon_threadsafe(self._emit_message, message)

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        """Handle disconnection from broker."""
        if client is not self._client:
            return

        self._connected = False
        if self._closing:
            return

        # Reconnecting is up to the tail client, not paho
        client.loop_stop()
        logger.warning(f"Disconnected from MQTT broker: {reason_code}")

        if self._loop:
            self._loop.call_soon_threadsafe(self._emit_closed, str(reason_code))

    async def connect(self) -> None:
        """Connect to the MQTT broker.

        Raises:
            ChannelError: If the broker is unreachable, refuses the
                connection or does not answer within connect_timeout.
        """
        self._loop = asyncio.get_running_loop()
        self._connected = False
        self._connect_error = None
        self._closing = False
        self._client = self._build_client()

        # The socket connect runs on paho's thread, not the event loop
        try:
            self._client.connect_async(
                self.config.broker, self.config.port, keepalive=self.config.keepalive
            )
        except (OSError, ValueError) as e:
            raise ChannelError(
                f"Failed to connect to MQTT broker {self.config.broker}:{self.config.port}: {e}"
            ) from e

        self._client.loop_start()

        deadline = self._loop.time() + self.config.connect_timeout
        while self._loop.time() < deadline:
            if self._connected:
                return
            if self._connect_error:
                error = self._connect_error
                await self.close()
                raise ChannelError(
                    f"MQTT broker {self.config.broker}:{self.config.port} refused connection: {error}"
                )
            await asyncio.sleep(0.1)

        await self.close()
        raise ChannelError("Timeout waiting for MQTT connection")

    async def close(self) -> None:
        """Disconnect from the MQTT broker."""
        if self._client is None:
            return

        self._closing = True
        self._client.disconnect()
        self._client.loop_stop()
        self._connected = False

    async def subscribe(self, group: str, since_offset: int) -> None:
        """Subscribe to a group's live events and request replay after an offset."""
        if not self._connected or self._client is None:
            raise ChannelError("Cannot subscribe: not connected to broker")

        result, _ = self._client.subscribe(self.group_topic(group), qos=1)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise ChannelError(f"Failed to subscribe to group '{group}': {result}")

        payload = json.dumps(
            {"client_id": self.client_id, "group": group, "offset": since_offset}
        )
        info = self._client.publish(self.request_topic, payload, qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ChannelError(f"Failed to send subscription request: {info.rc}")

        logger.debug(f"Requested group '{group}' after offset {since_offset}")

    @property
    def is_open(self) -> bool:
        """Check if connected to broker."""
        return self._connected
