"""MQTT push connector, payload decoding and link runtime."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Mapping
from typing import Any, cast

import paho.mqtt.client as mqtt

from fleetsync._channel import FrameCallback, LostCallback
from fleetsync._constants import UPDATE_EVENT
from fleetsync.config import FleetConfig
from fleetsync.exceptions import FleetChannelError

_logger = logging.getLogger(__name__)


def decode_update_payload(payload: bytes, update_event: str = UPDATE_EVENT) -> dict[str, Any] | None:
    """Decode one MQTT message into an update fragment.

    Accepts a bare fragment object or an envelope
    ``{"event": "bus_update", "data": {...}}``. Returns ``None`` for other
    events and for anything that is not a JSON object.
    """
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(parsed, dict):
        return None
    if "event" in parsed:
        if parsed.get("event") != update_event:
            return None
        data = parsed.get("data")
        return data if isinstance(data, dict) else None
    return parsed


def build_client_id(config: FleetConfig) -> str:
    if config.mqtt_client_id:
        return config.mqtt_client_id
    return f"fleetsync-{secrets.token_hex(4)}"


class MqttPushLink:
    """One connected paho client. Network I/O runs on paho's own thread."""

    def __init__(self, client: mqtt.Client, config: FleetConfig) -> None:
        self._client = client
        self._config = config
        self.closing = False

    async def announce(self, message: Mapping[str, Any]) -> None:
        """Publish the subscription intent on the control topic."""
        info = self._client.publish(self._config.control_topic, json.dumps(dict(message)), qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise FleetChannelError(f"Publishing to {self._config.control_topic} failed: rc={info.rc}")
        _logger.debug("Announced %s on %s", message, self._config.control_topic)

    async def close(self) -> None:
        if self.closing:
            return
        self.closing = True
        await asyncio.get_running_loop().run_in_executor(None, self._shutdown)

    def _shutdown(self) -> None:
        try:
            self._client.disconnect()
        finally:
            self._client.loop_stop()
            _logger.debug("MQTT network loop stopped")


class MqttPushConnector:
    """Opens :class:`MqttPushLink` instances against the configured broker.

    paho callbacks run on the network thread; frames and loss notices are
    handed to the asyncio loop with ``call_soon_threadsafe``.
    """

    def __init__(self, config: FleetConfig) -> None:
        self._config = config

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=build_client_id(self._config),
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(_logger)
        if self._config.mqtt_username:
            client.username_pw_set(self._config.mqtt_username, self._config.mqtt_password)
        if self._config.mqtt_tls:
            client.tls_set()
        return client

    async def open(self, on_frame: FrameCallback, on_lost: LostCallback) -> MqttPushLink:
        loop = asyncio.get_running_loop()
        config = self._config
        client = self._build_client()
        link = MqttPushLink(client, config)
        acknowledged: asyncio.Future[None] = loop.create_future()

        def resolve(error: Exception | None) -> None:
            if acknowledged.done():
                return
            if error is None:
                acknowledged.set_result(None)
            else:
                acknowledged.set_exception(error)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                _logger.warning("MQTT connect refused: %s", reason_code)
                loop.call_soon_threadsafe(resolve, FleetChannelError(f"Broker refused connection: {reason_code}"))
                return
            _logger.debug("MQTT connected, subscribing topic=%s", config.update_topic)
            c.subscribe(config.update_topic, qos=1)
            loop.call_soon_threadsafe(resolve, None)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            frame = decode_update_payload(msg.payload)
            if frame is None:
                _logger.debug("Ignoring MQTT payload on %s: %r", msg.topic, msg.payload[:200])
                return
            loop.call_soon_threadsafe(on_frame, frame)

        def on_disconnect(
            _c: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if link.closing:
                return
            _logger.debug("MQTT disconnected: %s", reason_code)
            loop.call_soon_threadsafe(resolve, FleetChannelError(f"Disconnected during connect: {reason_code}"))
            loop.call_soon_threadsafe(on_lost, str(reason_code))

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        _logger.debug("MQTT connecting host=%s port=%s", config.mqtt_host, config.mqtt_port)
        try:
            await loop.run_in_executor(
                None,
                lambda: client.connect(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive),
            )
        except (OSError, ValueError) as exc:
            raise FleetChannelError(f"Cannot reach broker {config.mqtt_host}:{config.mqtt_port}: {exc}") from exc

        client.loop_start()
        try:
            await asyncio.wait_for(acknowledged, config.connect_timeout)
        except asyncio.TimeoutError as exc:
            await link.close()
            raise FleetChannelError(f"No CONNACK within {config.connect_timeout}s") from exc
        except FleetChannelError:
            await link.close()
            raise
        return link
