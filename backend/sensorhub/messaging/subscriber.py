"""MQTT connection lifecycle around a SensorConsumer.

Runs paho-mqtt's network loop in its own thread.  The subscription is
(re)issued from on_connect so it survives broker reconnects.
"""

import logging
import threading
from typing import Any, Optional

import paho.mqtt.client as mqtt

from ..config import Settings, settings as default_settings
from .consumer import SensorConsumer

logger = logging.getLogger(__name__)


class MqttSubscriber:
    """Connects to the configured broker and routes one topic to a consumer."""

    def __init__(self, consumer: SensorConsumer, config: Optional[Settings] = None):
        self.consumer = consumer
        self.config = config or default_settings
        self._connected = threading.Event()
        self._client: Optional[mqtt.Client] = None

    @property
    def broker(self) -> str:
        return f"{self.config.mqtt_protocol}://{self.config.mqtt_host}:{self.config.mqtt_port}"

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def _build_client(self) -> mqtt.Client:
        transport = "websockets" if self.config.mqtt_protocol in ("ws", "wss") else "tcp"
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.config.mqtt_client_id,
            transport=transport,
        )
        if self.config.mqtt_protocol in ("ssl", "tls", "wss"):
            client.tls_set()
        if self.config.mqtt_user:
            client.username_pw_set(self.config.mqtt_user, self.config.mqtt_pass or None)
        client.reconnect_delay_set(min_delay=1, max_delay=30)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self.consumer.handle_message
        return client

    def _on_connect(self, client: mqtt.Client, _userdata: Any, _flags: Any,
                    reason_code: Any, _properties: Any = None) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connect to %s refused: %s", self.broker, reason_code)
            return
        client.subscribe(self.config.mqtt_topic, qos=self.config.mqtt_qos)
        self._connected.set()
        logger.info("MQTT connected to %s, subscribed to %s", self.broker, self.config.mqtt_topic)

    def _on_disconnect(self, _client: mqtt.Client, _userdata: Any, _flags: Any,
                       reason_code: Any, _properties: Any = None) -> None:
        self._connected.clear()
        if reason_code.is_failure:
            logger.warning("MQTT connection lost (%s), reconnecting...", reason_code)
        else:
            logger.info("MQTT disconnected from %s", self.broker)

    def start(self) -> bool:
        """Start the network loop and wait briefly for the first CONNACK.

        Returns whether the connection came up within the configured
        timeout; the loop keeps retrying in the background either way.
        """
        self._client = self._build_client()
        self._client.connect_async(
            self.config.mqtt_host, self.config.mqtt_port, keepalive=self.config.mqtt_keepalive_sec,
        )
        self._client.loop_start()
        if not self._connected.wait(self.config.mqtt_connect_timeout_sec):
            logger.error(
                "MQTT connect to %s timed out after %.0fs, retrying in background",
                self.broker, self.config.mqtt_connect_timeout_sec,
            )
            return False
        return True

    def stop(self) -> None:
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._client = None
        logger.info("MQTT subscriber stopped")
