from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

import paho.mqtt.client as mqtt

from onvif2mqtt.config import MqttConfig

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], None]


class MqttTransport:
    """paho-mqtt wrapper that prefixes every topic with the configured base topic."""

    def __init__(self, mqtt_config: MqttConfig, client: Optional[mqtt.Client] = None):
        self._config = mqtt_config
        self._client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2, client_id=self._config.client_id or ""
        )
        if self._config.username:
            self._client.username_pw_set(self._config.username, self._config.password)

        self._client.on_connect = self._on_connect
        self._client.on_message = self._on_message
        self._client.on_disconnect = self._on_disconnect
        self._client.reconnect_delay_set(min_delay=1, max_delay=30)

        self._handlers: Dict[str, List[MessageHandler]] = {}
        self._lock = threading.Lock()

    @property
    def base_topic(self) -> str:
        return self._config.base_topic

    def topic(self, topic_suffix: str) -> str:
        return f"{self._config.base_topic}/{topic_suffix}"

    def connect(self) -> None:
        logger.info(
            "Connecting to MQTT broker",
            extra={"host": self._config.host, "port": self._config.port, "base_topic": self._config.base_topic},
        )
        try:
            self._client.connect(self._config.host, self._config.port)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to connect to MQTT broker")
            raise
        self._client.loop_start()

    def close(self) -> None:
        logger.info("Disconnecting from MQTT broker")
        self._client.disconnect()
        self._client.loop_stop()

    def publish(self, topic_suffix: str, payload: Union[str, bytes], retain: bool = False, qos: int = 0) -> None:
        topic = self.topic(topic_suffix)
        logger.debug("publish", extra={"topic": topic, "retain": retain})
        self._client.publish(topic, payload, qos=qos, retain=retain)

    def subscribe(self, topic_suffix: str, handler: MessageHandler) -> None:
        topic = self.topic(topic_suffix)
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)
        self._client.subscribe(topic)

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        if reason_code == 0:
            logger.info("Connected to MQTT broker")
            # subscriptions do not survive a clean reconnect
            for topic in list(self._handlers):
                client.subscribe(topic)
        else:
            logger.error("MQTT connection failed", extra={"code": str(reason_code)})

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        logger.warning("Disconnected from MQTT broker", extra={"code": str(reason_code)})

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        with self._lock:
            handlers = list(self._handlers.get(msg.topic, ()))
        for handler in handlers:
            try:
                handler(msg.topic, msg.payload)
            except Exception:  # noqa: BLE001
                logger.exception("MQTT message handler failed", extra={"topic": msg.topic})
