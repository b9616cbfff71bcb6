"""
MQTT publisher for actuator commands.

Commands are published to ``home/{home}/cmd/{device}/set`` with a JSON
body ``{"on": bool}``. Delivery is fire-and-forget: there is no
acknowledgment tracking and nothing is retried once the broker client
has accepted or rejected the message.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Optional

import paho.mqtt.client as mqtt

from ..core.config import Settings, settings as default_settings
from ..core.errors import CommandPublishError, log_exception
from ..core.mqtt import create_client


def command_topic(home_id: str, device_id: str) -> str:
    return f"home/{home_id}/cmd/{device_id}/set"


def command_payload(on: bool) -> str:
    return json.dumps({"on": bool(on)})


class CommandPublisher:
    """Long-lived MQTT connection used to send device commands."""

    def __init__(self, current: Optional[Settings] = None, client: Optional[mqtt.Client] = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.settings = current or default_settings
        self.qos = self.settings.mqtt_command_qos
        self.client = client or create_client("voltwatch-cmd", self.settings)
        self.client.on_connect = self.on_connect  # type: ignore
        self.client.on_disconnect = self.on_disconnect  # type: ignore
        self._connected = threading.Event()
        self._started = False

    def on_connect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None) -> None:  # type: ignore
        if reason_code.is_failure:
            self.logger.error("Command publisher failed to connect: %s", reason_code)
            return
        self.logger.info(
            "Command publisher connected to MQTT broker %s:%s",
            self.settings.mqtt_broker_host,
            self.settings.mqtt_broker_port,
        )
        self._connected.set()

    def on_disconnect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None) -> None:  # type: ignore
        self._connected.clear()
        self.logger.warning("Command publisher disconnected: %s", reason_code)

    def start(self) -> None:
        try:
            self.client.connect_async(
                self.settings.mqtt_broker_host,
                self.settings.mqtt_broker_port,
                keepalive=60,
            )
            self.client.loop_start()
            self._started = True
        except Exception as exc:
            self.logger.error(
                "MQTT connection failed for %s:%s (%s)",
                self.settings.mqtt_broker_host,
                self.settings.mqtt_broker_port,
                exc,
            )

    def publish_device_command(self, home_id: str, device_id: str, on: bool) -> None:
        topic = command_topic(home_id, device_id)
        info = self.client.publish(topic, command_payload(on), qos=self.qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise CommandPublishError(f"publish to {topic} failed: {mqtt.error_string(info.rc)}")
        self.logger.info("Command sent: %s -> %s", device_id, "ON" if on else "OFF")

    def close(self) -> None:
        if not self._started:
            return
        self._started = False
        try:
            self.client.loop_stop()
            self.client.disconnect()
        except Exception as exc:
            log_exception(self.logger, "MQTT shutdown failed", exc=exc)

    def is_connected(self) -> bool:
        return self._connected.is_set()
