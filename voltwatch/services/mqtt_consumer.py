"""
MQTT consumer for ingesting sensor telemetry into the backend.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import paho.mqtt.client as mqtt
from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.db import SessionLocal
from ..core.errors import log_exception
from ..core.mqtt import create_client
from .telemetry_ingest import ingest_message, subscription_topics
from .telemetry_store import now_ms


class MQTTConsumer:
    """MQTT subscriber that writes power, energy and alert messages to the database."""

    def __init__(
        self,
        current: Optional[Settings] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        client: Optional[mqtt.Client] = None,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.settings = current or default_settings
        self.session_factory = session_factory
        self.homes = self.settings.subscribed_homes()
        self.client = client or create_client("voltwatch-ingest", self.settings)
        self.client.on_connect = self.on_connect  # type: ignore
        self.client.on_message = self.on_message  # type: ignore
        self.client.on_disconnect = self.on_disconnect  # type: ignore
        self._connected = threading.Event()
        self._started = False

    def topics(self) -> list[str]:
        topics: list[str] = []
        for home_id in self.homes:
            topics.extend(subscription_topics(home_id))
        return topics

    def on_connect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None) -> None:  # type: ignore
        if reason_code.is_failure:
            self.logger.error("Failed to connect to MQTT broker: %s", reason_code)
            return
        self.logger.info(
            "Connected to MQTT broker %s:%s",
            self.settings.mqtt_broker_host,
            self.settings.mqtt_broker_port,
        )
        # Subscriptions are renewed on every (re)connect.
        for topic in self.topics():
            result, _mid = client.subscribe(topic, qos=1)
            if result != mqtt.MQTT_ERR_SUCCESS:
                self.logger.error("Error subscribing to %s: %s", topic, mqtt.error_string(result))
            else:
                self.logger.info("Subscribed to: %s", topic)
        self._connected.set()

    def on_disconnect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None) -> None:  # type: ignore
        self._connected.clear()
        self.logger.warning("MQTT disconnected: %s", reason_code)

    def on_message(self, client: mqtt.Client, userdata, msg) -> None:  # type: ignore
        self.handle_message(msg.topic, msg.payload)

    def handle_message(self, topic: str, payload: bytes, received_at_ms: Optional[int] = None):
        received = received_at_ms if received_at_ms is not None else now_ms()
        try:
            with self.session_factory() as db:
                return ingest_message(db, topic, payload, received_at_ms=received)
        except Exception as exc:
            log_exception(self.logger, "Failed to ingest telemetry", extra={"topic": topic}, exc=exc)
            return None

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

    def stop(self) -> None:
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
