"""
paho-mqtt client construction shared by the telemetry consumer and the
command publisher.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import paho.mqtt.client as mqtt

from .config import Settings, settings as default_settings


_PROTOCOLS = {
    "v31": mqtt.MQTTv31,
    "v311": mqtt.MQTTv311,
    "v5": mqtt.MQTTv5,
}


def create_client(prefix: str, current: Optional[Settings] = None) -> mqtt.Client:
    current = current or default_settings
    logger = logging.getLogger("mqtt")
    protocol = (current.mqtt_protocol or "v311").lower()
    mqtt_protocol = _PROTOCOLS.get(protocol, mqtt.MQTTv311)
    client_id = f"{prefix}-{os.getpid()}-{os.urandom(3).hex()}"
    logger.info("MQTT client_id=%s protocol=%s", client_id, protocol)
    kwargs = {"client_id": client_id, "protocol": mqtt_protocol}
    if mqtt_protocol != mqtt.MQTTv5:
        # MQTT 5 replaces clean_session with clean_start on connect.
        kwargs["clean_session"] = True
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, **kwargs)
    if current.mqtt_username:
        client.username_pw_set(current.mqtt_username, current.mqtt_password)
    client.reconnect_delay_set(min_delay=1, max_delay=10)
    return client
