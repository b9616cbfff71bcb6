"""
Decode telemetry messages from MQTT and persist them.

Topic layout (``{home}`` and ``{device}`` are taken from the topic):

- ``home/{home}/sensor/{device}/power``  -> power_readings
- ``home/{home}/sensor/{device}/energy`` -> energy_readings
- ``home/{home}/event/alert``            -> alerts (type ``mqtt`` unless given)

Telemetry is lossy: a malformed payload or a failed insert is logged and
the message dropped. Nothing here retries or buffers, and nothing here
knows about rules.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..core.errors import log_exception
from ..models.alert import ALERT_TYPE_MQTT
from ..schemas.telemetry import AlertPayloadIn, EnergyPayloadIn, PowerPayloadIn
from .telemetry_store import insert_alert, insert_energy_reading, insert_power_reading, now_ms


logger = logging.getLogger("telemetry_ingest")

KIND_POWER = "power"
KIND_ENERGY = "energy"
KIND_ALERT = "alert"


class MalformedPayload(ValueError):
    pass


@dataclass(frozen=True)
class TopicRoute:
    kind: str
    home_id: str
    device_id: Optional[str] = None


def subscription_topics(home_id: str) -> list[str]:
    return [
        f"home/{home_id}/sensor/+/power",
        f"home/{home_id}/sensor/+/energy",
        f"home/{home_id}/event/alert",
    ]


def parse_topic(topic: str) -> Optional[TopicRoute]:
    parts = topic.split("/")
    if len(parts) == 5 and parts[0] == "home" and parts[2] == "sensor" and parts[4] in {KIND_POWER, KIND_ENERGY}:
        if not parts[1] or not parts[3]:
            return None
        return TopicRoute(kind=parts[4], home_id=parts[1], device_id=parts[3])
    if len(parts) == 4 and parts[0] == "home" and parts[2] == "event" and parts[3] == KIND_ALERT:
        if not parts[1]:
            return None
        return TopicRoute(kind=KIND_ALERT, home_id=parts[1])
    return None


def decode_payload(payload: Union[bytes, str]) -> dict:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise MalformedPayload(f"expected a JSON object, got {type(data).__name__}")
    return data


def _timestamp(ts: Optional[float], received_at_ms: int) -> int:
    # Missing or zero timestamps fall back to receipt time.
    if not ts:
        return received_at_ms
    return int(ts)


def ingest_message(
    db: Session,
    topic: str,
    payload: Union[bytes, str],
    *,
    received_at_ms: Optional[int] = None,
):
    """Store one MQTT message. Returns the inserted row, or None if it was dropped."""
    route = parse_topic(topic)
    if route is None:
        logger.warning("Ignoring message on unrecognised topic=%s", topic)
        return None
    received = received_at_ms if received_at_ms is not None else now_ms()
    try:
        data = decode_payload(payload)
        if route.kind == KIND_POWER:
            parsed = PowerPayloadIn.model_validate(data)
        elif route.kind == KIND_ENERGY:
            parsed = EnergyPayloadIn.model_validate(data)
        else:
            parsed = AlertPayloadIn.model_validate(data)
    except (ValueError, ValidationError) as exc:
        logger.warning(
            "Invalid telemetry payload topic=%s payload_len=%s err=%s",
            topic,
            len(payload) if payload is not None else None,
            exc,
        )
        return None

    try:
        if route.kind == KIND_POWER:
            row = insert_power_reading(
                db,
                home_id=route.home_id,
                device_id=route.device_id,
                timestamp=_timestamp(parsed.ts, received),
                watts=parsed.watts or 0.0,
                voltage=parsed.voltage,
                current=parsed.current,
            )
            logger.debug("Power: %s = %sW", route.device_id, row.watts)
            return row
        if route.kind == KIND_ENERGY:
            row = insert_energy_reading(
                db,
                home_id=route.home_id,
                device_id=route.device_id,
                timestamp=_timestamp(parsed.ts, received),
                wh_total=parsed.wh_total or 0.0,
            )
            logger.debug("Energy: %s = %sWh total", route.device_id, row.wh_total)
            return row
        row = insert_alert(
            db,
            home_id=route.home_id,
            device_id=parsed.device_id,
            timestamp=_timestamp(parsed.ts, received),
            severity=parsed.severity or "info",
            message=parsed.message or "",
            alert_type=parsed.type or ALERT_TYPE_MQTT,
        )
        logger.info("Alert: [%s] %s", row.severity, row.message)
        return row
    except Exception as exc:
        db.rollback()
        log_exception(logger, "Failed to store telemetry", extra={"topic": topic, "kind": route.kind}, exc=exc)
        return None
