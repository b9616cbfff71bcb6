"""
Health endpoint reporting broker connectivity and rule engine progress.
"""

from __future__ import annotations

import time

from fastapi import APIRouter, Request


router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("")
def health(request: Request) -> dict:
    state = request.app.state
    consumer = getattr(state, "mqtt_consumer", None)
    publisher = getattr(state, "command_publisher", None)
    engine = getattr(state, "rule_engine", None)
    return {
        "status": "ok",
        "time": int(time.time() * 1000),
        "mqtt_ingest_connected": consumer.is_connected() if consumer else None,
        "mqtt_publisher_connected": publisher.is_connected() if publisher else None,
        "rule_engine": engine.status() if engine else None,
    }
