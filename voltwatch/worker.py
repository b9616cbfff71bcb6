"""
Headless worker entrypoint: telemetry ingestion plus the rule engine,
without the HTTP API.

    python -m voltwatch.worker
"""

from __future__ import annotations

import logging
import os
import signal
import threading

from .core.config import settings
from .core.db import SessionLocal, engine
from .core.logging_config import setup_logging
from .models import Base
from .services.mqtt_consumer import MQTTConsumer
from .services.mqtt_publisher import CommandPublisher
from .services.rule_engine import RuleEngine

logger = logging.getLogger("worker")


def main() -> int:
    setup_logging()
    logger.info("Worker booted (pid=%s)", os.getpid())
    if settings.auto_create_db:
        Base.metadata.create_all(bind=engine)

    stop_event = threading.Event()

    def _request_stop(signum, _frame) -> None:
        logger.info("Received signal %s; shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    consumer = None
    if settings.enable_mqtt_consumer:
        consumer = MQTTConsumer(settings, session_factory=SessionLocal)
        consumer.start()
    rule_engine = None
    if settings.enable_rule_engine:
        publisher = CommandPublisher(settings)
        publisher.start()
        rule_engine = RuleEngine(SessionLocal, publisher)
        rule_engine.start()

    logger.info(
        "Worker started homes=%s ingest=%s rules=%s",
        ",".join(settings.subscribed_homes()),
        consumer is not None,
        rule_engine is not None,
    )
    stop_event.wait()

    if consumer:
        consumer.stop()
    if rule_engine:
        rule_engine.stop()
    logger.info("Worker stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
