"""
Entry point for the VoltWatch backend.

This script creates the FastAPI application, includes all API routers,
and starts the background services (MQTT telemetry ingestion, the
command publisher and the rule engine). Run with:

    uvicorn voltwatch.main:app --reload

"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .core.db import engine, SessionLocal
from .models import Base
from .services.mqtt_consumer import MQTTConsumer
from .services.mqtt_publisher import CommandPublisher
from .services.rule_engine import RuleEngine

from .api import api_router
from .core.config import settings, get_app_env
from .core.errors import log_exception
from .core.logging_config import setup_logging


def create_app() -> FastAPI:
    app = FastAPI(title="VoltWatch Backend", version="0.1.0")
    # Include API routers
    app.include_router(api_router)
    app.state.mqtt_consumer = None
    app.state.command_publisher = None
    app.state.rule_engine = None

    @app.on_event("startup")
    def _startup() -> None:
        setup_logging()
        logger = logging.getLogger("startup")
        env = get_app_env()
        if settings.auto_create_db:
            try:
                Base.metadata.create_all(bind=engine)
            except Exception as exc:
                log_exception(logger, "DB create_all failed", exc=exc)
                if env == "prod":
                    raise
        if settings.enable_mqtt_consumer:
            consumer = MQTTConsumer(settings, session_factory=SessionLocal)
            consumer.start()
            app.state.mqtt_consumer = consumer
        if settings.enable_rule_engine:
            publisher = CommandPublisher(settings)
            publisher.start()
            app.state.command_publisher = publisher
            rule_engine = RuleEngine(SessionLocal, publisher)
            rule_engine.start()
            app.state.rule_engine = rule_engine

    @app.on_event("shutdown")
    def _shutdown() -> None:
        consumer = getattr(app.state, "mqtt_consumer", None)
        if consumer:
            consumer.stop()
        rule_engine = getattr(app.state, "rule_engine", None)
        if rule_engine:
            # Also closes the command publisher it was given.
            rule_engine.stop()
        publisher = getattr(app.state, "command_publisher", None)
        if publisher:
            publisher.close()

    return app


app = create_app()
