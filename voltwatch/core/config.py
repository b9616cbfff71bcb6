"""
Configuration for the VoltWatch backend.

Settings cover the database connection, the MQTT broker used for both
telemetry ingestion and device commands, and the rule engine schedule.
Values are loaded from environment variables or a `.env` file; the
defaults are suitable for local development against a broker on
localhost.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pathlib import Path
from dotenv import load_dotenv
import logging
import os

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, override=False)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Database connection string. Default is a local SQLite file.
    database_url: str = Field(default="sqlite+pysqlite:///./voltwatch.db", env="DATABASE_URL")
    mqtt_broker_host: str = Field(default="localhost", env="MQTT_BROKER_HOST")
    mqtt_broker_port: int = Field(default=1883, env="MQTT_BROKER_PORT")
    mqtt_username: str | None = Field(default=None, env="MQTT_USERNAME")
    mqtt_password: str | None = Field(default=None, env="MQTT_PASSWORD")
    mqtt_protocol: str = Field(default="v311", env="MQTT_PROTOCOL")
    # QoS for actuator commands; commands are fire-and-forget.
    mqtt_command_qos: int = Field(default=0, ge=0, le=2, env="MQTT_COMMAND_QOS")
    home_id: str = Field(default="home1", env="HOME_ID")
    # Optional comma separated list; overrides home_id for subscriptions.
    home_ids: str | None = Field(default=None, env="HOME_IDS")
    rule_eval_interval_ms: int = Field(default=30000, env="RULE_EVAL_INTERVAL_MS")
    # IANA zone for time_of_day / day_of_week conditions. Unset = server local time.
    rule_timezone: str | None = Field(default=None, env="RULE_TIMEZONE")
    enable_mqtt_consumer: bool = Field(default=True, env="ENABLE_MQTT_CONSUMER")
    enable_rule_engine: bool = Field(default=True, env="ENABLE_RULE_ENGINE")
    auto_create_db: bool = Field(default=True, env="AUTO_CREATE_DB")
    auth_disabled: bool = Field(default=True, validation_alias="VOLTWATCH_AUTH_DISABLED")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def subscribed_homes(self) -> list[str]:
        if self.home_ids:
            homes = [h.strip() for h in self.home_ids.split(",") if h.strip()]
            if homes:
                return homes
        return [self.home_id]

    @property
    def rule_eval_interval_sec(self) -> float:
        return self.rule_eval_interval_ms / 1000.0


settings = Settings()


def get_app_env() -> str:
    raw = os.getenv("VOLTWATCH_ENV") or os.getenv("APP_ENV") or "dev"
    env = raw.strip().lower()
    if env not in {"dev", "prod"}:
        logging.getLogger("config").warning("Unknown VOLTWATCH_ENV=%s; defaulting to dev", raw)
        env = "dev"
    return env


def validate_runtime_settings(current: Settings | None = None) -> None:
    current = current or settings
    env = get_app_env()
    logger = logging.getLogger("config")

    if current.rule_eval_interval_ms <= 0:
        raise RuntimeError("RULE_EVAL_INTERVAL_MS must be positive.")
    if current.rule_eval_interval_ms < 1000:
        logger.warning(
            "RULE_EVAL_INTERVAL_MS=%s is below one second; rules will be polled aggressively.",
            current.rule_eval_interval_ms,
        )
    if env == "prod":
        if current.auth_disabled:
            raise RuntimeError("VOLTWATCH_AUTH_DISABLED must be false in prod.")
        if current.database_url.startswith("sqlite"):
            logger.warning("DATABASE_URL points at SQLite in prod. Consider a server database.")
        if current.auto_create_db:
            logger.warning("AUTO_CREATE_DB is enabled in prod. Consider setting it to false.")


validate_runtime_settings()
