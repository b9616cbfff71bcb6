"""
ORM model for alerts raised by devices over MQTT or by rule actions.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from . import Base


ALERT_TYPE_MQTT = "mqtt"
ALERT_TYPE_RULE_ACTION = "rule_action"


class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (Index("ix_alerts_home_ts", "home_id", "timestamp"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    home_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="info")
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(32), nullable=False, default=ALERT_TYPE_MQTT)
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
