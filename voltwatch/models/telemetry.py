"""
ORM models for append-only telemetry samples.

Timestamps are milliseconds since the epoch, as reported by the sensor
nodes (or the receipt time when a node omits them).
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from . import Base


class PowerReading(Base):
    __tablename__ = "power_readings"
    __table_args__ = (Index("ix_power_readings_home_device_ts", "home_id", "device_id", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    home_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    watts: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    voltage: Mapped[float | None] = mapped_column(Float, nullable=True)
    current: Mapped[float | None] = mapped_column(Float, nullable=True)


class EnergyReading(Base):
    __tablename__ = "energy_readings"
    __table_args__ = (Index("ix_energy_readings_home_device_ts", "home_id", "device_id", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    home_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Cumulative counter; non-decreasing per device within a day.
    wh_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
