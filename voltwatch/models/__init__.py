"""
SQLAlchemy model base class for the VoltWatch backend.

This package defines ORM models for telemetry samples, alerts and
automation rules. All models should inherit from the declarative `Base`
defined here.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


from .telemetry import PowerReading, EnergyReading  # noqa: E402,F401
from .alert import Alert  # noqa: E402,F401
from .rule import Rule  # noqa: E402,F401

__all__ = [
    "Base",

    # Telemetry
    "PowerReading",
    "EnergyReading",

    # Alerts
    "Alert",

    # Automation
    "Rule",
]
