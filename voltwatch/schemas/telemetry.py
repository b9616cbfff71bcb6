"""
Pydantic schemas for telemetry payloads arriving over MQTT and for the
history/alert API responses.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PowerPayloadIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ts: Optional[float] = None
    watts: Optional[float] = None
    voltage: Optional[float] = None
    current: Optional[float] = None


class EnergyPayloadIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ts: Optional[float] = None
    wh_total: Optional[float] = None


class AlertPayloadIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ts: Optional[float] = None
    device_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("device_id", "deviceId"))
    severity: Optional[Literal["info", "warning", "danger"]] = None
    message: Optional[str] = None
    type: Optional[str] = None


class PowerReadingOut(BaseModel):
    timestamp: int
    watts: float
    voltage: Optional[float] = None
    current: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class EnergyReadingOut(BaseModel):
    timestamp: int
    wh_total: float

    model_config = ConfigDict(from_attributes=True)


class AlertOut(BaseModel):
    id: str
    home_id: str
    device_id: Optional[str] = None
    timestamp: int
    severity: str
    message: str
    type: str
    acknowledged: bool

    model_config = ConfigDict(from_attributes=True)


class DailyStatOut(BaseModel):
    date: str
    device_id: str
    samples: int
    avg_watts: Optional[float] = None
    max_watts: Optional[float] = None
    energy_wh: Optional[float] = None


class PowerStatsOut(BaseModel):
    count: int
    avg_watts: Optional[float] = None
    max_watts: Optional[float] = None
    min_watts: Optional[float] = None
    on_readings: int


class DeviceCommandIn(BaseModel):
    on: bool
