"""
Pydantic schemas for automation rules.

Conditions and actions are closed tagged unions keyed on ``type``. The
same adapters validate API payloads and the JSON stored on each rule
row, so an unknown kind is rejected at the API boundary and reported as
a non-fatal warning by the rule engine.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from ..services.schedule import parse_minutes_of_day, weekday_index


Operator = Literal[">", "<", ">=", "<=", "==", "=", "!="]
Severity = Literal["info", "warning", "danger"]
TimeValue = Union[str, float]


class _Tagged(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _device_field():
    return Field(min_length=1, validation_alias=AliasChoices("device_id", "deviceId"))


class PowerThresholdCondition(_Tagged):
    type: Literal["power_threshold"]
    device_id: str = _device_field()
    operator: Operator
    threshold: float
    duration_minutes: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("duration_minutes", "durationMinutes"),
    )


class TimeOfDayCondition(_Tagged):
    type: Literal["time_of_day"]
    start: TimeValue
    end: Optional[TimeValue] = None
    mode: Literal["range", "exact"] = "range"

    @field_validator("start", "end")
    @classmethod
    def _valid_time(cls, value):
        if value is not None:
            parse_minutes_of_day(value)
        return value

    @model_validator(mode="after")
    def _range_needs_end(self):
        if self.mode == "range" and self.end is None:
            raise ValueError("time_of_day range conditions require an end time")
        return self


class DeviceStateCondition(_Tagged):
    type: Literal["device_state"]
    device_id: str = _device_field()
    state: Literal["on", "off"]


class EnergyThresholdCondition(_Tagged):
    type: Literal["energy_threshold"]
    device_id: str = _device_field()
    operator: Operator
    threshold: float


class DayOfWeekCondition(_Tagged):
    type: Literal["day_of_week"]
    days: List[Union[int, str]] = Field(min_length=1)

    @field_validator("days")
    @classmethod
    def _valid_days(cls, value):
        for day in value:
            weekday_index(day)
        return value

    def weekday_indices(self) -> set[int]:
        return {weekday_index(day) for day in self.days}


Condition = Annotated[
    Union[
        PowerThresholdCondition,
        TimeOfDayCondition,
        DeviceStateCondition,
        EnergyThresholdCondition,
        DayOfWeekCondition,
    ],
    Field(discriminator="type"),
]


class SetDeviceAction(_Tagged):
    type: Literal["set_device"]
    device_id: str = _device_field()
    on: bool


class AlertAction(_Tagged):
    type: Literal["alert"]
    severity: Severity = "info"
    message: str = "Rule triggered"


class SceneAction(_Tagged):
    type: Literal["scene"]
    scene_name: str = Field(validation_alias=AliasChoices("scene_name", "sceneName"))


Action = Annotated[
    Union[SetDeviceAction, AlertAction, SceneAction],
    Field(discriminator="type"),
]

condition_adapter: TypeAdapter[Any] = TypeAdapter(Condition)
action_adapter: TypeAdapter[Any] = TypeAdapter(Action)


def parse_condition(raw: Any):
    return condition_adapter.validate_python(raw)


def parse_action(raw: Any):
    return action_adapter.validate_python(raw)


class RuleIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=128)
    enabled: bool = True
    home_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("home_id", "homeId"))
    conditions: List[Condition]
    actions: List[Action]


class RuleOut(BaseModel):
    id: str
    user_id: str
    home_id: str
    name: str
    enabled: bool
    conditions: List[Any]
    actions: List[Any]
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BulkDeleteIn(BaseModel):
    ids: List[str] = Field(min_length=1)
