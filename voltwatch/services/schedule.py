"""
Time-of-day, weekday and threshold helpers shared by rule validation and
the rule engine.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


_logger = logging.getLogger("schedule")

MINUTES_PER_DAY = 24 * 60

WEEKDAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")

_OPERATORS = {
    ">": lambda value, threshold: value > threshold,
    "<": lambda value, threshold: value < threshold,
    ">=": lambda value, threshold: value >= threshold,
    "<=": lambda value, threshold: value <= threshold,
    "==": lambda value, threshold: value == threshold,
    "=": lambda value, threshold: value == threshold,
    "!=": lambda value, threshold: value != threshold,
}


def compare(value: float, operator: str, threshold: float) -> bool:
    fn = _OPERATORS.get(operator)
    if fn is None:
        _logger.warning("Unknown operator: %s", operator)
        return False
    return bool(fn(float(value), float(threshold)))


def parse_minutes_of_day(value: Union[str, int, float]) -> int:
    """Convert ``"HH:MM"`` (or ``"HH"``) strings and numeric hours to minutes past midnight."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid time of day: {value!r}")
    if isinstance(value, (int, float)):
        minutes = int(round(float(value) * 60))
    else:
        text = str(value).strip()
        hour_raw, _, minute_raw = text.partition(":")
        try:
            hour = int(hour_raw)
            minute = int(minute_raw) if minute_raw else 0
        except ValueError:
            raise ValueError(f"Invalid time of day: {value!r}") from None
        if not 0 <= minute < 60:
            raise ValueError(f"Invalid time of day: {value!r}")
        minutes = hour * 60 + minute
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Time of day out of range: {value!r}")
    return minutes


def is_minute_in_range(now_minutes: int, start_minutes: int, end_minutes: int) -> bool:
    if end_minutes < start_minutes:
        return now_minutes >= start_minutes or now_minutes < end_minutes
    return start_minutes <= now_minutes < end_minutes


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def weekday_index(value: Union[str, int]) -> int:
    """Resolve a weekday name, abbreviation or index to Sunday=0 .. Saturday=6."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid weekday: {value!r}")
    if isinstance(value, int):
        index = value
    else:
        text = str(value).strip().lower()
        if text.isdigit():
            index = int(text)
        else:
            for i, name in enumerate(WEEKDAY_NAMES):
                if text == name or (len(text) >= 3 and name.startswith(text)):
                    return i
            raise ValueError(f"Invalid weekday: {value!r}")
    if not 0 <= index <= 6:
        raise ValueError(f"Invalid weekday: {value!r}")
    return index


def sunday_based_weekday(moment: datetime) -> int:
    # datetime.weekday() is Monday=0
    return (moment.weekday() + 1) % 7


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        _logger.warning("Unknown RULE_TIMEZONE=%s; using server local time", name)
        return None


def to_local(moment: datetime, tz: Optional[tzinfo]) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=ZoneInfo("UTC"))
    if tz is None:
        return moment.astimezone()
    return moment.astimezone(tz)
