"""
Read/write helpers over the telemetry and alert tables.

Ingestion is the only writer of readings; the rule engine reads the
latest sample per device and inserts rule alerts; the history API reads
ranges and aggregates. Every write commits on its own so no caller holds
a transaction open between operations.
"""

from __future__ import annotations

import datetime
import time
import uuid
from collections import defaultdict
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ..models.alert import Alert, ALERT_TYPE_MQTT
from ..models.telemetry import EnergyReading, PowerReading

# Readings above this draw count as "on".
ON_WATTS_FLOOR = 5.0


def now_ms() -> int:
    return int(time.time() * 1000)


def to_ms(moment: datetime.datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return int(moment.timestamp() * 1000)


def new_alert_id() -> str:
    return f"alert_{uuid.uuid4().hex}"


def insert_power_reading(
    db: Session,
    *,
    home_id: str,
    device_id: str,
    timestamp: int,
    watts: float,
    voltage: Optional[float] = None,
    current: Optional[float] = None,
) -> PowerReading:
    row = PowerReading(
        home_id=home_id,
        device_id=device_id,
        timestamp=int(timestamp),
        watts=float(watts),
        voltage=voltage,
        current=current,
    )
    db.add(row)
    db.commit()
    return row


def insert_energy_reading(
    db: Session,
    *,
    home_id: str,
    device_id: str,
    timestamp: int,
    wh_total: float,
) -> EnergyReading:
    row = EnergyReading(
        home_id=home_id,
        device_id=device_id,
        timestamp=int(timestamp),
        wh_total=float(wh_total),
    )
    db.add(row)
    db.commit()
    return row


def insert_alert(
    db: Session,
    *,
    home_id: str,
    severity: str = "info",
    message: str = "",
    alert_type: str = ALERT_TYPE_MQTT,
    device_id: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> Alert:
    alert = Alert(
        id=new_alert_id(),
        home_id=home_id,
        device_id=device_id,
        timestamp=int(timestamp) if timestamp is not None else now_ms(),
        severity=severity,
        message=message,
        type=alert_type,
        acknowledged=False,
    )
    db.add(alert)
    db.commit()
    return alert


def latest_power_reading(db: Session, device_id: str, home_id: Optional[str] = None) -> Optional[PowerReading]:
    query = db.query(PowerReading).filter(PowerReading.device_id == device_id)
    if home_id:
        query = query.filter(PowerReading.home_id == home_id)
    return query.order_by(PowerReading.timestamp.desc(), PowerReading.id.desc()).first()


def latest_energy_reading(db: Session, device_id: str, home_id: Optional[str] = None) -> Optional[EnergyReading]:
    query = db.query(EnergyReading).filter(EnergyReading.device_id == device_id)
    if home_id:
        query = query.filter(EnergyReading.home_id == home_id)
    return query.order_by(EnergyReading.timestamp.desc(), EnergyReading.id.desc()).first()


def _apply_range(query, column, start: Optional[int], end: Optional[int]):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


def power_history(
    db: Session,
    *,
    home_id: str,
    device_id: str,
    start: Optional[int] = None,
    end: Optional[int] = None,
    limit: int = 1000,
) -> list[PowerReading]:
    query = db.query(PowerReading).filter(
        PowerReading.device_id == device_id,
        PowerReading.home_id == home_id,
    )
    query = _apply_range(query, PowerReading.timestamp, start, end)
    rows = query.order_by(PowerReading.timestamp.desc()).limit(limit).all()
    rows.reverse()
    return rows


def energy_history(
    db: Session,
    *,
    home_id: str,
    device_id: str,
    start: Optional[int] = None,
    end: Optional[int] = None,
    limit: int = 1000,
) -> list[EnergyReading]:
    query = db.query(EnergyReading).filter(
        EnergyReading.device_id == device_id,
        EnergyReading.home_id == home_id,
    )
    query = _apply_range(query, EnergyReading.timestamp, start, end)
    rows = query.order_by(EnergyReading.timestamp.desc()).limit(limit).all()
    rows.reverse()
    return rows


def power_stats(
    db: Session,
    *,
    home_id: str,
    device_id: str,
    start: Optional[int] = None,
    end: Optional[int] = None,
) -> dict:
    query = db.query(
        func.count(PowerReading.id),
        func.avg(PowerReading.watts),
        func.max(PowerReading.watts),
        func.min(PowerReading.watts),
        func.sum(case((PowerReading.watts > ON_WATTS_FLOOR, 1), else_=0)),
    ).filter(
        PowerReading.device_id == device_id,
        PowerReading.home_id == home_id,
    )
    query = _apply_range(query, PowerReading.timestamp, start, end)
    count, avg_watts, max_watts, min_watts, on_readings = query.one()
    return {
        "count": int(count or 0),
        "avg_watts": float(avg_watts) if avg_watts is not None else None,
        "max_watts": float(max_watts) if max_watts is not None else None,
        "min_watts": float(min_watts) if min_watts is not None else None,
        "on_readings": int(on_readings or 0),
    }


def _day_bounds_ms(start_date: Optional[datetime.date], end_date: Optional[datetime.date]) -> tuple[Optional[int], Optional[int]]:
    start = end = None
    if start_date is not None:
        start = to_ms(datetime.datetime.combine(start_date, datetime.time.min, tzinfo=datetime.timezone.utc))
    if end_date is not None:
        next_day = datetime.datetime.combine(end_date, datetime.time.min, tzinfo=datetime.timezone.utc) + datetime.timedelta(days=1)
        end = to_ms(next_day) - 1
    return start, end


def _utc_day(timestamp_ms: int) -> str:
    return datetime.datetime.fromtimestamp(timestamp_ms / 1000, tz=datetime.timezone.utc).date().isoformat()


def daily_stats(
    db: Session,
    *,
    home_id: str,
    device_id: Optional[str] = None,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
) -> list[dict]:
    """Aggregate readings per device per UTC day, newest day first."""
    start, end = _day_bounds_ms(start_date, end_date)

    power_q = db.query(PowerReading.device_id, PowerReading.timestamp, PowerReading.watts).filter(
        PowerReading.home_id == home_id
    )
    energy_q = db.query(EnergyReading.device_id, EnergyReading.timestamp, EnergyReading.wh_total).filter(
        EnergyReading.home_id == home_id
    )
    if device_id:
        power_q = power_q.filter(PowerReading.device_id == device_id)
        energy_q = energy_q.filter(EnergyReading.device_id == device_id)
    power_q = _apply_range(power_q, PowerReading.timestamp, start, end)
    energy_q = _apply_range(energy_q, EnergyReading.timestamp, start, end)

    watts_by_day: dict[tuple[str, str], list[float]] = defaultdict(list)
    for dev, ts, watts in power_q.yield_per(1000):
        watts_by_day[(_utc_day(ts), dev)].append(float(watts))
    wh_by_day: dict[tuple[str, str], list[float]] = defaultdict(list)
    for dev, ts, wh_total in energy_q.yield_per(1000):
        wh_by_day[(_utc_day(ts), dev)].append(float(wh_total))

    items: list[dict] = []
    for key in set(watts_by_day) | set(wh_by_day):
        day, dev = key
        watts = watts_by_day.get(key) or []
        totals = wh_by_day.get(key) or []
        items.append(
            {
                "date": day,
                "device_id": dev,
                "samples": len(watts),
                "avg_watts": sum(watts) / len(watts) if watts else None,
                "max_watts": max(watts) if watts else None,
                "energy_wh": max(totals) - min(totals) if totals else None,
            }
        )
    items.sort(key=lambda item: item["device_id"])
    items.sort(key=lambda item: item["date"], reverse=True)
    return items


def list_alerts(
    db: Session,
    *,
    home_id: str,
    limit: int = 50,
    device_id: Optional[str] = None,
    severity: Optional[str] = None,
) -> list[Alert]:
    query = db.query(Alert).filter(Alert.home_id == home_id)
    if device_id:
        query = query.filter(Alert.device_id == device_id)
    if severity:
        query = query.filter(Alert.severity == severity)
    return query.order_by(Alert.timestamp.desc()).limit(limit).all()


def acknowledge_alert(db: Session, *, home_id: str, alert_id: str) -> int:
    changed = (
        db.query(Alert)
        .filter(Alert.id == alert_id, Alert.home_id == home_id)
        .update({Alert.acknowledged: True}, synchronize_session=False)
    )
    db.commit()
    return int(changed or 0)
