"""
Read-only telemetry history, aggregates and alert acknowledgment.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...core.auth import UserContext, get_current_user
from ...core.db import get_db
from ...core.pagination import DEFAULT_HISTORY_LIMIT, clamp_limit
from ...schemas.telemetry import (
    AlertOut,
    DailyStatOut,
    EnergyReadingOut,
    PowerReadingOut,
    PowerStatsOut,
)
from ...services import telemetry_store


router = APIRouter(prefix="/api/v1/history", tags=["history"])


@router.get("/power/{device_id}", response_model=list[PowerReadingOut])
def power_history(
    device_id: str,
    start: Optional[int] = Query(None, description="Inclusive lower bound, ms epoch"),
    end: Optional[int] = Query(None, description="Inclusive upper bound, ms epoch"),
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> list:
    return telemetry_store.power_history(
        db,
        home_id=user.home_id,
        device_id=device_id,
        start=start,
        end=end,
        limit=clamp_limit(limit),
    )


@router.get("/energy/{device_id}", response_model=list[EnergyReadingOut])
def energy_history(
    device_id: str,
    start: Optional[int] = Query(None),
    end: Optional[int] = Query(None),
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> list:
    return telemetry_store.energy_history(
        db,
        home_id=user.home_id,
        device_id=device_id,
        start=start,
        end=end,
        limit=clamp_limit(limit),
    )


@router.get("/daily-stats", response_model=list[DailyStatOut])
def daily_stats(
    device_id: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> list:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=422, detail="start_date must not be after end_date")
    return telemetry_store.daily_stats(
        db,
        home_id=user.home_id,
        device_id=device_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/stats/power", response_model=PowerStatsOut)
def power_stats(
    device_id: str = Query(...),
    start: Optional[int] = Query(None),
    end: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> dict:
    return telemetry_store.power_stats(db, home_id=user.home_id, device_id=device_id, start=start, end=end)


@router.get("/alerts", response_model=list[AlertOut])
def list_alerts(
    limit: int = Query(50, ge=1),
    device_id: Optional[str] = Query(None),
    severity: Optional[Literal["info", "warning", "danger"]] = Query(None),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> list:
    return telemetry_store.list_alerts(
        db,
        home_id=user.home_id,
        limit=clamp_limit(limit),
        device_id=device_id,
        severity=severity,
    )


@router.patch("/alerts/{alert_id}/acknowledge", response_model=dict)
def acknowledge_alert(
    alert_id: str,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> dict:
    changes = telemetry_store.acknowledge_alert(db, home_id=user.home_id, alert_id=alert_id)
    if changes == 0:
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"ok": True, "changes": changes}
