"""
Rule evaluation engine for the VoltWatch backend.

The engine polls the rules table on a fixed interval and, for every
enabled rule, evaluates its conditions left to right (AND semantics,
stopping at the first false one). When all conditions hold, the rule's
actions run in order; a failing action is logged and the next one still
runs. One rule failing never affects the others or aborts the tick.

Two pieces of state live only in memory and are owned by the engine:

- duration timers, ``(rule_id, device_id) -> since``: when a
  ``power_threshold`` comparison first became true, plus a latch set for
  windows that already fired. Both are cleared the moment the comparison
  is false, so a duration must be contiguous and fires once per window.
- exact-minute dedupe, ``(rule_id, hour, minute) -> date``: the last
  calendar date a ``time_of_day`` exact condition fired.

Latches and dedupe dates are recorded only when the whole rule fires.
State for rules that are no longer enabled is dropped at the start of
each tick. Nothing is persisted; a restart resets in-flight durations and
lets an exact-minute rule fire again the same day.
"""

from __future__ import annotations

import datetime
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta, tzinfo
from functools import partial
from typing import Any, Callable, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.db import SessionLocal
from ..core.errors import CommandPublishError, log_exception
from ..models.alert import ALERT_TYPE_RULE_ACTION
from ..schemas.rule import parse_action, parse_condition
from .rule_store import list_enabled_rules
from .schedule import (
    compare,
    is_minute_in_range,
    minute_of_day,
    parse_minutes_of_day,
    resolve_timezone,
    sunday_based_weekday,
    to_local,
)
from .telemetry_store import (
    ON_WATTS_FLOOR,
    insert_alert,
    latest_energy_reading,
    latest_power_reading,
    to_ms,
)


class DevicePublisher(Protocol):
    def publish_device_command(self, home_id: str, device_id: str, on: bool) -> None: ...


@dataclass(frozen=True)
class RuleSnapshot:
    """Detached copy of a rule row so no session outlives the rule fetch."""

    id: str
    user_id: str
    home_id: str
    name: str
    conditions: list = field(default_factory=list)
    actions: list = field(default_factory=list)


@dataclass
class TickResult:
    started_at: datetime.datetime
    rules_evaluated: int = 0
    rules_fired: int = 0
    aborted: bool = False
    finished_at: Optional[datetime.datetime] = None


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _raw_type(raw: Any) -> Any:
    return raw.get("type") if isinstance(raw, dict) else type(raw).__name__


class RuleEngine:
    """Periodic evaluator for user automation rules."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        publisher: Optional[DevicePublisher] = None,
        *,
        interval_sec: Optional[float] = None,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.session_factory = session_factory
        self.publisher = publisher
        self.interval_sec = interval_sec if interval_sec is not None else settings.rule_eval_interval_sec
        self.tz = tz if tz is not None else resolve_timezone(settings.rule_timezone)
        self.clock = clock
        self.state = "idle"
        self.last_tick: Optional[TickResult] = None
        self.duration_since: dict[tuple[str, str], datetime.datetime] = {}
        self.duration_fired: set[tuple[str, str]] = set()
        self.exact_fired_on: dict[tuple[str, int, int], datetime.date] = {}
        # Latches claimed by the rule being evaluated; committed only if it fires.
        self._pending_latches: list[Callable[[], None]] = []
        self.condition_checkers: dict[str, Callable[[Session, RuleSnapshot, Any, datetime.datetime], bool]] = {
            "power_threshold": self._check_power_threshold,
            "time_of_day": self._check_time_of_day,
            "device_state": self._check_device_state,
            "energy_threshold": self._check_energy_threshold,
            "day_of_week": self._check_day_of_week,
        }
        self.action_handlers: dict[str, Callable[[Session, RuleSnapshot, Any, datetime.datetime], None]] = {
            "set_device": self._run_set_device,
            "alert": self._run_alert,
            "scene": self._run_scene,
        }
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # Scheduling

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="rule-engine")
        self._thread.start()
        self.logger.info("Rule engine running (eval every %ss)", self.interval_sec)

    def stop(self, timeout: float = 5.0) -> None:
        self.logger.info("Stopping rule engine")
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
        self._thread = None
        close = getattr(self.publisher, "close", None)
        if callable(close):
            close()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                self.run_tick()
            except Exception as exc:
                self.logger.exception("Rule engine tick failed: %s", exc)
            elapsed = time.monotonic() - started
            # The next tick starts only after this one completes.
            self._stop_event.wait(max(0.0, self.interval_sec - elapsed))
        self.logger.info("Rule engine stopped")

    # Tick

    def run_tick(self, now: Optional[datetime.datetime] = None) -> TickResult:
        with self._tick_lock:
            now = now or self.clock()
            result = TickResult(started_at=now)
            self.state = "evaluating"
            try:
                try:
                    rules = self._fetch_enabled_rules()
                except Exception as exc:
                    log_exception(self.logger, "Error fetching rules; skipping tick", exc=exc)
                    result.aborted = True
                    return result
                self._forget_inactive_rules({rule.id for rule in rules})
                for rule in rules:
                    result.rules_evaluated += 1
                    if self._evaluate_rule(rule, now):
                        result.rules_fired += 1
                return result
            finally:
                result.finished_at = self.clock()
                self.last_tick = result
                self.state = "idle"

    def _fetch_enabled_rules(self) -> list[RuleSnapshot]:
        with self.session_factory() as db:
            return [
                RuleSnapshot(
                    id=rule.id,
                    user_id=rule.user_id,
                    home_id=rule.home_id,
                    name=rule.name,
                    conditions=list(rule.conditions or []),
                    actions=list(rule.actions or []),
                )
                for rule in list_enabled_rules(db)
            ]

    def _evaluate_rule(self, rule: RuleSnapshot, now: datetime.datetime) -> bool:
        try:
            with self.session_factory() as db:
                if not self.evaluate_conditions(db, rule, now):
                    return False
                self.logger.info("Rule triggered: %s (%s)", rule.name, rule.id)
                for commit in self._pending_latches:
                    commit()
                self.execute_actions(db, rule, now)
                return True
        except Exception as exc:
            log_exception(self.logger, "Error evaluating rule", extra={"rule_id": rule.id}, exc=exc)
            return False
        finally:
            self._pending_latches = []

    def _forget_inactive_rules(self, active_ids: set[str]) -> None:
        for key in [k for k in self.duration_since if k[0] not in active_ids]:
            del self.duration_since[key]
        self.duration_fired = {k for k in self.duration_fired if k[0] in active_ids}
        for key in [k for k in self.exact_fired_on if k[0] not in active_ids]:
            del self.exact_fired_on[key]

    # Conditions

    def evaluate_conditions(self, db: Session, rule: RuleSnapshot, now: datetime.datetime) -> bool:
        self._pending_latches = []
        for raw in rule.conditions:
            if not self.check_condition(db, rule, raw, now):
                return False
        return True

    def check_condition(self, db: Session, rule: RuleSnapshot, raw: Any, now: datetime.datetime) -> bool:
        try:
            condition = parse_condition(raw)
        except ValidationError as exc:
            self.logger.warning(
                "Unknown or invalid condition rule_id=%s type=%s err=%s",
                rule.id,
                _raw_type(raw),
                exc.errors(include_url=False),
            )
            return False
        checker = self.condition_checkers[condition.type]
        try:
            return bool(checker(db, rule, condition, now))
        except Exception as exc:
            db.rollback()
            log_exception(
                self.logger,
                "Error checking condition",
                extra={"rule_id": rule.id, "type": condition.type},
                exc=exc,
            )
            return False

    def _check_power_threshold(self, db: Session, rule: RuleSnapshot, condition, now: datetime.datetime) -> bool:
        key = (rule.id, condition.device_id)
        reading = latest_power_reading(db, condition.device_id, home_id=rule.home_id)
        if reading is None or not compare(reading.watts, condition.operator, condition.threshold):
            self.duration_since.pop(key, None)
            self.duration_fired.discard(key)
            return False
        duration = condition.duration_minutes
        if not duration or duration <= 0:
            return True
        since = self.duration_since.setdefault(key, now)
        if now - since < timedelta(minutes=duration) or key in self.duration_fired:
            return False
        self._pending_latches.append(partial(self.duration_fired.add, key))
        return True

    def _check_time_of_day(self, db: Session, rule: RuleSnapshot, condition, now: datetime.datetime) -> bool:
        local = to_local(now, self.tz)
        current = minute_of_day(local)
        start = parse_minutes_of_day(condition.start)
        if condition.mode == "exact":
            hour, minute = divmod(start, 60)
            if current != start:
                return False
            key = (rule.id, hour, minute)
            today = local.date()
            if self.exact_fired_on.get(key) == today:
                return False
            self._pending_latches.append(partial(self.exact_fired_on.__setitem__, key, today))
            return True
        end = parse_minutes_of_day(condition.end)
        return is_minute_in_range(current, start, end)

    def _check_device_state(self, db: Session, rule: RuleSnapshot, condition, now: datetime.datetime) -> bool:
        reading = latest_power_reading(db, condition.device_id, home_id=rule.home_id)
        # No reading at all counts as off.
        is_on = reading is not None and reading.watts > ON_WATTS_FLOOR
        return is_on if condition.state == "on" else not is_on

    def _check_energy_threshold(self, db: Session, rule: RuleSnapshot, condition, now: datetime.datetime) -> bool:
        reading = latest_energy_reading(db, condition.device_id, home_id=rule.home_id)
        if reading is None:
            return False
        return compare(reading.wh_total, condition.operator, condition.threshold)

    def _check_day_of_week(self, db: Session, rule: RuleSnapshot, condition, now: datetime.datetime) -> bool:
        local = to_local(now, self.tz)
        return sunday_based_weekday(local) in condition.weekday_indices()

    # Actions

    def execute_actions(self, db: Session, rule: RuleSnapshot, now: datetime.datetime) -> None:
        for raw in rule.actions:
            try:
                action = parse_action(raw)
            except ValidationError as exc:
                self.logger.warning(
                    "Skipping unknown or invalid action rule_id=%s type=%s err=%s",
                    rule.id,
                    _raw_type(raw),
                    exc.errors(include_url=False),
                )
                continue
            try:
                self.action_handlers[action.type](db, rule, action, now)
            except Exception as exc:
                db.rollback()
                log_exception(
                    self.logger,
                    "Error executing action",
                    extra={"rule_id": rule.id, "type": action.type},
                    exc=exc,
                )

    def _run_set_device(self, db: Session, rule: RuleSnapshot, action, now: datetime.datetime) -> None:
        if self.publisher is None:
            raise CommandPublishError("no command publisher configured")
        self.publisher.publish_device_command(rule.home_id, action.device_id, action.on)
        self.logger.info("Action: %s -> %s (rule %s)", action.device_id, "ON" if action.on else "OFF", rule.id)

    def _run_alert(self, db: Session, rule: RuleSnapshot, action, now: datetime.datetime) -> None:
        alert = insert_alert(
            db,
            home_id=rule.home_id,
            severity=action.severity,
            message=action.message,
            alert_type=ALERT_TYPE_RULE_ACTION,
            timestamp=to_ms(now),
        )
        self.logger.info("Alert created: [%s] %s (%s)", alert.severity, alert.message, alert.id)

    def _run_scene(self, db: Session, rule: RuleSnapshot, action, now: datetime.datetime) -> None:
        # Scenes are not implemented; the action is recorded in the log only.
        self.logger.info("Scene action: %s (rule %s)", action.scene_name, rule.id)

    def status(self) -> dict:
        tick = self.last_tick
        return {
            "running": self.is_running(),
            "state": self.state,
            "interval_sec": self.interval_sec,
            "last_tick_at": tick.started_at.isoformat() if tick else None,
            "last_tick_aborted": tick.aborted if tick else None,
            "rules_evaluated": tick.rules_evaluated if tick else 0,
            "rules_fired": tick.rules_fired if tick else 0,
            "duration_timers": len(self.duration_since),
        }
