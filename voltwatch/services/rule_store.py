"""
Persistence helpers for automation rules.

Rules belong to the user who created them; every lookup from the API is
filtered by ``user_id`` so one user can never read, replace or delete
another user's rule. The rule engine is the only caller that reads
across users, and only ever enabled rules.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..models.rule import Rule


class RuleOwnershipError(LookupError):
    """Raised when an upsert targets a rule id owned by someone else."""


def new_rule_id() -> str:
    return f"rule_{uuid.uuid4().hex}"


def list_enabled_rules(db: Session) -> list[Rule]:
    return (
        db.query(Rule)
        .filter(Rule.enabled == True)  # noqa: E712
        .order_by(Rule.created_at.asc(), Rule.id.asc())
        .all()
    )


def list_rules_for_user(db: Session, user_id: str, home_id: Optional[str] = None) -> list[Rule]:
    query = db.query(Rule).filter(Rule.user_id == user_id)
    if home_id:
        query = query.filter(Rule.home_id == home_id)
    return query.order_by(Rule.created_at.desc(), Rule.id.desc()).all()


def get_rule_for_user(db: Session, rule_id: str, user_id: str) -> Optional[Rule]:
    return db.query(Rule).filter(Rule.id == rule_id, Rule.user_id == user_id).first()


def upsert_rule(
    db: Session,
    *,
    user_id: str,
    home_id: str,
    name: str,
    enabled: bool,
    conditions: list,
    actions: list,
    rule_id: Optional[str] = None,
) -> Rule:
    """Create a rule, or replace every field of an existing one with the same id."""
    rule = db.get(Rule, rule_id) if rule_id else None
    if rule is not None and rule.user_id != user_id:
        raise RuleOwnershipError(rule_id)
    if rule is None:
        rule = Rule(id=rule_id or new_rule_id(), user_id=user_id)
    rule.home_id = home_id
    rule.name = name
    rule.enabled = bool(enabled)
    rule.conditions = list(conditions)
    rule.actions = list(actions)
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def toggle_rule(db: Session, rule_id: str, user_id: str) -> Optional[bool]:
    rule = get_rule_for_user(db, rule_id, user_id)
    if rule is None:
        return None
    rule.enabled = not rule.enabled
    db.add(rule)
    db.commit()
    return rule.enabled


def delete_rule(db: Session, rule_id: str, user_id: str) -> int:
    deleted = (
        db.query(Rule)
        .filter(Rule.id == rule_id, Rule.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(deleted or 0)


def bulk_delete_rules(db: Session, rule_ids: Iterable[str], user_id: str) -> int:
    ids = [rid for rid in rule_ids if rid]
    if not ids:
        return 0
    deleted = (
        db.query(Rule)
        .filter(Rule.user_id == user_id, Rule.id.in_(ids))
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(deleted or 0)
