"""
API endpoints for managing automation rules.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...core.auth import UserContext, get_current_user
from ...core.db import get_db
from ...models.rule import Rule
from ...schemas.rule import BulkDeleteIn, RuleIn, RuleOut
from ...services.rule_store import (
    RuleOwnershipError,
    bulk_delete_rules,
    delete_rule,
    get_rule_for_user,
    list_rules_for_user,
    toggle_rule,
    upsert_rule,
)


router = APIRouter(prefix="/api/v1/rules", tags=["rules"])

logger = logging.getLogger("api.rules")


def _to_rule_out(rule: Rule) -> RuleOut:
    return RuleOut.model_validate(rule)


@router.get("", response_model=list[RuleOut])
def list_rules(
    home_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> list[RuleOut]:
    rules = list_rules_for_user(db, user.user_id, home_id or user.home_id)
    return [_to_rule_out(r) for r in rules]


@router.get("/{rule_id}", response_model=RuleOut)
def get_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> RuleOut:
    rule = get_rule_for_user(db, rule_id, user.user_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return _to_rule_out(rule)


@router.post("", response_model=RuleOut)
def save_rule(
    payload: RuleIn,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> RuleOut:
    try:
        rule = upsert_rule(
            db,
            user_id=user.user_id,
            home_id=payload.home_id or user.home_id,
            name=payload.name,
            enabled=payload.enabled,
            conditions=[c.model_dump(mode="json", exclude_none=True) for c in payload.conditions],
            actions=[a.model_dump(mode="json", exclude_none=True) for a in payload.actions],
            rule_id=payload.id,
        )
    except RuleOwnershipError:
        raise HTTPException(status_code=404, detail="Rule not found")
    logger.info("Rule saved: %s (%s)", rule.name, rule.id)
    return _to_rule_out(rule)


@router.patch("/{rule_id}/toggle", response_model=dict)
def toggle(
    rule_id: str,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> dict:
    enabled = toggle_rule(db, rule_id, user.user_id)
    if enabled is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    logger.info("Rule %s %s", rule_id, "enabled" if enabled else "disabled")
    return {"ok": True, "id": rule_id, "enabled": enabled}


@router.delete("/{rule_id}", response_model=dict)
def remove_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> dict:
    deleted = delete_rule(db, rule_id, user.user_id)
    if deleted == 0:
        raise HTTPException(status_code=404, detail="Rule not found")
    logger.info("Rule deleted: %s", rule_id)
    return {"ok": True, "deleted": deleted}


@router.post("/bulk-delete", response_model=dict)
def bulk_delete(
    payload: BulkDeleteIn,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user),
) -> dict:
    deleted = bulk_delete_rules(db, payload.ids, user.user_id)
    logger.info("Bulk deleted %s rules", deleted)
    return {"ok": True, "deleted": deleted}
