# Overview: Service-layer operations for the audit trail; best-effort, outside the primary transaction.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AuditLog

"""
Audit Recorder Invariants

- Append-only: entries are never updated or deleted.
- Runs after the primary transaction has committed, in its own short
  transaction.
- Failures are logged and swallowed; they never undo the audited change.
"""


def record_action(
    *,
    action: str,
    entity_type: str,
    entity_id: int | None,
    business_id: int | None = None,
    actor_user_id: int | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    severity: str = "INFO",
) -> AuditLog | None:
    try:
        entry = AuditLog(
            business_id=business_id,
            actor_user_id=actor_user_id,
            action=action,
            action_type=(action.split("_")[0] or "GENERAL").upper()[:50],
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
            severity=severity,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to record audit action %s for %s %s", action, entity_type, entity_id
        )
        return None


def log_bill_action(action: str, business_id: int, actor_user_id: int | None, bill_id: int, old_values=None, new_values=None):
    return record_action(
        action=f"BILL_{action}",
        entity_type="bill",
        entity_id=bill_id,
        business_id=business_id,
        actor_user_id=actor_user_id,
        old_values=old_values,
        new_values=new_values,
    )


def log_payment_action(action: str, business_id: int, actor_user_id: int | None, payment_id: int, old_values=None, new_values=None):
    return record_action(
        action=f"PAYMENT_{action}",
        entity_type="payment",
        entity_id=payment_id,
        business_id=business_id,
        actor_user_id=actor_user_id,
        old_values=old_values,
        new_values=new_values,
    )


def get_entity_history(entity_type: str, entity_id: int) -> list[AuditLog]:
    return (
        db.session.query(AuditLog)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.created_at, AuditLog.id)
        .all()
    )
