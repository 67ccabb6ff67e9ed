# Overview: Service-layer operations for the audit trail.

"""
Audit Logging

WHY: Every billing mutation and every permission administration change
must be attributable (actor, action, target, outcome).

TRANSACTIONS: record() adds the event to the caller's session so it
commits or rolls back with the mutation it describes. Rejected operations
are recorded after their rollback with commit=True.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from ..extensions import db
from ..models import AuditEvent
from hms.time_utils import utcnow

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "success"
OUTCOME_DENIED = "denied"
OUTCOME_FAILED = "failed"


@dataclass(frozen=True)
class AuditRecord:
    action: str
    actor_user_id: int | None = None
    target_type: str | None = None
    target_id: int | None = None
    outcome: str = OUTCOME_SUCCESS
    reason: str | None = None
    details: dict = field(default_factory=dict)


class AuditLogger:
    """Writes AuditRecord values to the audit_events table."""

    def record(self, event: AuditRecord, *, commit: bool = False) -> AuditEvent:
        row = AuditEvent(
            actor_user_id=event.actor_user_id,
            action=event.action,
            target_type=event.target_type,
            target_id=event.target_id,
            outcome=event.outcome,
            reason=event.reason,
            details=event.details or None,
            occurred_at=utcnow(),
        )
        db.session.add(row)
        if commit:
            db.session.commit()

        log = logger.info if event.outcome == OUTCOME_SUCCESS else logger.warning
        log(
            "audit action=%s outcome=%s actor=%s target=%s:%s",
            event.action,
            event.outcome,
            event.actor_user_id,
            event.target_type,
            event.target_id,
        )
        return row


def cleanup_audit_events(*, retention_days: int = 365) -> int:
    """Delete audit events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(AuditEvent).filter(
        AuditEvent.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
