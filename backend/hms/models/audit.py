from __future__ import annotations

from ..extensions import db
from hms.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Audit trail for billing and permission administration.

    IMMUTABLE: Never update. Append-only; only retention cleanup deletes.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_actor_action", "actor_user_id", "action"),
        db.Index("ix_audit_events_target", "target_type", "target_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable for system actions (sweeps, CLI)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False, index=True)   # e.g. BILL_DISCOUNT_APPLIED, ROLE_ASSIGNED
    target_type = db.Column(db.String(32), nullable=True)           # Bill, User, Role
    target_id = db.Column(db.Integer, nullable=True)

    outcome = db.Column(db.String(16), nullable=False, index=True)  # success, denied, failed
    reason = db.Column(db.Text, nullable=True)
    details = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_user_id": self.actor_user_id,
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "outcome": self.outcome,
            "reason": self.reason,
            "details": self.details,
            "occurred_at": to_utc_z(self.occurred_at),
        }
