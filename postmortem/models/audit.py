"""
Incident Postmortem Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail of entity mutations.
"""

import json
from datetime import UTC, datetime

from postmortem.models import db
from postmortem.models.refs import EntityRef
from postmortem.utils.dates import isoformat


# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ACTIONS = {
    # Generic CRUD
    "create",
    "update",
    "delete",
    "statusChange",
    # Automation
    "autoCreate",
    "automationEscalation",
    "automationReminder",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every entity mutation.

    One row per action.  ``changes`` carries the serialized old→new
    snapshot (or the reminder payload for ``automationReminder``).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_org_ts", "org_id", "timestamp"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(
        db.Integer,
        db.ForeignKey("orgs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Who
    actor_id = db.Column(
        db.Integer,
        db.ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        comment="Acting profile; the reserved automation profile for jobs",
    )
    actor_name = db.Column(db.String(200), nullable=False, default="system")

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="incident | actionItem | timeline | profile | digest | automation",
    )
    entity_id = db.Column(
        db.String(36), nullable=False,
        comment="PK of the referenced entity as string",
    )

    # What happened
    action = db.Column(db.String(40), nullable=False)

    # Change payload
    changes = db.Column(db.Text, default="{}", comment="JSON payload")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def entity(self) -> EntityRef:
        return EntityRef.parse(self.entity_type, self.entity_id)

    @property
    def changes_dict(self) -> dict:
        """Deserialise *changes* to a Python dict."""
        try:
            return json.loads(self.changes) if self.changes else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "changes": self.changes_dict,
            "timestamp": isoformat(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity: EntityRef,
    action: str,
    actor,
    org_id: int | None = None,
    changes: dict | None = None,
    now: datetime | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    ``actor`` is the acting Profile (the automation profile for jobs).

    Returns the (flushed) AuditLog instance.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    log = AuditLog(
        org_id=org_id,
        actor_id=actor.id,
        actor_name=actor.name,
        entity_type=entity.kind.value,
        entity_id=str(entity.id),
        action=action,
        changes=json.dumps(changes or {}, default=str),
        timestamp=now or datetime.now(UTC),
    )
    db.session.add(log)
    db.session.flush()
    return log
