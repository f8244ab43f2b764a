"""
Incident Postmortem Platform
Incident domain models.

Models:
    - Incident: operational event with SLA escalation state
    - ActionItem: remediation task tied to one incident

Only the fields the automation engines read or write are behaviour-bearing
here; the CRUD surface lives outside this package.
"""

from datetime import datetime, timezone

from postmortem.models import db
from postmortem.utils.dates import isoformat


# ── Constants ────────────────────────────────────────────────────────────────

SEVERITIES = ("SEV1", "SEV2", "SEV3", "SEV4")

MAX_ESCALATION_LEVEL = 2


class Incident(db.Model):
    """
    An operational incident.

    ``escalation_level`` only ever moves up, and only the escalation
    engine moves it.  ``org_id`` is nullable for rows that predate
    multi-tenancy.
    """

    __tablename__ = "incidents"
    __table_args__ = (
        db.Index("ix_incidents_org_status", "org_id", "status"),
        db.Index("ix_incidents_org_status_start", "org_id", "status", "start_time"),
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"),
                       nullable=True, index=True)
    title = db.Column(db.String(300), nullable=False)
    severity = db.Column(db.String(10), nullable=False, default="SEV3")
    status = db.Column(db.String(20), nullable=False, default="OPEN")
    service = db.Column(db.String(200), default="")
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    impact_summary = db.Column(db.Text, default="")
    root_cause = db.Column(db.Text, nullable=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)

    escalation_level = db.Column(db.Integer, nullable=False, default=0)
    escalated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "title": self.title,
            "severity": self.severity,
            "status": self.status,
            "service": self.service,
            "start_time": isoformat(self.start_time),
            "end_time": isoformat(self.end_time),
            "impact_summary": self.impact_summary,
            "root_cause": self.root_cause,
            "owner_id": self.owner_id,
            "escalation_level": self.escalation_level,
            "escalated_at": isoformat(self.escalated_at),
        }

    def __repr__(self):
        return f"<Incident {self.id}: {self.severity} {self.status} L{self.escalation_level}>"


class ActionItem(db.Model):
    """A remediation task for one incident."""

    __tablename__ = "action_items"
    __table_args__ = (
        db.Index("ix_action_items_org_status_due", "org_id", "status", "due_date"),
        db.Index("ix_action_items_incident_type", "incident_id", "action_item_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"),
                       nullable=True, index=True)
    incident_id = db.Column(db.Integer, db.ForeignKey("incidents.id", ondelete="CASCADE"),
                            nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    priority = db.Column(db.String(5), nullable=False, default="P2")
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="OPEN")
    action_item_type = db.Column(db.String(40), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    @property
    def is_done(self) -> bool:
        return self.status == "DONE"

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "incident_id": self.incident_id,
            "title": self.title,
            "owner_id": self.owner_id,
            "priority": self.priority,
            "due_date": isoformat(self.due_date),
            "status": self.status,
            "action_item_type": self.action_item_type,
        }

    def __repr__(self):
        return f"<ActionItem {self.id}: {self.status} due {self.due_date}>"
