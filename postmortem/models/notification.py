"""
Incident Postmortem Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from postmortem.models import db
from postmortem.models.base import OrgModel
from postmortem.models.refs import EntityRef
from postmortem.utils.dates import isoformat


# ── Constants ────────────────────────────────────────────────────────────────

INCIDENT_ESCALATION = "INCIDENT_ESCALATION"
ACTION_DUE_SOON = "ACTION_DUE_SOON"
ACTION_OVERDUE = "ACTION_OVERDUE"
WEEKLY_DIGEST = "WEEKLY_DIGEST"

NOTIFICATION_TYPES = {INCIDENT_ESCALATION, ACTION_DUE_SOON, ACTION_OVERDUE, WEEKLY_DIGEST}


class Notification(OrgModel):
    """
    In-app notification entity.

    One record per recipient per event.  ``dedupe_key`` is unique at the
    storage layer: a second insert with the same key fails with an
    IntegrityError, which the notification service reads as "duplicate".
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.UniqueConstraint("dedupe_key", name="uq_notifications_dedupe_key"),
        db.Index("ix_notifications_user_created", "user_id", "created_at"),
        db.Index("ix_notifications_org_created", "org_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="CASCADE"),
                        nullable=False, comment="Recipient profile")
    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    body = db.Column(db.Text, default="")
    link = db.Column(db.String(300), default="")

    # Link to source entity
    entity_type = db.Column(db.String(30), nullable=False, comment="incident/actionItem/digest")
    entity_id = db.Column(db.Integer, nullable=False)

    dedupe_key = db.Column(db.String(255), nullable=False)

    # Read tracking
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def entity(self) -> EntityRef:
        return EntityRef.parse(self.entity_type, self.entity_id)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def mark_read(self, now=None):
        if self.read_at is None:
            self.read_at = now or datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "type": self.type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "title": self.title,
            "body": self.body,
            "link": self.link,
            "dedupe_key": self.dedupe_key,
            "is_read": self.is_read,
            "read_at": isoformat(self.read_at),
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
