"""
Incident Postmortem Platform
Organization & identity models.

Models:
    - Org: tenant boundary
    - Profile: platform user mirrored from the identity provider
    - OrgMember: profile ↔ org membership
"""

from datetime import datetime, timezone

from postmortem.models import db
from postmortem.utils.dates import isoformat


# ── Constants ────────────────────────────────────────────────────────────────

ROLES = ("admin", "editor", "viewer")
WRITABLE_ROLES = ("admin", "editor")

# Reserved identity subject of the automation actor profile.
SYSTEM_USER_ID = "system:automation"
SYSTEM_PROFILE_NAME = "Automation"


class Org(db.Model):
    """An organization (tenant)."""

    __tablename__ = "orgs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Org {self.id}: {self.slug}>"


class Profile(db.Model):
    """
    Platform user profile.

    ``user_id`` is the subject issued by the external identity provider.
    ``role`` is global across organizations.
    """

    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(150), nullable=False, unique=True,
                        comment="Identity provider subject")
    role = db.Column(db.String(20), nullable=False, default="viewer",
                     comment="admin | editor | viewer")
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), default="")

    @property
    def is_system(self) -> bool:
        return self.user_id == SYSTEM_USER_ID

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role,
            "name": self.name,
            "email": self.email,
        }

    def __repr__(self):
        return f"<Profile {self.id}: {self.name} [{self.role}]>"


class OrgMember(db.Model):
    """Membership of a profile in an org."""

    __tablename__ = "org_members"
    __table_args__ = (
        db.UniqueConstraint("org_id", "profile_id", name="uq_org_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"),
                       nullable=False, index=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    joined_at = db.Column(db.DateTime(timezone=True),
                          default=lambda: datetime.now(timezone.utc))

    profile = db.relationship("Profile", lazy="joined")

    def __repr__(self):
        return f"<OrgMember org={self.org_id} profile={self.profile_id}>"
