"""
OrgModel — Abstract base class for organization-scoped models.

All models that need organization isolation should inherit from OrgModel
instead of db.Model directly. This adds:
  - org_id FK column with index
  - query_for_org(org_id) classmethod
"""

from postmortem.models import db


class OrgModel(db.Model):
    """Abstract base for organization-scoped tables."""
    __abstract__ = True

    org_id = db.Column(
        db.Integer,
        db.ForeignKey("orgs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_org(cls, org_id):
        """Return a query filtered by org_id."""
        return cls.query.filter_by(org_id=org_id)
