"""
Incident Postmortem Platform
Automation output models.

Models:
    - AutomationRun: one tracked execution of a job against one org
    - Digest: weekly per-org summary snapshot
"""

from datetime import datetime, timezone

from postmortem.models import db
from postmortem.models.base import OrgModel
from postmortem.utils.dates import isoformat


# ── Constants ────────────────────────────────────────────────────────────────

RUN_RUNNING = "RUNNING"
RUN_SUCCESS = "SUCCESS"
RUN_ERROR = "ERROR"


def empty_counts() -> dict:
    return {"evaluated": 0, "affected": 0, "notifications_created": 0}


class AutomationRun(OrgModel):
    """
    Run record for one (job, org, invocation).

    Inserted as RUNNING right before the org is processed and moved to
    SUCCESS or ERROR exactly once afterwards.
    """

    __tablename__ = "automation_runs"
    __table_args__ = (
        db.Index("ix_automation_runs_org_started", "org_id", "started_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(50), nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=RUN_RUNNING)
    counts = db.Column(db.JSON, nullable=False, default=empty_counts)
    error_message = db.Column(db.Text, nullable=True)

    @property
    def is_finished(self) -> bool:
        return self.status != RUN_RUNNING

    def mark_success(self, counts: dict, now=None):
        self._finish(RUN_SUCCESS, now)
        self.counts = {**empty_counts(), **counts}

    def mark_error(self, message: str, now=None):
        self._finish(RUN_ERROR, now)
        self.error_message = message

    def _finish(self, status, now):
        if self.is_finished:
            raise ValueError(f"AutomationRun {self.id} already finished as {self.status}")
        self.status = status
        self.finished_at = now or datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "job_name": self.job_name,
            "started_at": isoformat(self.started_at),
            "finished_at": isoformat(self.finished_at),
            "status": self.status,
            "counts": self.counts,
            "error_message": self.error_message,
        }

    def __repr__(self):
        return f"<AutomationRun {self.id}: {self.job_name} org={self.org_id} [{self.status}]>"


class Digest(OrgModel):
    """
    Weekly summary for one org.

    ``summary`` layout::

        {
            "open_by_severity": {"SEV1": int, ..., "SEV4": int},
            "overdue_actions_count": int,
            "top_incidents": [{id, title, severity, days_open}],
            "top_actions": [{id, incident_id, title, days_overdue, incident_title}],
        }
    """

    __tablename__ = "digests"
    __table_args__ = (
        db.UniqueConstraint("org_id", "week_start_date", name="uq_digests_org_week"),
    )

    id = db.Column(db.Integer, primary_key=True)
    week_start_date = db.Column(db.String(10), nullable=False, comment="Monday, YYYY-MM-DD")
    summary = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "week_start_date": self.week_start_date,
            "summary": self.summary,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Digest {self.id}: org={self.org_id} week={self.week_start_date}>"
