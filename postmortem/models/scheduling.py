"""
Incident Postmortem Platform
Scheduling models.

Models:
    - ScheduledJob: Persisted schedule registry (run history + config)
"""

from datetime import datetime, timezone

from postmortem.models import db
from postmortem.utils.dates import isoformat


# ── Constants ────────────────────────────────────────────────────────────────

SCHEDULE_TYPES = {"interval", "cron"}
JOB_STATUSES = {"active", "paused"}


class ScheduledJob(db.Model):
    """
    Registry of scheduled background jobs.

    Tracks job configuration, last run time, and run history.
    Per-org results live in AutomationRun; this row is the job-level view
    the scheduler loop uses to decide whether a job is due.
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="escalateStaleIncidents, notifyDueActionItems, sendWeeklyDigest")
    description = db.Column(db.String(500), default="")
    schedule_type = db.Column(db.String(30), default="cron",
                              comment="interval, cron")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment="Interval minutes or day_of_week/hour/minute")
    status = db.Column(db.String(20), default="active",
                       comment="active, paused")
    is_enabled = db.Column(db.Boolean, default=True)

    # Execution tracking
    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success, failed")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True,
                                comment="Summary of last execution")
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def record_run(self, *, started_at=None, status="success", duration_ms=0, result=None, error=None):
        """Record a job execution."""
        self.last_run_at = started_at or datetime.now(timezone.utc)
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "schedule_type": self.schedule_type,
            "schedule_config": self.schedule_config,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run_at": isoformat(self.last_run_at),
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} [{self.status}]>"
