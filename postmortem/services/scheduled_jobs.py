"""
Incident Postmortem Platform
Scheduled Jobs.

Concrete job implementations that run on a schedule.  Each job runs its
engine for every org through the run tracker.

Jobs:
    - escalateStaleIncidents: SLA escalation (every 15 minutes)
    - notifyDueActionItems: overdue / due-soon reminders (daily, UTC)
    - sendWeeklyDigest: weekly digest (Mondays, UTC)
"""

from __future__ import annotations

import logging
from typing import Any

# Importing the engines registers their per-org processors.
from postmortem.services import digest as _digest          # noqa: F401
from postmortem.services import escalation as _escalation  # noqa: F401
from postmortem.services import reminders as _reminders    # noqa: F401
from postmortem.services.automation_runs import (
    JOB_DIGEST,
    JOB_ESCALATION,
    JOB_REMINDERS,
    run_for_orgs,
)
from postmortem.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job(JOB_ESCALATION)
def escalate_stale_incidents(app) -> dict[str, Any]:
    """Escalate OPEN incidents past their severity SLA."""
    return run_for_orgs(JOB_ESCALATION)


@register_job(JOB_REMINDERS)
def notify_due_action_items(app) -> dict[str, Any]:
    """Remind owners and admins about overdue and due-soon action items."""
    return run_for_orgs(JOB_REMINDERS)


@register_job(JOB_DIGEST)
def send_weekly_digest(app) -> dict[str, Any]:
    """Build each org's weekly digest and notify its admins."""
    return run_for_orgs(JOB_DIGEST)
