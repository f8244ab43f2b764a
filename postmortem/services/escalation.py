"""
SLA Escalation Engine

Advances OPEN incidents past their severity's SLA threshold and notifies
the owner plus org admins once per level transition per UTC day.

Usage:
    from postmortem.services.escalation import process_org_escalations
    counts = process_org_escalations(org_id, actor=system_profile, now=now)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select

from postmortem.models import db
from postmortem.models.audit import write_audit
from postmortem.models.incident import MAX_ESCALATION_LEVEL, Incident
from postmortem.models.notification import INCIDENT_ESCALATION
from postmortem.models.org import Profile
from postmortem.models.refs import EntityRef
from postmortem.services.automation_runs import JOB_ESCALATION, org_processor
from postmortem.services.notification import NotificationService
from postmortem.services.org_directory import (
    get_org_admin_ids,
    get_system_profile,
    recipients_for,
)
from postmortem.utils.dates import as_utc, date_key

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# SLA policy
# ═════════════════════════════════════════════════════════════════════════════

SLA_THRESHOLDS: dict[str, timedelta] = {
    "SEV1": timedelta(minutes=30),
    "SEV2": timedelta(hours=2),
    "SEV3": timedelta(hours=8),
    "SEV4": timedelta(hours=24),
}


def sla_threshold(severity: str) -> timedelta:
    """SLA threshold of a severity; unknown severities get SEV4's."""
    return SLA_THRESHOLDS.get(severity, SLA_THRESHOLDS["SEV4"])


def target_escalation_level(elapsed: timedelta, severity: str) -> int:
    """Number of whole thresholds strictly exceeded, capped at MAX_ESCALATION_LEVEL."""
    threshold = sla_threshold(severity)
    level = 0
    while level < MAX_ESCALATION_LEVEL and elapsed > (level + 1) * threshold:
        level += 1
    return level


def escalation_dedupe_key(incident_id: int, level: int, user_id: int, now: datetime) -> str:
    return f"incident_escalation:{incident_id}:{level}:{user_id}:{date_key(now)}"


# ═════════════════════════════════════════════════════════════════════════════
# Per-org processing
# ═════════════════════════════════════════════════════════════════════════════

def _open_incidents(org_id: int) -> list[Incident]:
    stmt = select(Incident).where(
        Incident.org_id == org_id,
        Incident.status == "OPEN",
    )
    return list(db.session.execute(stmt).scalars())


def _notify_escalation(incident: Incident, level: int, admin_ids: list[int], now: datetime) -> int:
    label = f"Level {level}"
    title = f"Incident escalated to {label}: {incident.title}"
    body = (f'Incident "{incident.title}" ({incident.severity}) has been open past SLA '
            f"and escalated to {label}.")
    link = f"/incidents/{incident.id}"

    created = 0
    for user_id in recipients_for(incident.owner_id, admin_ids):
        notif_id = NotificationService.create_if_not_exists(
            org_id=incident.org_id,
            user_id=user_id,
            type=INCIDENT_ESCALATION,
            entity=EntityRef.incident(incident.id),
            title=title,
            body=body,
            link=link,
            dedupe_key=escalation_dedupe_key(incident.id, level, user_id, now),
            now=now,
        )
        if notif_id:
            created += 1
    return created


def process_org_escalations(org_id: int, *, actor: Profile, now: datetime) -> dict:
    """Escalate every OPEN incident of an org whose target level rose.

    Each advanced incident (level, escalated_at, audit row) is committed
    before its notifications go out, so a later failure leaves earlier
    incidents escalated; re-running is safe because levels never go down
    and notifications are keyed.

    Returns:
        {"evaluated": int, "affected": int, "notifications_created": int}
    """
    now = as_utc(now)
    incidents = _open_incidents(org_id)
    admin_ids = get_org_admin_ids(org_id)

    affected = 0
    notifications_created = 0

    for incident in incidents:
        if not incident.org_id:
            logger.warning("Incident %s has no org reference, skipping", incident.id,
                           extra={"org_id": org_id, "job_name": JOB_ESCALATION})
            continue

        elapsed = now - as_utc(incident.start_time)
        target_level = target_escalation_level(elapsed, incident.severity)
        current_level = incident.escalation_level or 0
        if target_level <= current_level:
            continue

        incident.escalation_level = target_level
        incident.escalated_at = now
        write_audit(
            entity=EntityRef.incident(incident.id),
            action="automationEscalation",
            actor=actor,
            org_id=incident.org_id,
            changes={
                "escalation_level": {"old": current_level, "new": target_level},
                "escalated_at": now.isoformat(),
            },
            now=now,
        )
        db.session.commit()
        affected += 1

        notifications_created += _notify_escalation(incident, target_level, admin_ids, now)

    return {
        "evaluated": len(incidents),
        "affected": affected,
        "notifications_created": notifications_created,
    }


@org_processor(JOB_ESCALATION)
def escalate_org(org_id: int, now: datetime) -> dict:
    return process_org_escalations(org_id, actor=get_system_profile(), now=now)
