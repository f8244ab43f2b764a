"""
Weekly Digest Aggregator

Builds one immutable summary per org per week (Monday-start, UTC) and
notifies the org admins.  The digest row itself is the idempotency gate:
once it exists for a week, the job is a no-op for that org.

Known gap: if the digest insert succeeds and a later notification fails,
the week still counts as done and is not retried.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select

from postmortem.core.exceptions import NotFoundError
from postmortem.models import db
from postmortem.models.automation import Digest
from postmortem.models.incident import SEVERITIES, ActionItem, Incident
from postmortem.models.notification import WEEKLY_DIGEST
from postmortem.models.refs import EntityRef
from postmortem.services.automation_runs import JOB_DIGEST, org_processor
from postmortem.services.notification import NotificationService
from postmortem.services.org_directory import get_org_admin_ids
from postmortem.utils.dates import as_utc, week_start_date, whole_days

logger = logging.getLogger(__name__)

TOP_N = 5
UNKNOWN_INCIDENT_TITLE = "Unknown"


def digest_dedupe_key(org_id: int, week: str, user_id: int) -> str:
    return f"weekly_digest:{org_id}:{week}:{user_id}"


# ═════════════════════════════════════════════════════════════════════════════
# Summary computation (pure)
# ═════════════════════════════════════════════════════════════════════════════

def build_summary(open_incidents: list[Incident], action_items: list[ActionItem],
                  incident_titles: dict[int, str], now: datetime) -> dict:
    """
    Compute the digest summary.

    Args:
        open_incidents: the org's OPEN incidents.
        action_items: all of the org's action items.
        incident_titles: incident id → title for resolving top actions.
        now: reference instant.
    """
    now = as_utc(now)

    open_by_severity = {sev: 0 for sev in SEVERITIES}
    for incident in open_incidents:
        if incident.severity in open_by_severity:
            open_by_severity[incident.severity] += 1

    overdue = [
        item for item in action_items
        if not item.is_done and as_utc(item.due_date) < now
    ]

    oldest = sorted(open_incidents, key=lambda inc: as_utc(inc.start_time))[:TOP_N]
    top_incidents = [
        {
            "id": inc.id,
            "title": inc.title,
            "severity": inc.severity,
            "days_open": whole_days(now - as_utc(inc.start_time)),
        }
        for inc in oldest
    ]

    most_overdue = sorted(overdue, key=lambda item: as_utc(item.due_date))[:TOP_N]
    top_actions = [
        {
            "id": item.id,
            "incident_id": item.incident_id,
            "title": item.title,
            "days_overdue": whole_days(now - as_utc(item.due_date)),
            "incident_title": incident_titles.get(item.incident_id, UNKNOWN_INCIDENT_TITLE),
        }
        for item in most_overdue
    ]

    return {
        "open_by_severity": open_by_severity,
        "overdue_actions_count": len(overdue),
        "top_incidents": top_incidents,
        "top_actions": top_actions,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Per-org processing
# ═════════════════════════════════════════════════════════════════════════════

def find_digest(org_id: int, week: str) -> Digest | None:
    stmt = select(Digest).where(Digest.org_id == org_id, Digest.week_start_date == week)
    return db.session.execute(stmt).scalars().first()


def process_org_digest(org_id: int, week: str, now: datetime) -> dict:
    """Create the org's digest for ``week`` and notify admins.

    Returns:
        {"notifications_created": int} — 0 when the week already has a digest.
    """
    if find_digest(org_id, week) is not None:
        logger.debug("Digest for week %s already exists", week,
                     extra={"org_id": org_id, "job_name": JOB_DIGEST})
        return {"notifications_created": 0}

    now = as_utc(now)
    open_incidents = list(db.session.execute(
        select(Incident).where(Incident.org_id == org_id, Incident.status == "OPEN")
    ).scalars())
    action_items = list(db.session.execute(
        select(ActionItem).where(ActionItem.org_id == org_id)
    ).scalars())

    incident_ids = {item.incident_id for item in action_items}
    incident_titles = {}
    if incident_ids:
        rows = db.session.execute(
            select(Incident.id, Incident.title).where(Incident.id.in_(incident_ids))
        )
        incident_titles = {row.id: row.title for row in rows}

    summary = build_summary(open_incidents, action_items, incident_titles, now)

    digest = Digest(org_id=org_id, week_start_date=week, summary=summary, created_at=now)
    db.session.add(digest)
    db.session.commit()

    counts = summary["open_by_severity"]
    title = f"Weekly digest: {week}"
    body = (f"Open incidents: SEV1={counts['SEV1']}, SEV2={counts['SEV2']}, "
            f"SEV3={counts['SEV3']}, SEV4={counts['SEV4']}. "
            f"Overdue action items: {summary['overdue_actions_count']}.")

    notifications_created = 0
    for user_id in get_org_admin_ids(org_id):
        notif_id = NotificationService.create_if_not_exists(
            org_id=org_id,
            user_id=user_id,
            type=WEEKLY_DIGEST,
            entity=EntityRef.digest(digest.id),
            title=title,
            body=body,
            link=f"/digests/{digest.id}",
            dedupe_key=digest_dedupe_key(org_id, week, user_id),
            now=now,
        )
        if notif_id:
            notifications_created += 1

    return {"notifications_created": notifications_created}


@org_processor(JOB_DIGEST)
def digest_org(org_id: int, now: datetime) -> dict:
    result = process_org_digest(org_id, week_start_date(now), now)
    created = result["notifications_created"]
    return {
        "evaluated": 1,
        "affected": 1 if created > 0 else 0,
        "notifications_created": created,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════

def list_digests(org_id: int, limit: int = 10) -> list[Digest]:
    """An org's digests, newest week first."""
    return (
        Digest.query_for_org(org_id)
        .order_by(Digest.week_start_date.desc())
        .limit(limit)
        .all()
    )


def get_digest(digest_id: int) -> Digest:
    digest = db.session.get(Digest, digest_id)
    if digest is None:
        raise NotFoundError(resource="Digest", resource_id=digest_id)
    return digest
