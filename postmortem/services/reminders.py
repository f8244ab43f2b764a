"""
Reminder Engine

Notifies action item owners and org admins about items that are overdue
or due within the lookahead window, once per item, state, recipient and
UTC day.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select

from postmortem.models import db
from postmortem.models.audit import write_audit
from postmortem.models.incident import ActionItem, Incident
from postmortem.models.notification import ACTION_DUE_SOON, ACTION_OVERDUE
from postmortem.models.org import Profile
from postmortem.models.refs import EntityRef
from postmortem.services.automation_runs import JOB_REMINDERS, org_processor
from postmortem.services.notification import NotificationService
from postmortem.services.org_directory import (
    get_org_admin_ids,
    get_system_profile,
    recipients_for,
)
from postmortem.utils.dates import as_utc, date_key, start_of_day

logger = logging.getLogger(__name__)

DUE_SOON_WINDOW = timedelta(days=3)
UNKNOWN_INCIDENT_TITLE = "Unknown incident"

OVERDUE = "overdue"
DUE_SOON = "dueSoon"


def classify_due_date(due_date: datetime, today_start: datetime) -> str | None:
    """``overdue`` before today's UTC midnight, ``dueSoon`` up to and
    including midnight + 3 days, otherwise None."""
    due_date = as_utc(due_date)
    if due_date < today_start:
        return OVERDUE
    if due_date <= today_start + DUE_SOON_WINDOW:
        return DUE_SOON
    return None


def reminder_dedupe_key(state: str, item_id: int, user_id: int, now: datetime) -> str:
    return f"action_{state}:{item_id}:{user_id}:{date_key(now)}"


def _render(state: str, item: ActionItem, incident_title: str) -> tuple[str, str, str]:
    if state == OVERDUE:
        return (
            ACTION_OVERDUE,
            f"Overdue: {item.title}",
            f'Action item "{item.title}" for incident "{incident_title}" is overdue.',
        )
    return (
        ACTION_DUE_SOON,
        f"Due soon: {item.title}",
        f'Action item "{item.title}" for incident "{incident_title}" is due within 3 days.',
    )


def process_org_reminders(org_id: int, *, actor: Profile, now: datetime) -> dict:
    """Send overdue / due-soon reminders for an org's open action items.

    An audit row is written for an item only when at least one of its
    notifications was actually created on this run.

    Returns:
        {"evaluated": int, "affected": int, "notifications_created": int}
        evaluated = non-DONE items, affected = items inside the window.
    """
    now = as_utc(now)
    today_start = start_of_day(now)

    items = list(db.session.execute(
        select(ActionItem).where(ActionItem.org_id == org_id)
    ).scalars())
    pending = [item for item in items if not item.is_done]
    candidates: list[tuple[ActionItem, str]] = []
    for item in pending:
        state = classify_due_date(item.due_date, today_start)
        if state is not None:
            candidates.append((item, state))

    admin_ids = get_org_admin_ids(org_id)
    notifications_created = 0

    for item, state in candidates:
        if not item.org_id:
            logger.warning("Action item %s has no org reference, skipping", item.id,
                           extra={"org_id": org_id, "job_name": JOB_REMINDERS})
            continue

        incident = db.session.get(Incident, item.incident_id)
        incident_title = incident.title if incident else UNKNOWN_INCIDENT_TITLE
        notif_type, title, body = _render(state, item, incident_title)

        sent = 0
        for user_id in recipients_for(item.owner_id, admin_ids):
            notif_id = NotificationService.create_if_not_exists(
                org_id=item.org_id,
                user_id=user_id,
                type=notif_type,
                entity=EntityRef.action_item(item.id),
                title=title,
                body=body,
                link=f"/incidents/{item.incident_id}",
                dedupe_key=reminder_dedupe_key(state, item.id, user_id, now),
                now=now,
            )
            if notif_id:
                sent += 1

        if sent:
            write_audit(
                entity=EntityRef.action_item(item.id),
                action="automationReminder",
                actor=actor,
                org_id=item.org_id,
                changes={
                    "type": notif_type,
                    "due_date": as_utc(item.due_date).isoformat(),
                    "incident_title": incident_title,
                },
                now=now,
            )
            db.session.commit()
            notifications_created += sent

    return {
        "evaluated": len(pending),
        "affected": len(candidates),
        "notifications_created": notifications_created,
    }


@org_processor(JOB_REMINDERS)
def remind_org(org_id: int, now: datetime) -> dict:
    return process_org_reminders(org_id, actor=get_system_profile(), now=now)
