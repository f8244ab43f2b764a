"""
Demo data for the automation engines.

Seeds one org with exactly what each engine reacts to on its next run:
a SEV2 incident already past its 2h SLA, an overdue action item and an
action item due tomorrow.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from postmortem.core.exceptions import NotFoundError, ValidationError
from postmortem.models import db
from postmortem.models.audit import write_audit
from postmortem.models.incident import ActionItem, Incident
from postmortem.models.org import Org, Profile
from postmortem.models.refs import EntityRef
from postmortem.services.org_directory import first_org_member_id
from postmortem.utils.dates import ONE_DAY, as_utc, utc_now

logger = logging.getLogger(__name__)


def seed_automation_demo_data(org_id: int, owner: Profile | None = None,
                              now: datetime | None = None) -> dict:
    """
    Create the automation demo records for an org.

    Args:
        org_id: Target org.
        owner: Owner / actor of the seeded records.  Defaults to the org's
               first member.
        now: Reference instant (defaults to the current time).

    Raises:
        NotFoundError: org does not exist.
        ValidationError: org has no members and no owner was given.
    """
    if db.session.get(Org, org_id) is None:
        raise NotFoundError(resource="Org", resource_id=org_id)

    if owner is None:
        owner_id = first_org_member_id(org_id)
        if owner_id is None:
            raise ValidationError("Org has no members. Add a member to the org first.",
                                  details={"org_id": org_id})
        owner = db.session.get(Profile, owner_id)

    now = as_utc(now or utc_now())

    incident = Incident(
        org_id=org_id,
        title="SLA Test Incident - Auto-Escalation Demo",
        severity="SEV2",
        status="OPEN",
        service="Demo Service",
        start_time=now - timedelta(hours=3),
        impact_summary="Demo incident for testing SLA escalation. Exceeds 2h SEV2 threshold.",
        owner_id=owner.id,
    )
    db.session.add(incident)
    db.session.flush()
    write_audit(
        entity=EntityRef.incident(incident.id),
        action="create",
        actor=owner,
        org_id=org_id,
        changes={"created": "SLA Test Incident", "purpose": "automation_demo"},
        now=now,
    )

    items = []
    for title, priority, due_date, label in (
        ("Overdue action item - Reminder Demo", "P1", now - ONE_DAY,
         "Overdue action - automation demo"),
        ("Due soon action item - Reminder Demo", "P2", now + ONE_DAY,
         "Due soon action - automation demo"),
    ):
        item = ActionItem(
            org_id=org_id,
            incident_id=incident.id,
            title=title,
            owner_id=owner.id,
            priority=priority,
            due_date=due_date,
            status="OPEN",
        )
        db.session.add(item)
        db.session.flush()
        write_audit(
            entity=EntityRef.action_item(item.id),
            action="create",
            actor=owner,
            org_id=org_id,
            changes={"created": label},
            now=now,
        )
        items.append(item)

    db.session.commit()
    logger.info("Seeded automation demo data", extra={"org_id": org_id})

    overdue, due_soon = items
    return {
        "incident_id": incident.id,
        "overdue_action_id": overdue.id,
        "due_soon_action_id": due_soon.id,
        "message": "Demo data created. Run escalation and reminder automations "
                   "to see notifications.",
    }
