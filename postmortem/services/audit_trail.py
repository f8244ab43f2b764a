"""Audit trail queries."""

from __future__ import annotations

from sqlalchemy import or_, select

from postmortem.models import db
from postmortem.models.audit import AuditLog
from postmortem.models.incident import ActionItem
from postmortem.models.refs import EntityKind, EntityRef


def list_entity_audit(entity: EntityRef) -> list[AuditLog]:
    """
    Audit entries of one entity, newest first.

    An incident's trail also includes the entries of its action items.
    """
    conditions = [
        (AuditLog.entity_type == entity.kind.value)
        & (AuditLog.entity_id == str(entity.id))
    ]
    if entity.kind is EntityKind.INCIDENT:
        item_ids = db.session.execute(
            select(ActionItem.id).where(ActionItem.incident_id == entity.id)
        ).scalars().all()
        if item_ids:
            conditions.append(
                (AuditLog.entity_type == EntityKind.ACTION_ITEM.value)
                & AuditLog.entity_id.in_([str(i) for i in item_ids])
            )

    stmt = (
        select(AuditLog)
        .where(or_(*conditions))
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    )
    return list(db.session.execute(stmt).scalars())
