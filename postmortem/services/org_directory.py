"""
Org membership lookups and the automation actor profile.

The automation engines never act "as nobody": every automated write is
attributed to a reserved profile fetched by a stable key at the start of
each run and passed explicitly into the engine.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from postmortem.models import db
from postmortem.models.org import (
    SYSTEM_PROFILE_NAME,
    SYSTEM_USER_ID,
    OrgMember,
    Profile,
)

logger = logging.getLogger(__name__)


def get_system_profile() -> Profile:
    """Return the automation actor profile, creating it on first use."""
    stmt = select(Profile).where(Profile.user_id == SYSTEM_USER_ID)
    profile = db.session.execute(stmt).scalar_one_or_none()
    if profile is not None:
        return profile

    profile = Profile(
        user_id=SYSTEM_USER_ID,
        role="admin",
        name=SYSTEM_PROFILE_NAME,
        email="",
    )
    db.session.add(profile)
    try:
        db.session.commit()
    except IntegrityError:
        # Another process created it between our lookup and insert.
        db.session.rollback()
        return db.session.execute(stmt).scalar_one()
    logger.info("Created automation actor profile id=%s", profile.id)
    return profile


def get_org_admin_ids(org_id: int) -> list[int]:
    """Profile ids of the org's members whose role is admin, in join order."""
    stmt = (
        select(Profile.id)
        .join(OrgMember, OrgMember.profile_id == Profile.id)
        .where(OrgMember.org_id == org_id, Profile.role == "admin")
        .order_by(OrgMember.id)
    )
    return list(db.session.execute(stmt).scalars())


def is_org_member(org_id: int, profile_id: int) -> bool:
    stmt = select(OrgMember.id).where(
        OrgMember.org_id == org_id,
        OrgMember.profile_id == profile_id,
    )
    return db.session.execute(stmt).first() is not None


def first_org_member_id(org_id: int) -> int | None:
    stmt = (
        select(OrgMember.profile_id)
        .where(OrgMember.org_id == org_id)
        .order_by(OrgMember.id)
        .limit(1)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def recipients_for(owner_id: int, admin_ids: list[int]) -> list[int]:
    """Owner first, then admins, each profile at most once."""
    return list(dict.fromkeys([owner_id, *admin_ids]))
