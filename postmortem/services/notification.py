"""
Incident Postmortem Platform
Notification Service.

Central service for creating and querying notifications.  Automation
engines only ever create notifications through ``create_if_not_exists``,
which gives each caller-built dedupe key at-most-once delivery.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from postmortem.core.exceptions import NotFoundError, ValidationError
from postmortem.models import db
from postmortem.models.notification import NOTIFICATION_TYPES, Notification
from postmortem.models.refs import EntityRef

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Dedup ─────────────────────────────────────────────────────────────

    @staticmethod
    def exists(dedupe_key: str) -> bool:
        """True if a notification with this dedupe key was ever created."""
        stmt = select(Notification.id).where(Notification.dedupe_key == dedupe_key)
        return db.session.execute(stmt).first() is not None

    @staticmethod
    def create_if_not_exists(*, org_id: int, user_id: int, type: str, entity: EntityRef,
                             title: str, body: str = "", link: str = "",
                             dedupe_key: str, now: datetime | None = None) -> int | None:
        """
        Create a notification unless one already exists for ``dedupe_key``.

        The insert is committed on its own; callers must commit their own
        pending work first, because a duplicate rolls the session back.

        Returns:
            The new notification id, or None if the key was already taken
            (either found up front or rejected by the unique constraint).
        """
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type: {type}")
        if not dedupe_key:
            raise ValidationError("dedupe_key is required")

        if NotificationService.exists(dedupe_key):
            logger.debug("Notification skipped, dedupe key taken",
                         extra={"dedupe_key": dedupe_key, "org_id": org_id})
            return None

        notif = Notification(
            org_id=org_id,
            user_id=user_id,
            type=type,
            entity_type=entity.kind.value,
            entity_id=entity.id,
            title=title,
            body=body,
            link=link,
            dedupe_key=dedupe_key,
            created_at=now or datetime.now(timezone.utc),
        )
        db.session.add(notif)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if not NotificationService.exists(dedupe_key):
                raise
            logger.info("Notification rejected by dedupe constraint",
                        extra={"dedupe_key": dedupe_key, "org_id": org_id})
            return None
        return notif.id

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id: int, limit: int = 20) -> list[Notification]:
        """Notifications for a recipient, newest first."""
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(db.session.execute(stmt).scalars())

    @staticmethod
    def unread_count(user_id: int) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.read_at.is_(None),
        )
        return db.session.execute(stmt).scalar_one()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id: int, user_id: int, now: datetime | None = None) -> Notification:
        """Mark one of the user's notifications as read (idempotent).

        Another user's notification is reported as not found.
        """
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.user_id != user_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        notif.mark_read(now)
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id: int, now: datetime | None = None) -> int:
        """Mark all unread notifications of a user as read; returns how many."""
        stmt = select(Notification).where(
            Notification.user_id == user_id,
            Notification.read_at.is_(None),
        )
        unread = list(db.session.execute(stmt).scalars())
        now = now or datetime.now(timezone.utc)
        for notif in unread:
            notif.mark_read(now)
        db.session.commit()
        return len(unread)
