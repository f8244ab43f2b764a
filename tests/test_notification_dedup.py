"""
Tests — Notification deduplication & inbox.

Covers:
    1. create_if_not_exists: at-most-once per dedupe key
    2. Unique-constraint race path (pre-check misses, insert rejected)
    3. Input validation
    4. Inbox queries: list, unread count, mark read, mark all read
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from postmortem.core.exceptions import NotFoundError, ValidationError
from postmortem.models import db
from postmortem.models.notification import INCIDENT_ESCALATION, WEEKLY_DIGEST, Notification
from postmortem.models.refs import EntityRef
from postmortem.services.notification import NotificationService
from postmortem.utils.dates import as_utc

NOW = datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc)


def _notify(org, user, key, *, now=NOW, type=INCIDENT_ESCALATION, title="Escalated"):
    return NotificationService.create_if_not_exists(
        org_id=org.id,
        user_id=user.id,
        type=type,
        entity=EntityRef.incident(1),
        title=title,
        body="body",
        link="/incidents/1",
        dedupe_key=key,
        now=now,
    )


@pytest.mark.unit
class TestCreateIfNotExists:

    def test_creates_notification(self, org, admin):
        notif_id = _notify(org, admin, "k1")
        assert notif_id is not None
        notif = db.session.get(Notification, notif_id)
        assert notif.user_id == admin.id
        assert notif.entity == EntityRef.incident(1)
        assert notif.dedupe_key == "k1"
        assert notif.is_read is False

    def test_same_key_is_created_once(self, org, admin):
        assert _notify(org, admin, "k1") is not None
        assert _notify(org, admin, "k1", title="Different title") is None
        assert Notification.query.filter_by(dedupe_key="k1").count() == 1

    def test_different_keys_both_created(self, org, admin):
        assert _notify(org, admin, "k1") is not None
        assert _notify(org, admin, "k2") is not None
        assert Notification.query.count() == 2

    def test_exists(self, org, admin):
        assert NotificationService.exists("k1") is False
        _notify(org, admin, "k1")
        assert NotificationService.exists("k1") is True

    def test_key_survives_read(self, org, admin):
        notif_id = _notify(org, admin, "k1")
        NotificationService.mark_read(notif_id, admin.id, now=NOW)
        assert _notify(org, admin, "k1") is None

    def test_unique_constraint_race_returns_none(self, org, admin):
        _notify(org, admin, "k1")
        # Pre-check misses the concurrent insert; the constraint rejects ours.
        with patch.object(NotificationService, "exists", side_effect=[False, True]):
            assert _notify(org, admin, "k1") is None
        assert Notification.query.filter_by(dedupe_key="k1").count() == 1

    def test_other_integrity_errors_propagate(self, org):
        with pytest.raises(IntegrityError):
            NotificationService.create_if_not_exists(
                org_id=org.id,
                user_id=99999,
                type=INCIDENT_ESCALATION,
                entity=EntityRef.incident(1),
                title="t",
                dedupe_key="orphan",
                now=NOW,
            )
        assert Notification.query.count() == 0

    def test_unknown_type_rejected(self, org, admin):
        with pytest.raises(ValidationError):
            _notify(org, admin, "k1", type="SMS")

    def test_empty_key_rejected(self, org, admin):
        with pytest.raises(ValidationError):
            _notify(org, admin, "")


@pytest.mark.unit
class TestInbox:

    def test_list_newest_first_with_limit(self, org, admin):
        for i in range(3):
            _notify(org, admin, f"k{i}", now=NOW + timedelta(minutes=i), title=f"n{i}")
        items = NotificationService.list_for_user(admin.id, limit=2)
        assert [n.title for n in items] == ["n2", "n1"]

    def test_list_only_own(self, org, admin, owner):
        _notify(org, admin, "a")
        _notify(org, owner, "b")
        items = NotificationService.list_for_user(owner.id)
        assert [n.dedupe_key for n in items] == ["b"]

    def test_unread_count(self, org, admin):
        first = _notify(org, admin, "k1")
        _notify(org, admin, "k2", type=WEEKLY_DIGEST)
        assert NotificationService.unread_count(admin.id) == 2
        NotificationService.mark_read(first, admin.id, now=NOW)
        assert NotificationService.unread_count(admin.id) == 1

    def test_mark_read_is_idempotent(self, org, admin):
        notif_id = _notify(org, admin, "k1")
        NotificationService.mark_read(notif_id, admin.id, now=NOW)
        notif = NotificationService.mark_read(notif_id, admin.id, now=NOW + timedelta(hours=1))
        assert as_utc(notif.read_at) == NOW

    def test_mark_read_other_users_notification(self, org, admin, owner):
        notif_id = _notify(org, admin, "k1")
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(notif_id, owner.id)
        assert db.session.get(Notification, notif_id).read_at is None

    def test_mark_read_missing(self, admin):
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(12345, admin.id)

    def test_mark_all_read(self, org, admin, owner):
        _notify(org, admin, "k1")
        _notify(org, admin, "k2")
        _notify(org, owner, "k3")
        assert NotificationService.mark_all_read(admin.id, now=NOW) == 2
        assert NotificationService.unread_count(admin.id) == 0
        assert NotificationService.unread_count(owner.id) == 1
        assert NotificationService.mark_all_read(admin.id, now=NOW) == 0
