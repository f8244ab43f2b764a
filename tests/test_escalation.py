"""
Tests — SLA escalation engine.

Covers:
    1. Threshold policy (strict comparisons, unknown severity)
    2. Per-org processing: level advance, audit entry, recipients
    3. Idempotency across reruns and monotonic levels
"""

from datetime import datetime, timedelta, timezone

import pytest

from postmortem.models import db
from postmortem.models.audit import AuditLog
from postmortem.models.incident import MAX_ESCALATION_LEVEL, Incident
from postmortem.models.notification import INCIDENT_ESCALATION, Notification
from postmortem.models.org import Org
from postmortem.services.escalation import (
    escalate_org,
    escalation_dedupe_key,
    sla_threshold,
    target_escalation_level,
)
from postmortem.utils.dates import as_utc

NOW = datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc)


def _minutes(n):
    return timedelta(minutes=n)


@pytest.mark.unit
class TestThresholdPolicy:

    @pytest.mark.parametrize("elapsed, expected", [
        (119, 0),
        (120, 0),
        (121, 1),
        (240, 1),
        (241, 2),
        (10_000, 2),
    ])
    def test_sev2_boundaries(self, elapsed, expected):
        assert target_escalation_level(_minutes(elapsed), "SEV2") == expected

    def test_thresholds(self):
        assert sla_threshold("SEV1") == _minutes(30)
        assert sla_threshold("SEV3") == timedelta(hours=8)
        assert sla_threshold("SEV4") == timedelta(hours=24)

    def test_level_is_capped(self):
        assert target_escalation_level(timedelta(days=30), "SEV1") == MAX_ESCALATION_LEVEL

    def test_unknown_severity_uses_sev4(self):
        assert sla_threshold("SEV9") == timedelta(hours=24)
        assert target_escalation_level(timedelta(hours=25), "SEV9") == 1

    def test_dedupe_key_format(self):
        assert escalation_dedupe_key(5, 1, 9, NOW) == "incident_escalation:5:1:9:2024-01-03"


@pytest.mark.unit
class TestProcessOrgEscalations:

    def test_escalates_to_level_one(self, org, admin, owner, make_incident):
        incident = make_incident(start_time=NOW - _minutes(121))

        counts = escalate_org(org.id, NOW)

        assert counts == {"evaluated": 1, "affected": 1, "notifications_created": 2}
        incident = db.session.get(Incident, incident.id)
        assert incident.escalation_level == 1
        assert as_utc(incident.escalated_at) == NOW

        recipients = {n.user_id for n in Notification.query.all()}
        assert recipients == {owner.id, admin.id}
        notif = Notification.query.filter_by(user_id=owner.id).one()
        assert notif.type == INCIDENT_ESCALATION
        assert notif.title == "Incident escalated to Level 1: Checkout API errors"
        assert notif.link == f"/incidents/{incident.id}"

    def test_writes_audit_as_system_actor(self, org, make_incident):
        incident = make_incident(start_time=NOW - _minutes(121))
        escalate_org(org.id, NOW)

        log = AuditLog.query.filter_by(action="automationEscalation").one()
        assert log.entity_type == "incident"
        assert log.entity_id == str(incident.id)
        assert log.actor_name == "Automation"
        assert log.changes_dict["escalation_level"] == {"old": 0, "new": 1}

    def test_within_sla_is_untouched(self, org, make_incident):
        incident = make_incident(start_time=NOW - _minutes(119))
        counts = escalate_org(org.id, NOW)
        assert counts == {"evaluated": 1, "affected": 0, "notifications_created": 0}
        assert db.session.get(Incident, incident.id).escalated_at is None
        assert AuditLog.query.count() == 0

    def test_rerun_same_day_is_noop(self, org, make_incident):
        make_incident(start_time=NOW - _minutes(121))
        escalate_org(org.id, NOW)
        counts = escalate_org(org.id, NOW + _minutes(15))
        assert counts["affected"] == 0
        assert counts["notifications_created"] == 0
        assert Notification.query.count() == 2

    def test_level_two_notifies_again(self, org, make_incident):
        incident = make_incident(start_time=NOW - _minutes(121))
        escalate_org(org.id, NOW)
        counts = escalate_org(org.id, NOW + _minutes(120))
        assert counts["affected"] == 1
        assert counts["notifications_created"] == 2
        assert db.session.get(Incident, incident.id).escalation_level == 2
        assert AuditLog.query.filter_by(action="automationEscalation").count() == 2

    def test_level_never_decreases(self, org, make_incident):
        incident = make_incident(start_time=NOW - _minutes(121), escalation_level=2)
        counts = escalate_org(org.id, NOW)
        assert counts["affected"] == 0
        assert db.session.get(Incident, incident.id).escalation_level == 2

    def test_only_open_incidents_are_evaluated(self, org, make_incident):
        make_incident(start_time=NOW - timedelta(days=2), status="MITIGATED")
        make_incident(start_time=NOW - timedelta(days=2), status="CLOSED")
        counts = escalate_org(org.id, NOW)
        assert counts == {"evaluated": 0, "affected": 0, "notifications_created": 0}

    def test_owner_who_is_admin_notified_once(self, org, admin, make_incident):
        make_incident(start_time=NOW - _minutes(121), owner_id=admin.id)
        counts = escalate_org(org.id, NOW)
        assert counts["notifications_created"] == 1

    def test_other_orgs_untouched(self, org, make_incident):
        other = Org(name="Other", slug="other")
        db.session.add(other)
        db.session.commit()
        incident = make_incident(org_id=other.id, start_time=NOW - timedelta(days=1))

        counts = escalate_org(org.id, NOW)
        assert counts["evaluated"] == 0
        assert db.session.get(Incident, incident.id).escalation_level == 0
