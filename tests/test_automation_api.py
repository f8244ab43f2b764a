"""
Tests — Automation API (runs, manual triggers, demo seed, scheduler admin).
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from postmortem.models import db
from postmortem.models.automation import RUN_ERROR, RUN_SUCCESS, AutomationRun
from postmortem.models.incident import ActionItem, Incident
from postmortem.models.org import Org
from postmortem.services.automation_runs import JOB_ESCALATION, JOB_REMINDERS
from postmortem.services.org_directory import get_system_profile
from postmortem.services.scheduler_service import SchedulerService
from postmortem.utils.dates import utc_now

pytestmark = pytest.mark.integration

PROCESSORS = "postmortem.services.automation_runs._org_processors"


@pytest.fixture()
def outsider(make_profile):
    """An admin who is not a member of ``org``."""
    other = Org(name="Globex", slug="globex")
    db.session.add(other)
    db.session.commit()
    return make_profile("user_outsider", role="admin", org=other)


def _runs_url(org):
    return f"/api/v1/orgs/{org.id}/automation-runs"


def _trigger_url(org, job):
    return f"/api/v1/orgs/{org.id}/automations/{job}/run"


# ═════════════════════════════════════════════════════════════════════════
# Access control
# ═════════════════════════════════════════════════════════════════════════


class TestAccess:

    def test_no_identity_is_401(self, client, org):
        res = client.get(_runs_url(org))
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_unknown_identity_is_401(self, client, org):
        res = client.get(_runs_url(org), headers={"X-User-Id": "ghost"})
        assert res.status_code == 401

    def test_non_member_is_404(self, client, org, outsider, auth_headers):
        res = client.get(_runs_url(org), headers=auth_headers(outsider))
        assert res.status_code == 404
        assert res.get_json()["error"] == "Org not found"

    def test_missing_org_is_404(self, client, admin, auth_headers):
        res = client.get("/api/v1/orgs/9999/automation-runs", headers=auth_headers(admin))
        assert res.status_code == 404

    def test_editor_is_403(self, client, org, owner, auth_headers):
        res = client.get(_runs_url(org), headers=auth_headers(owner))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_system_identity_rejected(self, client, org):
        system = get_system_profile()
        db.session.commit()
        res = client.get(_runs_url(org), headers={"X-User-Id": system.user_id})
        assert res.status_code == 403

    def test_identity_is_resolved_per_request(self, client, org, admin, owner, auth_headers):
        assert client.get(_runs_url(org), headers=auth_headers(admin)).status_code == 200
        assert client.get(_runs_url(org), headers=auth_headers(owner)).status_code == 403


# ═════════════════════════════════════════════════════════════════════════
# Automation runs & manual triggers
# ═════════════════════════════════════════════════════════════════════════


class TestAutomationRuns:

    def test_list_runs(self, client, org, admin, auth_headers):
        now = utc_now()
        for i in range(3):
            db.session.add(AutomationRun(org_id=org.id, job_name=JOB_REMINDERS,
                                         started_at=now + timedelta(minutes=i),
                                         status=RUN_SUCCESS))
        db.session.commit()

        res = client.get(_runs_url(org) + "?limit=2", headers=auth_headers(admin))
        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 2
        assert data["runs"][0]["started_at"] > data["runs"][1]["started_at"]

    def test_limit_is_clamped(self, client, org, admin, auth_headers):
        res = client.get(_runs_url(org) + "?limit=abc", headers=auth_headers(admin))
        assert res.status_code == 200

    def test_trigger_runs_engine_for_org(self, client, org, admin, make_incident, auth_headers):
        make_incident(start_time=utc_now() - timedelta(hours=3))

        res = client.post(_trigger_url(org, JOB_ESCALATION), headers=auth_headers(admin))

        assert res.status_code == 200
        data = res.get_json()
        assert data["job_name"] == JOB_ESCALATION
        assert data["orgs_processed"] == 1
        assert data["notifications_created"] == 2
        run = AutomationRun.query.one()
        assert run.status == RUN_SUCCESS
        assert run.org_id == org.id
        assert Incident.query.one().escalation_level == 1

    def test_trigger_unknown_job_is_422(self, client, org, admin, auth_headers):
        res = client.post(_trigger_url(org, "dropTables"), headers=auth_headers(admin))
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert AutomationRun.query.count() == 0

    def test_trigger_failure_is_500_with_recorded_run(self, client, org, admin, auth_headers):
        def boom(org_id, now):
            raise RuntimeError("engine exploded")

        with patch.dict(PROCESSORS, {JOB_REMINDERS: boom}):
            res = client.post(_trigger_url(org, JOB_REMINDERS), headers=auth_headers(admin))

        assert res.status_code == 500
        data = res.get_json()
        assert data["code"] == "ERR_AUTOMATION_FAILED"
        assert data["details"]["errors"] == {str(org.id): "engine exploded"}
        run = AutomationRun.query.one()
        assert run.status == RUN_ERROR
        assert run.error_message == "engine exploded"

    def test_trigger_requires_admin(self, client, org, owner, auth_headers):
        res = client.post(_trigger_url(org, JOB_ESCALATION), headers=auth_headers(owner))
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════
# Demo seed
# ═════════════════════════════════════════════════════════════════════════


class TestDemoSeed:

    def test_editor_can_seed(self, client, org, owner, auth_headers):
        res = client.post(f"/api/v1/orgs/{org.id}/automation-demo", headers=auth_headers(owner))
        assert res.status_code == 201
        data = res.get_json()
        incident = db.session.get(Incident, data["incident_id"])
        assert incident.owner_id == owner.id
        assert incident.severity == "SEV2"
        assert ActionItem.query.filter_by(incident_id=incident.id).count() == 2

    def test_viewer_cannot_seed(self, client, org, make_profile, auth_headers):
        viewer = make_profile("user_viewer", role="viewer", org=org)
        res = client.post(f"/api/v1/orgs/{org.id}/automation-demo", headers=auth_headers(viewer))
        assert res.status_code == 403
        assert Incident.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════
# Scheduler admin
# ═════════════════════════════════════════════════════════════════════════


class TestSchedulerAdmin:

    @pytest.fixture(autouse=True)
    def _jobs(self):
        SchedulerService.ensure_jobs_registered()

    def test_list_jobs(self, client, admin, auth_headers):
        res = client.get("/api/v1/scheduler/jobs", headers=auth_headers(admin))
        assert res.status_code == 200
        names = {job["job_name"] for job in res.get_json()["jobs"]}
        assert {JOB_ESCALATION, JOB_REMINDERS} <= names

    def test_list_jobs_requires_admin(self, client, owner, auth_headers):
        res = client.get("/api/v1/scheduler/jobs", headers=auth_headers(owner))
        assert res.status_code == 403

    def test_get_job(self, client, admin, auth_headers):
        res = client.get(f"/api/v1/scheduler/jobs/{JOB_ESCALATION}", headers=auth_headers(admin))
        assert res.status_code == 200
        assert res.get_json()["schedule_type"] == "interval"

    def test_get_unknown_job(self, client, admin, auth_headers):
        res = client.get("/api/v1/scheduler/jobs/nope", headers=auth_headers(admin))
        assert res.status_code == 404

    def test_toggle(self, client, admin, auth_headers):
        res = client.patch(f"/api/v1/scheduler/jobs/{JOB_REMINDERS}/toggle",
                           json={"enabled": False}, headers=auth_headers(admin))
        assert res.status_code == 200
        assert res.get_json()["status"] == "paused"
        assert res.get_json()["is_enabled"] is False

    def test_toggle_requires_enabled_field(self, client, admin, auth_headers):
        res = client.patch(f"/api/v1/scheduler/jobs/{JOB_REMINDERS}/toggle",
                           json={}, headers=auth_headers(admin))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_toggle_unknown_job(self, client, admin, auth_headers):
        res = client.patch("/api/v1/scheduler/jobs/nope/toggle",
                           json={"enabled": True}, headers=auth_headers(admin))
        assert res.status_code == 404


def test_health(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.headers.get("X-Request-ID")
