"""
Tests — Automation run tracker.

Covers:
    1. track_run: RUNNING → SUCCESS with counters, RUNNING → ERROR with message
    2. run_for_orgs: sequential batch, failure isolation, skipped orgs
    3. Run record state machine and listing
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from postmortem.core.exceptions import AutomationBatchError, ValidationError
from postmortem.models import db
from postmortem.models.automation import RUN_ERROR, RUN_SUCCESS, AutomationRun
from postmortem.models.incident import Incident
from postmortem.models.org import Org
from postmortem.services.automation_runs import (
    JOB_ESCALATION,
    JOB_REMINDERS,
    list_runs,
    run_for_orgs,
    track_run,
)

NOW = datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc)
PROCESSORS = "postmortem.services.automation_runs._org_processors"


def _counts(evaluated=0, affected=0, created=0):
    return {"evaluated": evaluated, "affected": affected, "notifications_created": created}


@pytest.fixture()
def second_org():
    o = Org(name="Globex", slug="globex")
    db.session.add(o)
    db.session.commit()
    return o


@pytest.mark.unit
class TestTrackRun:

    def test_success_records_counts(self, org):
        run = track_run(org.id, JOB_REMINDERS, lambda: _counts(5, 2, 3))
        stored = db.session.get(AutomationRun, run.id)
        assert stored.status == RUN_SUCCESS
        assert stored.counts == _counts(5, 2, 3)
        assert stored.finished_at is not None
        assert stored.error_message is None

    def test_missing_counters_default_to_zero(self, org):
        run = track_run(org.id, JOB_REMINDERS, lambda: {"evaluated": 4})
        assert run.counts == _counts(4, 0, 0)

    def test_failure_records_error_and_reraises(self, org):
        def boom():
            raise RuntimeError("database went away")

        with pytest.raises(RuntimeError):
            track_run(org.id, JOB_ESCALATION, boom)

        run = AutomationRun.query.one()
        assert run.status == RUN_ERROR
        assert run.error_message == "database went away"
        assert run.finished_at is not None
        assert run.counts == _counts()

    def test_failure_rolls_back_partial_work(self, org, owner):
        def half_done():
            db.session.add(Incident(org_id=org.id, title="partial", severity="SEV3",
                                    status="OPEN", start_time=NOW, owner_id=owner.id))
            db.session.flush()
            raise RuntimeError("crashed midway")

        with pytest.raises(RuntimeError):
            track_run(org.id, JOB_ESCALATION, half_done)

        assert Incident.query.count() == 0
        assert AutomationRun.query.one().status == RUN_ERROR

    @pytest.mark.parametrize("counts", [
        {"evaluated": 1, "affected": 2},
        {"evaluated": -1},
        {"notifications_created": "3"},
    ])
    def test_invalid_counts_mark_error(self, org, counts):
        with pytest.raises(ValueError):
            track_run(org.id, JOB_REMINDERS, lambda: counts)
        assert AutomationRun.query.one().status == RUN_ERROR

    def test_run_finishes_once(self, org):
        run = track_run(org.id, JOB_REMINDERS, lambda: _counts())
        with pytest.raises(ValueError):
            run.mark_success(_counts())
        with pytest.raises(ValueError):
            run.mark_error("late failure")


@pytest.mark.unit
class TestRunForOrgs:

    def test_runs_every_org(self, org, second_org):
        seen = []

        def processor(org_id, now):
            seen.append(org_id)
            return _counts(1, 1, 2)

        with patch.dict(PROCESSORS, {JOB_ESCALATION: processor}):
            summary = run_for_orgs(JOB_ESCALATION, now=NOW)

        assert seen == [org.id, second_org.id]
        assert summary["orgs_processed"] == 2
        assert summary["orgs_failed"] == 0
        assert summary["notifications_created"] == 4
        assert len(summary["run_ids"]) == 2

    def test_passes_reference_instant(self, org):
        received = []
        with patch.dict(PROCESSORS, {JOB_ESCALATION: lambda o, now: received.append(now) or {}}):
            run_for_orgs(JOB_ESCALATION, [org.id], now=NOW)
        assert received == [NOW]

    def test_failing_org_does_not_stop_batch(self, org, second_org):
        def processor(org_id, now):
            if org_id == org.id:
                raise RuntimeError("boom")
            return _counts(1, 0, 0)

        with patch.dict(PROCESSORS, {JOB_ESCALATION: processor}):
            with pytest.raises(AutomationBatchError) as exc_info:
                run_for_orgs(JOB_ESCALATION, now=NOW)

        assert exc_info.value.errors == {org.id: "boom"}
        assert exc_info.value.job_name == JOB_ESCALATION
        by_org = {run.org_id: run for run in AutomationRun.query.all()}
        assert by_org[org.id].status == RUN_ERROR
        assert by_org[org.id].error_message == "boom"
        assert by_org[second_org.id].status == RUN_SUCCESS

    def test_missing_org_is_skipped(self, org):
        with patch.dict(PROCESSORS, {JOB_ESCALATION: lambda o, now: _counts()}):
            summary = run_for_orgs(JOB_ESCALATION, [org.id, 99999], now=NOW)
        assert summary["orgs_processed"] == 1
        assert summary["orgs_skipped"] == 1
        assert AutomationRun.query.count() == 1

    def test_no_orgs(self):
        summary = run_for_orgs(JOB_REMINDERS, now=NOW)
        assert summary["orgs_processed"] == 0
        assert summary["run_ids"] == []

    def test_unknown_job(self, org):
        with pytest.raises(ValidationError):
            run_for_orgs("deleteEverything", [org.id])
        assert AutomationRun.query.count() == 0

    def test_real_engines_are_registered(self, org, admin, make_incident):
        make_incident(start_time=NOW - timedelta(hours=5))
        summary = run_for_orgs(JOB_ESCALATION, [org.id], now=NOW)
        assert summary["notifications_created"] == 2
        run = AutomationRun.query.one()
        assert run.counts == _counts(1, 1, 2)


@pytest.mark.unit
class TestListRuns:

    def test_newest_first_with_limit(self, org, second_org):
        for i in range(3):
            db.session.add(AutomationRun(org_id=org.id, job_name=JOB_REMINDERS,
                                         started_at=NOW + timedelta(minutes=i),
                                         status=RUN_SUCCESS))
        db.session.add(AutomationRun(org_id=second_org.id, job_name=JOB_REMINDERS,
                                     started_at=NOW + timedelta(hours=1), status=RUN_SUCCESS))
        db.session.commit()

        runs = list_runs(org.id, limit=2)
        assert [r.started_at.minute for r in runs] == [2, 1]
        assert all(r.org_id == org.id for r in runs)

    def test_to_dict(self, org):
        run = track_run(org.id, JOB_REMINDERS, lambda: _counts(2, 1, 1))
        data = run.to_dict()
        assert data["job_name"] == JOB_REMINDERS
        assert data["status"] == RUN_SUCCESS
        assert data["counts"]["notifications_created"] == 1
