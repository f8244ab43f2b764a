"""
Incident Postmortem Platform
Automation Run Tracker.

Wraps every per-org execution of an automation job in an AutomationRun
record and drives multi-org batches.

Architecture:
    - Engines register their per-org processor with ``@org_processor(job)``
    - ``track_run`` opens a RUNNING record, calls the processor, and closes
      the record as SUCCESS (with counters) or ERROR (then re-raises)
    - ``run_for_orgs`` walks orgs strictly sequentially; a failing org is
      recorded and the batch continues, the failure surfaces at the end
      as AutomationBatchError
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import select

from postmortem.core.exceptions import AutomationBatchError, ValidationError
from postmortem.models import db
from postmortem.models.automation import AutomationRun, RUN_RUNNING, empty_counts
from postmortem.models.org import Org
from postmortem.utils.dates import utc_now

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job names & processor registry
# ═══════════════════════════════════════════════════════════════════════════

JOB_ESCALATION = "escalateStaleIncidents"
JOB_REMINDERS = "notifyDueActionItems"
JOB_DIGEST = "sendWeeklyDigest"
AUTOMATION_JOBS = (JOB_ESCALATION, JOB_REMINDERS, JOB_DIGEST)

OrgProcessor = Callable[[int, datetime], dict]

_org_processors: dict[str, OrgProcessor] = {}


def org_processor(job_name: str):
    """Decorator to register the per-org processing function of a job.

    Usage:
        @org_processor(JOB_ESCALATION)
        def escalate_org(org_id, now):
            return {"evaluated": ..., "affected": ..., "notifications_created": ...}
    """
    if job_name not in AUTOMATION_JOBS:
        raise ValueError(f"Unknown automation job: {job_name}")

    def decorator(fn: OrgProcessor) -> OrgProcessor:
        _org_processors[job_name] = fn
        return fn
    return decorator


def get_org_processor(job_name: str) -> OrgProcessor:
    fn = _org_processors.get(job_name)
    if fn is None:
        raise ValidationError(f"Unknown automation job: {job_name}",
                              details={"job_name": job_name, "known": list(AUTOMATION_JOBS)})
    return fn


# ═══════════════════════════════════════════════════════════════════════════
#  Run tracking
# ═══════════════════════════════════════════════════════════════════════════

def _validate_counts(counts: dict) -> dict:
    merged = {**empty_counts(), **counts}
    for key, value in merged.items():
        if not isinstance(value, int) or value < 0:
            raise ValueError(f"Run counter {key} must be a non-negative int, got {value!r}")
    if merged["affected"] > merged["evaluated"]:
        raise ValueError(f"Run counters inconsistent: affected > evaluated ({merged})")
    return merged


def track_run(org_id: int, job_name: str, fn: Callable[[], dict]) -> AutomationRun:
    """
    Execute ``fn`` for one org inside an AutomationRun record.

    The RUNNING row is committed before ``fn`` starts so a crash mid-run
    stays visible.  On failure the in-flight unit of work is rolled back,
    the row is closed as ERROR with ``str(exc)``, and the exception is
    re-raised.

    Returns:
        The finished (SUCCESS) AutomationRun.
    """
    run = AutomationRun(
        org_id=org_id,
        job_name=job_name,
        started_at=utc_now(),
        status=RUN_RUNNING,
        counts=empty_counts(),
    )
    db.session.add(run)
    db.session.commit()
    run_id = run.id
    log_extra = {"org_id": org_id, "job_name": job_name, "run_id": run_id}
    logger.debug("Automation run started", extra=log_extra)

    try:
        counts = _validate_counts(fn())
    except Exception as exc:
        db.session.rollback()
        run = db.session.get(AutomationRun, run_id)
        run.mark_error(str(exc) or exc.__class__.__name__, now=utc_now())
        db.session.commit()
        logger.error("Automation run failed: %s", exc, extra=log_extra)
        raise

    run.mark_success(counts, now=utc_now())
    db.session.commit()
    logger.info("Automation run finished: %s", counts, extra=log_extra)
    return run


def run_for_orgs(job_name: str, org_ids: list[int] | None = None, *,
                 now: datetime | None = None) -> dict:
    """
    Run a job for the given orgs (all orgs when ``org_ids`` is None).

    Orgs are processed one after another.  An org id that no longer exists
    is skipped.  Returns a batch summary; raises AutomationBatchError after
    the whole batch if any org failed.
    """
    processor = get_org_processor(job_name)
    now = now or utc_now()

    if org_ids is None:
        org_ids = list(db.session.execute(select(Org.id).order_by(Org.id)).scalars())

    summary = {
        "job_name": job_name,
        "orgs_processed": 0,
        "orgs_skipped": 0,
        "orgs_failed": 0,
        "notifications_created": 0,
        "run_ids": [],
    }
    errors: dict[int, str] = {}

    for org_id in org_ids:
        if db.session.get(Org, org_id) is None:
            logger.debug("Org %s not found, skipping", org_id,
                         extra={"org_id": org_id, "job_name": job_name})
            summary["orgs_skipped"] += 1
            continue

        try:
            run = track_run(org_id, job_name, lambda: processor(org_id, now))
        except Exception as exc:
            summary["orgs_failed"] += 1
            errors[org_id] = str(exc) or exc.__class__.__name__
            continue

        summary["orgs_processed"] += 1
        summary["notifications_created"] += run.counts["notifications_created"]
        summary["run_ids"].append(run.id)

    logger.info("%s batch: %s", job_name, summary, extra={"job_name": job_name})
    if errors:
        raise AutomationBatchError(job_name, errors)
    return summary


def list_runs(org_id: int, limit: int = 10) -> list[AutomationRun]:
    """Most recent runs of an org, newest first."""
    return (
        AutomationRun.query_for_org(org_id)
        .order_by(AutomationRun.started_at.desc(), AutomationRun.id.desc())
        .limit(limit)
        .all()
    )
