"""
Incident Postmortem Platform
Automation Blueprint.

Endpoints:
    GET   /api/v1/orgs/<org_id>/automation-runs              — recent runs (admin)
    POST  /api/v1/orgs/<org_id>/automations/<job_name>/run   — run one job now (admin)
    POST  /api/v1/orgs/<org_id>/automation-demo              — seed demo data (admin/editor)
    GET   /api/v1/scheduler/jobs                             — scheduled jobs (admin)
    GET   /api/v1/scheduler/jobs/<job_name>                  — one job's status (admin)
    PATCH /api/v1/scheduler/jobs/<job_name>/toggle           — enable / disable (admin)

Manual runs execute synchronously for the single org and return the
batch summary.  Every per-org execution is recorded as an AutomationRun.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from postmortem import limiter
from postmortem.auth import get_current_profile, require_org_access, require_profile, require_role
from postmortem.blueprints import limit_arg
from postmortem.core.exceptions import AutomationBatchError, NotFoundError, ValidationError
from postmortem.models.org import WRITABLE_ROLES
from postmortem.services.automation_runs import get_org_processor, list_runs, run_for_orgs
from postmortem.services.scheduler_service import SchedulerService
from postmortem.services.seed import seed_automation_demo_data
from postmortem.utils.errors import E, api_error

logger = logging.getLogger(__name__)

automation_bp = Blueprint("automation", __name__, url_prefix="/api/v1")


def _trigger_limit() -> str:
    return current_app.config.get("AUTOMATION_TRIGGER_RATE_LIMIT", "10/minute")


# ── Error handlers ────────────────────────────────────────────────────────────


@automation_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@automation_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)


@automation_bp.errorhandler(AutomationBatchError)
def _handle_batch_failure(error: AutomationBatchError):
    return api_error(
        E.AUTOMATION_FAILED,
        f"{error.job_name} failed",
        details={"errors": {str(org_id): msg for org_id, msg in error.errors.items()}},
    )


# ═════════════════════════════════════════════════════════════════════════
# Automation runs
# ═════════════════════════════════════════════════════════════════════════


@automation_bp.route("/orgs/<int:org_id>/automation-runs", methods=["GET"])
@require_profile
@require_org_access()
@require_role("admin")
def list_automation_runs(org_id):
    """List an org's most recent automation runs, newest first.

    Query params:
        limit — max rows (default 10, max 100)
    """
    limit = limit_arg(10)
    runs = list_runs(org_id, limit=limit)
    return jsonify({
        "runs": [run.to_dict() for run in runs],
        "total": len(runs),
    })


@automation_bp.route("/orgs/<int:org_id>/automations/<job_name>/run", methods=["POST"])
@limiter.limit(_trigger_limit)
@require_profile
@require_org_access()
@require_role("admin")
def trigger_automation(org_id, job_name):
    """Run one automation job for this org right now."""
    get_org_processor(job_name)
    profile = get_current_profile()
    logger.info("Manual %s run requested by profile %s", job_name, profile.id,
                extra={"org_id": org_id, "job_name": job_name})
    summary = run_for_orgs(job_name, [org_id])
    return jsonify(summary)


@automation_bp.route("/orgs/<int:org_id>/automation-demo", methods=["POST"])
@require_profile
@require_org_access()
@require_role(*WRITABLE_ROLES)
def seed_automation_demo(org_id):
    """Seed an incident and action items that the engines will act on."""
    result = seed_automation_demo_data(org_id, owner=get_current_profile())
    return jsonify(result), 201


# ═════════════════════════════════════════════════════════════════════════
# Scheduled jobs management
# ═════════════════════════════════════════════════════════════════════════


@automation_bp.route("/scheduler/jobs", methods=["GET"])
@require_profile
@require_role("admin")
def list_scheduled_jobs():
    """List all registered jobs with their schedule and last run."""
    jobs = SchedulerService.list_jobs()
    return jsonify({
        "jobs": jobs,
        "total": len(jobs),
    })


@automation_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
@require_profile
@require_role("admin")
def get_job_status(job_name):
    job = SchedulerService.get_job_status(job_name)
    if not job:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(job)


@automation_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
@require_profile
@require_role("admin")
def toggle_job_status(job_name):
    """Enable or disable a scheduled job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")

    result = SchedulerService.toggle_job(job_name, bool(enabled))
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(result)
