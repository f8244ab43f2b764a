"""
Incident Postmortem Platform
``flask automation`` CLI commands.

Usage:
    flask automation list-jobs
    flask automation run escalateStaleIncidents [--org-id 3]
    flask automation seed-demo --org-id 3
    flask automation scheduler
"""

import logging

import click
from flask.cli import AppGroup

from postmortem.core.exceptions import AutomationBatchError, NotFoundError, ValidationError
from postmortem.services.automation_runs import AUTOMATION_JOBS, run_for_orgs
from postmortem.services.scheduler_service import SchedulerService
from postmortem.services.seed import seed_automation_demo_data

logger = logging.getLogger(__name__)

automation_cli = AppGroup("automation", help="Run and inspect automation jobs.")


@automation_cli.command("list-jobs")
def list_jobs_cmd():
    """List registered jobs with their schedule and last run."""
    SchedulerService.ensure_jobs_registered()
    for job in SchedulerService.list_jobs():
        record = job["db_record"] or {}
        click.echo(
            f"{job['job_name']:<24} "
            f"{'enabled' if record.get('is_enabled') else 'disabled':<9} "
            f"{record.get('schedule_type', '-'):<9} "
            f"last={record.get('last_run_at') or 'never'} "
            f"status={record.get('last_run_status') or '-'}"
        )


@automation_cli.command("run")
@click.argument("job_name", type=click.Choice(AUTOMATION_JOBS))
@click.option("--org-id", type=int, default=None, help="Run for one org only.")
def run_cmd(job_name, org_id):
    """Run one automation job now (all orgs unless --org-id)."""
    org_ids = [org_id] if org_id is not None else None
    try:
        summary = run_for_orgs(job_name, org_ids)
    except AutomationBatchError as exc:
        for failed_org, msg in exc.errors.items():
            click.echo(f"org {failed_org}: {msg}", err=True)
        raise click.ClickException(str(exc)) from exc
    click.echo(
        f"{job_name}: processed={summary['orgs_processed']} "
        f"skipped={summary['orgs_skipped']} "
        f"notifications={summary['notifications_created']}"
    )


@automation_cli.command("seed-demo")
@click.option("--org-id", type=int, required=True)
def seed_demo_cmd(org_id):
    """Seed a stale incident plus overdue / due-soon action items."""
    try:
        result = seed_automation_demo_data(org_id)
    except (NotFoundError, ValidationError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        f"incident={result['incident_id']} "
        f"overdue_action={result['overdue_action_id']} "
        f"due_soon_action={result['due_soon_action_id']}"
    )
    click.echo(result["message"])


@automation_cli.command("scheduler")
def scheduler_cmd():
    """Run the scheduler loop in the foreground (Ctrl+C to stop)."""
    try:
        SchedulerService.run_forever()
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted")


def init_cli(app):
    app.cli.add_command(automation_cli)
