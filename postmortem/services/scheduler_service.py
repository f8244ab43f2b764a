"""
Incident Postmortem Platform
Scheduler Service.

Provides a lightweight background job scheduler using a single daemon
thread instead of an external scheduler dependency.

Architecture:
    - Job functions are registered via the ``register_job`` decorator
    - ScheduledJob rows persist each job's schedule and last-run state
    - ``tick(now)`` runs every enabled job whose schedule slot has passed
      since its last run, one job at a time
    - ``start()`` loops ``tick`` on a daemon thread; ``flask automation
      scheduler`` runs the same loop in the foreground
    - Manual execution via ``run_job`` (CLI / admin API)

Schedule configs:
    interval: {"minutes": 15}
    cron:     {"hour": 9, "minute": 0}                       daily
              {"day_of_week": "mon", "hour": 9, "minute": 0} weekly
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable

from flask import Flask

from postmortem.models import db
from postmortem.models.scheduling import ScheduledJob
from postmortem.utils.dates import as_utc, start_of_day, utc_now

logger = logging.getLogger(__name__)

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("escalateStaleIncidents")
        def escalate_stale_incidents(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


# ═══════════════════════════════════════════════════════════════════════════
#  Schedule evaluation
# ═══════════════════════════════════════════════════════════════════════════

def last_slot(schedule_type: str, config: dict, now: datetime) -> datetime | None:
    """Most recent cron slot at or before ``now`` (None for interval jobs)."""
    if schedule_type != "cron":
        return None
    now = as_utc(now)
    slot = start_of_day(now).replace(
        hour=int(config.get("hour", 0)),
        minute=int(config.get("minute", 0)),
    )
    weekday = config.get("day_of_week")
    if weekday is None:
        return slot if slot <= now else slot - timedelta(days=1)

    offset = (now.weekday() - WEEKDAYS.index(weekday)) % 7
    slot -= timedelta(days=offset)
    return slot if slot <= now else slot - timedelta(days=7)


def is_due(schedule_type: str, config: dict, last_run_at: datetime | None,
           now: datetime) -> bool:
    """Whether a job should run at ``now`` given its last run.

    A job that never ran is due immediately.
    """
    if last_run_at is None:
        return True
    last_run_at = as_utc(last_run_at)
    if schedule_type == "interval":
        return as_utc(now) - last_run_at >= timedelta(minutes=int(config.get("minutes", 15)))
    return last_run_at < last_slot(schedule_type, config, now)


def default_schedule(job_name: str, app_config) -> tuple[str, dict]:
    """Return (schedule_type, schedule_config) for known job types."""
    defaults = {
        "escalateStaleIncidents": (
            "interval",
            {"minutes": app_config.get("ESCALATION_INTERVAL_MINUTES", 15),
             "description": "Every 15 minutes"},
        ),
        "notifyDueActionItems": (
            "cron",
            {"hour": app_config.get("REMINDER_HOUR_UTC", 9), "minute": 0,
             "description": "Daily (UTC)"},
        ),
        "sendWeeklyDigest": (
            "cron",
            {"day_of_week": app_config.get("DIGEST_WEEKDAY", "mon"),
             "hour": app_config.get("DIGEST_HOUR_UTC", 9), "minute": 0,
             "description": "Weekly (UTC)"},
        ),
    }
    return defaults.get(job_name, ("cron", {"hour": 0, "minute": 0,
                                            "description": "Daily at midnight"}))


# ═══════════════════════════════════════════════════════════════════════════
#  Service
# ═══════════════════════════════════════════════════════════════════════════

class SchedulerService:
    """
    Lightweight scheduler service.

    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _thread: threading.Thread | None = None
    _stop_event: threading.Event | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    schedule_type, schedule_config = default_schedule(name, cls._app.config)
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip(),
                        schedule_type=schedule_type,
                        schedule_config=schedule_config,
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        started_at = utc_now()
        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        with cls._app.app_context():
            job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
            if job_record:
                job_record.record_run(
                    started_at=started_at,
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def due_jobs(cls, now: datetime | None = None) -> list[str]:
        """Names of enabled jobs whose schedule says they should run now."""
        now = now or utc_now()
        due = []
        for job in ScheduledJob.query.filter_by(is_enabled=True).order_by(ScheduledJob.id).all():
            if job.job_name not in _job_registry:
                continue
            if is_due(job.schedule_type, job.schedule_config or {}, job.last_run_at, now):
                due.append(job.job_name)
        return due

    @classmethod
    def tick(cls, now: datetime | None = None) -> list[dict]:
        """Run every due job once, sequentially."""
        if not cls._app:
            return []
        with cls._app.app_context():
            names = cls.due_jobs(now)
        return [cls.run_job(name) for name in names]

    @classmethod
    def run_forever(cls, stop_event: threading.Event | None = None) -> None:
        """Tick until ``stop_event`` is set."""
        stop_event = stop_event or threading.Event()
        interval = cls._app.config.get("SCHEDULER_TICK_SECONDS", 60)
        cls.ensure_jobs_registered()
        logger.info("Scheduler loop started (tick=%ss)", interval)
        while not stop_event.is_set():
            try:
                cls.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            stop_event.wait(interval)
        logger.info("Scheduler loop stopped")

    @classmethod
    def start(cls) -> None:
        """Start the scheduler loop on a daemon thread (no-op if running)."""
        if not cls._app or (cls._thread and cls._thread.is_alive()):
            return
        cls._stop_event = threading.Event()
        cls._thread = threading.Thread(
            target=cls.run_forever,
            args=(cls._stop_event,),
            name="automation-scheduler",
            daemon=True,
        )
        cls._thread.start()

    @classmethod
    def stop(cls, timeout: float | None = 5.0) -> None:
        if cls._stop_event:
            cls._stop_event.set()
        if cls._thread:
            cls._thread.join(timeout)
        cls._thread = None
        cls._stop_event = None

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        """Get status of a specific job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record:
            return job_record.to_dict()
        return None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()
