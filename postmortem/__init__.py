"""
Incident Postmortem Platform
Flask Application Factory.

Usage:
    from postmortem import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from postmortem.config import config
from postmortem.middleware.logging_config import configure_logging
from postmortem.middleware.timing import init_request_timing
from postmortem.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    config_cls = config[config_name]
    if config_name == "production":
        # from_object() never instantiates, so run the required-env checks here
        config_cls()

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from postmortem.models import org as _org_models                # noqa: F401
    from postmortem.models import incident as _incident_models      # noqa: F401
    from postmortem.models import notification as _notification_models  # noqa: F401
    from postmortem.models import audit as _audit_models            # noqa: F401
    from postmortem.models import automation as _automation_models  # noqa: F401
    from postmortem.models import scheduling as _scheduling_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "production":
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from postmortem.blueprints.automation_bp import automation_bp
    from postmortem.blueprints.notification_bp import notification_bp

    app.register_blueprint(automation_bp)
    app.register_blueprint(notification_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    from postmortem.cli import init_cli
    init_cli(app)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Incident Postmortem Platform"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    from postmortem.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("postmortem.services.scheduled_jobs")  # registers @register_job handlers
    from postmortem.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)
    if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        _SchedulerSvc.start()

    return app
