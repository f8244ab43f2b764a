"""Automation core: orgs, incidents, notifications, audit, runs, digests, jobs

Revision ID: a1c4e7f20b01
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "a1c4e7f20b01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "orgs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(150), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="viewer"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), server_default=""),
    )

    op.create_table(
        "org_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("org_id", "profile_id", name="uq_org_member"),
    )

    op.create_table(
        "incidents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False, server_default="SEV3"),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN"),
        sa.Column("service", sa.String(200), server_default=""),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True)),
        sa.Column("impact_summary", sa.Text(), server_default=""),
        sa.Column("root_cause", sa.Text()),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False, index=True),
        sa.Column("escalation_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("escalated_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_incidents_org_status", "incidents", ["org_id", "status"])
    op.create_index("ix_incidents_org_status_start", "incidents", ["org_id", "status", "start_time"])

    op.create_table(
        "action_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("incident_id", sa.Integer(), sa.ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False, index=True),
        sa.Column("priority", sa.String(5), nullable=False, server_default="P2"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN"),
        sa.Column("action_item_type", sa.String(40)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_action_items_org_status_due", "action_items", ["org_id", "status", "due_date"])
    op.create_index("ix_action_items_incident_type", "action_items", ["incident_id", "action_item_type"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("body", sa.Text(), server_default=""),
        sa.Column("link", sa.String(300), server_default=""),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("dedupe_key", sa.String(255), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("dedupe_key", name="uq_notifications_dedupe_key"),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])
    op.create_index("ix_notifications_org_created", "notifications", ["org_id", "created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("orgs.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("actor_id", sa.Integer(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_name", sa.String(200), nullable=False, server_default="system"),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(40), nullable=False),
        sa.Column("changes", sa.Text(), server_default="{}"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_org_ts", "audit_logs", ["org_id", "timestamp"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    op.create_table(
        "automation_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("job_name", sa.String(50), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(20), nullable=False, server_default="RUNNING"),
        sa.Column("counts", sa.JSON(), nullable=False),
        sa.Column("error_message", sa.Text()),
    )
    op.create_index("ix_automation_runs_org_started", "automation_runs", ["org_id", "started_at"])

    op.create_table(
        "digests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("week_start_date", sa.String(10), nullable=False),
        sa.Column("summary", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("org_id", "week_start_date", name="uq_digests_org_week"),
    )

    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(500), server_default=""),
        sa.Column("schedule_type", sa.String(30), server_default="cron"),
        sa.Column("schedule_config", sa.JSON()),
        sa.Column("status", sa.String(20), server_default="active"),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("last_run_at", sa.DateTime(timezone=True)),
        sa.Column("last_run_status", sa.String(20)),
        sa.Column("last_run_duration_ms", sa.Integer()),
        sa.Column("last_run_result", sa.JSON()),
        sa.Column("run_count", sa.Integer(), server_default="0"),
        sa.Column("error_count", sa.Integer(), server_default="0"),
        sa.Column("last_error", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table("scheduled_jobs")
    op.drop_table("digests")
    op.drop_index("ix_automation_runs_org_started", table_name="automation_runs")
    op.drop_table("automation_runs")
    op.drop_index("idx_audit_ts", table_name="audit_logs")
    op.drop_index("idx_audit_org_ts", table_name="audit_logs")
    op.drop_index("idx_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_notifications_org_created", table_name="notifications")
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_action_items_incident_type", table_name="action_items")
    op.drop_index("ix_action_items_org_status_due", table_name="action_items")
    op.drop_table("action_items")
    op.drop_index("ix_incidents_org_status_start", table_name="incidents")
    op.drop_index("ix_incidents_org_status", table_name="incidents")
    op.drop_table("incidents")
    op.drop_table("org_members")
    op.drop_table("profiles")
    op.drop_table("orgs")
