"""initial schema

Revision ID: 202510010001
Revises:
Create Date: 2025-10-01
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "202510010001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _report_audit_columns() -> list[sa.Column]:
    return [
        sa.Column("last_edited_by_user_id", sa.String(), nullable=True),
        sa.Column("last_edited_by_role", sa.String(length=20), nullable=True),
        sa.Column("last_edited_by_name", sa.String(), nullable=True),
    ]


def _create_report_table(name: str, *columns: sa.Column, task_nullable: bool = False) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("task_id", sa.String(), nullable=task_nullable),
        *columns,
        *_report_audit_columns(),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
        sa.ForeignKeyConstraint(
            ["tenant_id", "task_id"],
            ["tasks.tenant_id", "tasks.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_id"),
    )
    op.create_index(f"ix_{name}_tenant_id", name, ["tenant_id"])
    op.create_index(f"ix_{name}_tenant_task", name, ["tenant_id", "task_id"])


def upgrade() -> None:
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("resource", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("detail", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_ts", "audit_logs", ["ts"])

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("project_number_prefix", sa.String(length=10), nullable=False, server_default="02"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenants_name", "tenants", ["name"], unique=True)
    op.create_index("ix_tenants_created_at", "tenants", ["created_at"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
        sa.UniqueConstraint("tenant_id", "id", name="uq_users_tenant_id_id"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_created_at", "users", ["created_at"])
    op.create_index("ix_users_tenant_role", "users", ["tenant_id", "role"])

    op.create_table(
        "tenant_project_counters",
        sa.Column("scope_key", sa.String(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("next_seq", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("scope_key", "year"),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("project_number", sa.String(), nullable=False),
        sa.Column("project_name", sa.String(), nullable=False),
        sa.Column("customer_emails", sa.JSON(), nullable=False),
        sa.Column("soil_specs", sa.JSON(), nullable=False),
        sa.Column("concrete_specs", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "project_number", name="uq_projects_tenant_project_number"),
        sa.UniqueConstraint("tenant_id", "id", name="uq_projects_tenant_id_id"),
    )
    op.create_index("ix_projects_tenant_id", "projects", ["tenant_id"])
    op.create_index("ix_projects_project_number", "projects", ["project_number"])
    op.create_index("ix_projects_created_at", "projects", ["created_at"])

    op.create_table(
        "workpackages",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="Draft"),
        sa.Column("assigned_to", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.ForeignKeyConstraint(["assigned_to"], ["users.id"]),
        sa.ForeignKeyConstraint(
            ["tenant_id", "project_id"],
            ["projects.tenant_id", "projects.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "id", name="uq_workpackages_tenant_id_id"),
    )
    op.create_index("ix_workpackages_tenant_id", "workpackages", ["tenant_id"])
    op.create_index("ix_workpackages_project_id", "workpackages", ["project_id"])
    op.create_index("ix_workpackages_status", "workpackages", ["status"])
    op.create_index("ix_workpackages_assigned_to", "workpackages", ["assigned_to"])
    op.create_index("ix_workpackages_created_at", "workpackages", ["created_at"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="ASSIGNED"),
        sa.Column("assigned_technician_id", sa.String(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("field_start_date", sa.Date(), nullable=True),
        sa.Column("field_end_date", sa.Date(), nullable=True),
        sa.Column("location_name", sa.String(), nullable=True),
        sa.Column("location_notes", sa.Text(), nullable=True),
        sa.Column("engagement_notes", sa.Text(), nullable=True),
        sa.Column("rejection_remarks", sa.Text(), nullable=True),
        sa.Column("resubmission_due_date", sa.Date(), nullable=True),
        sa.Column("field_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("field_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("report_submitted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("proctor_no", sa.Integer(), nullable=True),
        sa.Column("last_edited_by_user_id", sa.String(), nullable=True),
        sa.Column("last_edited_by_role", sa.String(length=20), nullable=True),
        sa.Column("last_edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.ForeignKeyConstraint(["assigned_technician_id"], ["users.id"]),
        sa.ForeignKeyConstraint(
            ["tenant_id", "project_id"],
            ["projects.tenant_id", "projects.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "id", name="uq_tasks_tenant_id_id"),
        sa.UniqueConstraint("project_id", "proctor_no", name="uq_tasks_project_proctor_no"),
        sa.CheckConstraint(
            "status IN ('ASSIGNED', 'IN_PROGRESS_TECH', 'READY_FOR_REVIEW', 'APPROVED', 'REJECTED_NEEDS_FIX')",
            name="ck_tasks_status",
        ),
        sa.CheckConstraint(
            "kind IN ('COMPRESSIVE_STRENGTH', 'DENSITY_MEASUREMENT', 'PROCTOR', 'REBAR', 'CYLINDER_PICKUP')",
            name="ck_tasks_kind",
        ),
    )
    op.create_index("ix_tasks_tenant_id", "tasks", ["tenant_id"])
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_kind", "tasks", ["kind"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_assigned_technician_id", "tasks", ["assigned_technician_id"])
    op.create_index("ix_tasks_due_date", "tasks", ["due_date"])
    op.create_index("ix_tasks_field_start_date", "tasks", ["field_start_date"])
    op.create_index("ix_tasks_created_at", "tasks", ["created_at"])
    op.create_index("ix_tasks_tenant_status", "tasks", ["tenant_id", "status"])
    op.create_index("ix_tasks_tenant_technician", "tasks", ["tenant_id", "assigned_technician_id"])

    op.create_table(
        "task_history",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("actor_user_id", sa.String(), nullable=True),
        sa.Column("actor_role", sa.String(length=20), nullable=False),
        sa.Column("actor_name", sa.String(), nullable=False),
        sa.Column("action_type", sa.String(length=30), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
        sa.ForeignKeyConstraint(
            ["tenant_id", "task_id"],
            ["tasks.tenant_id", "tasks.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_history_tenant_id", "task_history", ["tenant_id"])
    op.create_index("ix_task_history_task_id", "task_history", ["task_id"])
    op.create_index("ix_task_history_actor_user_id", "task_history", ["actor_user_id"])
    op.create_index("ix_task_history_action_type", "task_history", ["action_type"])
    op.create_index("ix_task_history_ts", "task_history", ["ts"])
    op.create_index("ix_task_history_task_ts", "task_history", ["task_id", "ts"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False, server_default="info"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("related_task_id", sa.String(), nullable=True),
        sa.Column("related_project_id", sa.String(), nullable=True),
        sa.Column("related_work_package_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["related_task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["related_project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["related_work_package_id"], ["workpackages.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("type IN ('info', 'success', 'warning', 'error')", name="ck_notifications_type"),
    )
    op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_related_task_id", "notifications", ["related_task_id"])
    op.create_index("ix_notifications_related_project_id", "notifications", ["related_project_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index("ix_notifications_user_is_read", "notifications", ["user_id", "is_read"])

    op.create_table(
        "compressive_strength_reports",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("task_id", sa.String(), nullable=True),
        sa.Column("work_package_id", sa.String(), nullable=True),
        *[
            sa.Column(name, sa.String(), nullable=True)
            for name in (
                "technician",
                "weather",
                "placement_date",
                "spec_strength",
            )
        ],
        sa.Column("spec_strength_days", sa.Integer(), nullable=False, server_default="28"),
        *[
            sa.Column(name, sa.String(), nullable=True)
            for name in (
                "structure",
                "sample_location",
                "supplier",
                "time_batched",
                "class_mix_id",
                "time_sampled",
                "yards_batched",
                "ambient_temp_measured",
                "ambient_temp_specs",
                "truck_no",
                "ticket_no",
                "concrete_temp_measured",
                "concrete_temp_specs",
                "plant",
                "slump_measured",
                "slump_specs",
                "yards_placed",
                "total_yards",
                "air_content_measured",
                "air_content_specs",
                "water_added",
                "unit_weight",
                "final_cure_method",
                "specimen_no",
                "specimen_qty",
                "specimen_type",
            )
        ],
        sa.Column("cylinders", sa.JSON(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_report_audit_columns(),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
        sa.ForeignKeyConstraint(["work_package_id"], ["workpackages.id"]),
        sa.ForeignKeyConstraint(
            ["tenant_id", "task_id"],
            ["tasks.tenant_id", "tasks.id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["tenant_id", "work_package_id"],
            ["workpackages.tenant_id", "workpackages.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_id"),
        sa.UniqueConstraint("work_package_id"),
    )
    op.create_index("ix_compressive_strength_reports_tenant_id", "compressive_strength_reports", ["tenant_id"])
    op.create_index(
        "ix_compressive_strength_reports_tenant_task",
        "compressive_strength_reports",
        ["tenant_id", "task_id"],
    )

    _create_report_table(
        "density_reports",
        *[
            sa.Column(name, sa.String(), nullable=True)
            for name in ("client_name", "date_performed", "structure", "structure_type")
        ],
        sa.Column("test_rows", sa.JSON(), nullable=False),
        sa.Column("proctors", sa.JSON(), nullable=False),
        *[
            sa.Column(name, sa.String(), nullable=True)
            for name in (
                "dens_spec_percent",
                "moist_spec_min",
                "moist_spec_max",
                "gauge_no",
                "std_density_count",
                "std_moist_count",
                "trans_depth_in",
            )
        ],
        sa.Column("method_d2922", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("method_d3017", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("method_d698", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("proctor_task_id", sa.String(), sa.ForeignKey("tasks.id"), nullable=True),
        sa.Column("proctor_opt_moisture", sa.String(), nullable=True),
        sa.Column("proctor_max_density", sa.String(), nullable=True),
        sa.Column("proctor_soil_classification", sa.String(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("tech_name", sa.String(), nullable=True),
        sa.Column("technician_id", sa.String(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("time_str", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id", "proctor_task_id"], ["tasks.tenant_id", "tasks.id"]),
        sa.ForeignKeyConstraint(["tenant_id", "technician_id"], ["users.tenant_id", "users.id"]),
    )

    _create_report_table(
        "proctor_reports",
        *[
            sa.Column(name, sa.String(), nullable=True)
            for name in ("sampled_by", "test_method", "client", "soil_classification", "description")
        ],
        sa.Column("opt_moisture_pct", sa.Float(), nullable=True),
        sa.Column("max_dry_density_pcf", sa.Float(), nullable=True),
        *[
            sa.Column(name, sa.String(), nullable=True)
            for name in (
                "liquid_limit_ll",
                "plastic_limit",
                "plasticity_index",
                "sample_date",
                "calculated_by",
                "reviewed_by",
                "checked_by",
            )
        ],
        sa.Column("passing200", sa.JSON(), nullable=False),
        sa.Column("passing200_summary_pct", sa.String(), nullable=True),
        sa.Column("specific_gravity_g", sa.String(), nullable=True),
        sa.Column("correction_factor", sa.Float(), nullable=True),
        sa.Column("proctor_points", sa.JSON(), nullable=False),
        sa.Column("zav_points", sa.JSON(), nullable=False),
    )

    _create_report_table(
        "rebar_reports",
        *[
            sa.Column(name, sa.String(), nullable=True)
            for name in (
                "client_name",
                "report_date",
                "inspection_date",
                "general_contractor",
                "location_detail",
                "wire_mesh_spec",
                "drawings",
            )
        ],
        sa.Column("technician_id", sa.String(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("tech_name", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id", "technician_id"], ["users.tenant_id", "users.id"]),
    )


def downgrade() -> None:
    for table in (
        "rebar_reports",
        "proctor_reports",
        "density_reports",
        "compressive_strength_reports",
        "notifications",
        "task_history",
        "tasks",
        "workpackages",
        "projects",
        "tenant_project_counters",
        "users",
        "tenants",
        "audit_logs",
    ):
        op.drop_table(table)
