from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, ForeignKeyConstraint, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.domain.field_mapping import CamelModel, CamelReadModel, ensure_total_mapping
from app.domain.state_machine import HistoryAction, Role, TaskKind, TaskStatus


def now_utc() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# tables
# ---------------------------------------------------------------------------


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, index=True)
    actor_id: str | None = Field(default=None, index=True)
    action: str
    resource: str
    method: str
    status_code: int
    ts: datetime = Field(default_factory=now_utc, index=True)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class Tenant(SQLModel, table=True):
    __tablename__ = "tenants"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(index=True, unique=True)
    project_number_prefix: str = Field(default="02", max_length=10)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
        UniqueConstraint("tenant_id", "id", name="uq_users_tenant_id_id"),
        Index("ix_users_tenant_role", "tenant_id", "role"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    email: str = Field(index=True)
    name: str | None = None
    role: Role = Field(index=True)
    password_hash: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class ProjectCounter(SQLModel, table=True):
    __tablename__ = "tenant_project_counters"

    scope_key: str = Field(primary_key=True)
    year: int = Field(primary_key=True)
    next_seq: int = Field(default=1)
    updated_at: datetime = Field(default_factory=now_utc)


class Project(SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("tenant_id", "project_number", name="uq_projects_tenant_project_number"),
        UniqueConstraint("tenant_id", "id", name="uq_projects_tenant_id_id"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    project_number: str = Field(index=True)
    project_name: str
    customer_emails: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    soil_specs: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    concrete_specs: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    created_by: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class WorkPackage(SQLModel, table=True):
    __tablename__ = "workpackages"
    __table_args__ = (
        UniqueConstraint("tenant_id", "id", name="uq_workpackages_tenant_id_id"),
        ForeignKeyConstraint(
            ["tenant_id", "project_id"],
            ["projects.tenant_id", "projects.id"],
            ondelete="CASCADE",
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    name: str
    type: str
    status: str = Field(default="Draft", index=True)
    assigned_to: str | None = Field(default=None, foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint("tenant_id", "id", name="uq_tasks_tenant_id_id"),
        UniqueConstraint("project_id", "proctor_no", name="uq_tasks_project_proctor_no"),
        ForeignKeyConstraint(
            ["tenant_id", "project_id"],
            ["projects.tenant_id", "projects.id"],
            ondelete="CASCADE",
        ),
        Index("ix_tasks_tenant_status", "tenant_id", "status"),
        Index("ix_tasks_tenant_technician", "tenant_id", "assigned_technician_id"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    kind: TaskKind = Field(index=True)
    status: TaskStatus = Field(default=TaskStatus.ASSIGNED, index=True)
    assigned_technician_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    due_date: date | None = Field(default=None, index=True)
    field_start_date: date | None = Field(default=None, index=True)
    field_end_date: date | None = None
    location_name: str | None = None
    location_notes: str | None = None
    engagement_notes: str | None = None
    rejection_remarks: str | None = None
    resubmission_due_date: date | None = None
    field_completed: bool = Field(default=False)
    field_completed_at: datetime | None = None
    report_submitted: bool = Field(default=False)
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    proctor_no: int | None = None
    last_edited_by_user_id: str | None = None
    last_edited_by_role: Role | None = None
    last_edited_at: datetime | None = None
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class TaskHistory(SQLModel, table=True):
    __tablename__ = "task_history"
    __table_args__ = (
        ForeignKeyConstraint(
            ["tenant_id", "task_id"],
            ["tasks.tenant_id", "tasks.id"],
            ondelete="CASCADE",
        ),
        Index("ix_task_history_task_ts", "task_id", "ts"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    task_id: str = Field(foreign_key="tasks.id", index=True)
    actor_user_id: str | None = Field(default=None, index=True)
    actor_role: Role
    actor_name: str
    action_type: HistoryAction = Field(index=True)
    note: str | None = None
    ts: datetime = Field(default_factory=now_utc, index=True)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user_is_read", "user_id", "is_read"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    message: str
    type: str = Field(default="info", max_length=20)
    is_read: bool = Field(default=False)
    related_task_id: str | None = Field(default=None, foreign_key="tasks.id", index=True)
    related_project_id: str | None = Field(default=None, foreign_key="projects.id", index=True)
    related_work_package_id: str | None = Field(default=None, foreign_key="workpackages.id")
    created_at: datetime = Field(default_factory=now_utc, index=True)


def _report_table_args(table_name: str) -> tuple[Any, ...]:
    return (
        ForeignKeyConstraint(
            ["tenant_id", "task_id"],
            ["tasks.tenant_id", "tasks.id"],
            ondelete="CASCADE",
        ),
        Index(f"ix_{table_name}_tenant_task", "tenant_id", "task_id"),
    )


class CompressiveStrengthReport(SQLModel, table=True):
    __tablename__ = "compressive_strength_reports"
    __table_args__ = (
        *_report_table_args("compressive_strength_reports"),
        ForeignKeyConstraint(
            ["tenant_id", "work_package_id"],
            ["workpackages.tenant_id", "workpackages.id"],
            ondelete="CASCADE",
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    task_id: str | None = Field(default=None, foreign_key="tasks.id", unique=True)
    work_package_id: str | None = Field(default=None, foreign_key="workpackages.id", unique=True)
    technician: str | None = None
    weather: str | None = None
    placement_date: str | None = None
    spec_strength: str | None = None
    spec_strength_days: int = 28
    structure: str | None = None
    sample_location: str | None = None
    supplier: str | None = None
    time_batched: str | None = None
    class_mix_id: str | None = None
    time_sampled: str | None = None
    yards_batched: str | None = None
    ambient_temp_measured: str | None = None
    ambient_temp_specs: str | None = None
    truck_no: str | None = None
    ticket_no: str | None = None
    concrete_temp_measured: str | None = None
    concrete_temp_specs: str | None = None
    plant: str | None = None
    slump_measured: str | None = None
    slump_specs: str | None = None
    yards_placed: str | None = None
    total_yards: str | None = None
    air_content_measured: str | None = None
    air_content_specs: str | None = None
    water_added: str | None = None
    unit_weight: str | None = None
    final_cure_method: str | None = None
    specimen_no: str | None = None
    specimen_qty: str | None = None
    specimen_type: str | None = None
    cylinders: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    remarks: str | None = None
    last_edited_by_user_id: str | None = None
    last_edited_by_role: Role | None = None
    last_edited_by_name: str | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class DensityReport(SQLModel, table=True):
    __tablename__ = "density_reports"
    __table_args__ = (
        *_report_table_args("density_reports"),
        ForeignKeyConstraint(
            ["tenant_id", "proctor_task_id"],
            ["tasks.tenant_id", "tasks.id"],
        ),
        ForeignKeyConstraint(
            ["tenant_id", "technician_id"],
            ["users.tenant_id", "users.id"],
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    task_id: str = Field(foreign_key="tasks.id", unique=True)
    client_name: str | None = None
    date_performed: str | None = None
    structure: str | None = None
    structure_type: str | None = None
    test_rows: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    proctors: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    dens_spec_percent: str | None = None
    moist_spec_min: str | None = None
    moist_spec_max: str | None = None
    gauge_no: str | None = None
    std_density_count: str | None = None
    std_moist_count: str | None = None
    trans_depth_in: str | None = None
    method_d2922: bool = False
    method_d3017: bool = False
    method_d698: bool = False
    proctor_task_id: str | None = Field(default=None, foreign_key="tasks.id")
    proctor_opt_moisture: str | None = None
    proctor_max_density: str | None = None
    proctor_soil_classification: str | None = None
    remarks: str | None = None
    tech_name: str | None = None
    technician_id: str | None = Field(default=None, foreign_key="users.id")
    time_str: str | None = None
    last_edited_by_user_id: str | None = None
    last_edited_by_role: Role | None = None
    last_edited_by_name: str | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class ProctorReport(SQLModel, table=True):
    __tablename__ = "proctor_reports"
    __table_args__ = _report_table_args("proctor_reports")

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    task_id: str = Field(foreign_key="tasks.id", unique=True)
    sampled_by: str | None = None
    test_method: str | None = None
    client: str | None = None
    soil_classification: str | None = None
    description: str | None = None
    opt_moisture_pct: float | None = None
    max_dry_density_pcf: float | None = None
    liquid_limit_ll: str | None = None
    plastic_limit: str | None = None
    plasticity_index: str | None = None
    sample_date: str | None = None
    calculated_by: str | None = None
    reviewed_by: str | None = None
    checked_by: str | None = None
    passing200: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    passing200_summary_pct: str | None = None
    specific_gravity_g: str | None = None
    correction_factor: float | None = None
    proctor_points: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    zav_points: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    last_edited_by_user_id: str | None = None
    last_edited_by_role: Role | None = None
    last_edited_by_name: str | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class RebarReport(SQLModel, table=True):
    __tablename__ = "rebar_reports"
    __table_args__ = (
        *_report_table_args("rebar_reports"),
        ForeignKeyConstraint(
            ["tenant_id", "technician_id"],
            ["users.tenant_id", "users.id"],
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    task_id: str = Field(foreign_key="tasks.id", unique=True)
    client_name: str | None = None
    report_date: str | None = None
    inspection_date: str | None = None
    general_contractor: str | None = None
    location_detail: str | None = None
    wire_mesh_spec: str | None = None
    drawings: str | None = None
    technician_id: str | None = Field(default=None, foreign_key="users.id")
    tech_name: str | None = None
    last_edited_by_user_id: str | None = None
    last_edited_by_role: Role | None = None
    last_edited_by_name: str | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


# ---------------------------------------------------------------------------
# application payloads (camelCase on the wire)
# ---------------------------------------------------------------------------


class TenantCreate(CamelModel):
    name: str = PydanticField(min_length=1)
    project_number_prefix: str = "02"


class TenantRead(CamelReadModel):
    id: str
    name: str
    project_number_prefix: str
    is_active: bool
    created_at: datetime


class BootstrapAdminRequest(CamelModel):
    tenant_id: str | None = None
    email: str
    password: str
    name: str | None = None


class DevLoginRequest(CamelModel):
    tenant_id: str | None = None
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(CamelModel):
    email: str
    password: str
    name: str | None = None
    role: Role = Role.TECHNICIAN
    is_active: bool = True


class UserRead(CamelReadModel):
    id: str
    tenant_id: str | None = None
    email: str
    name: str | None = None
    role: Role
    is_active: bool
    created_at: datetime


class TechnicianUpdate(CamelModel):
    email: str | None = PydanticField(default=None, min_length=3)
    name: str | None = PydanticField(default=None, min_length=1)
    password: str | None = PydanticField(default=None, min_length=6)
    is_active: bool | None = None


class ProjectCreate(CamelModel):
    project_name: str = PydanticField(min_length=1)
    customer_emails: list[str] = PydanticField(default_factory=list)
    soil_specs: dict[str, Any] = PydanticField(default_factory=dict)
    concrete_specs: dict[str, Any] = PydanticField(default_factory=dict)


class ProjectUpdate(CamelModel):
    project_name: str | None = None
    customer_emails: list[str] | None = None
    soil_specs: dict[str, Any] | None = None
    concrete_specs: dict[str, Any] | None = None


class ProjectRead(CamelReadModel):
    id: str
    tenant_id: str | None = None
    project_number: str
    project_name: str
    customer_emails: list[str]
    soil_specs: dict[str, Any]
    concrete_specs: dict[str, Any]
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class WorkPackageCreate(CamelModel):
    project_id: str
    name: str
    type: str = "WP1"
    assigned_to: str | None = None


class WorkPackageRead(CamelReadModel):
    id: str
    tenant_id: str | None = None
    project_id: str
    name: str
    type: str
    status: str
    assigned_to: str | None = None
    created_at: datetime
    updated_at: datetime


class TaskCreate(CamelModel):
    project_id: str
    kind: TaskKind
    assigned_technician_id: str | None = None
    due_date: date | None = None
    field_start_date: date | None = None
    field_end_date: date | None = None
    location_name: str | None = None
    location_notes: str | None = None
    engagement_notes: str | None = None


class TaskUpdate(CamelModel):
    assigned_technician_id: str | None = None
    due_date: date | None = None
    field_start_date: date | None = None
    field_end_date: date | None = None
    location_name: str | None = None
    location_notes: str | None = None
    engagement_notes: str | None = None
    kind: TaskKind | None = None
    expected_version: int | None = None


class TaskStatusRequest(CamelModel):
    status: TaskStatus
    rejection_remarks: str | None = None
    resubmission_due_date: date | None = None
    expected_version: int | None = None


class TaskRejectRequest(CamelModel):
    rejection_remarks: str | None = None
    resubmission_due_date: date | None = None
    expected_version: int | None = None


class TaskApproveRequest(CamelModel):
    expected_version: int | None = None


class TaskAssignRequest(CamelModel):
    technician_id: str | None = None
    expected_version: int | None = None


class TaskReopenRequest(CamelModel):
    reason: str | None = None


class TaskRead(CamelReadModel):
    id: str
    tenant_id: str | None = None
    project_id: str
    kind: TaskKind
    status: TaskStatus
    assigned_technician_id: str | None = None
    due_date: date | None = None
    field_start_date: date | None = None
    field_end_date: date | None = None
    location_name: str | None = None
    location_notes: str | None = None
    engagement_notes: str | None = None
    rejection_remarks: str | None = None
    resubmission_due_date: date | None = None
    field_completed: bool
    field_completed_at: datetime | None = None
    report_submitted: bool
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    proctor_no: int | None = None
    last_edited_by_user_id: str | None = None
    last_edited_by_role: Role | None = None
    last_edited_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime
    project_number: str | None = None
    project_name: str | None = None
    assigned_technician_name: str | None = None
    assigned_technician_email: str | None = None


class TaskHistoryRead(CamelReadModel):
    id: str
    tenant_id: str | None = None
    task_id: str
    actor_user_id: str | None = None
    actor_role: Role
    actor_name: str
    action_type: HistoryAction
    note: str | None = None
    ts: datetime


class NotificationRead(CamelReadModel):
    id: str
    tenant_id: str | None = None
    user_id: str
    message: str
    type: str
    is_read: bool
    related_task_id: str | None = None
    related_project_id: str | None = None
    related_work_package_id: str | None = None
    created_at: datetime
    project_number: str | None = None
    project_name: str | None = None


class UnreadCountRead(CamelModel):
    count: int


class MarkAllReadResult(CamelModel):
    updated: int


class _ReportReadBase(CamelReadModel):
    id: str
    tenant_id: str | None = None
    last_edited_by_user_id: str | None = None
    last_edited_by_role: Role | None = None
    last_edited_by_name: str | None = None
    created_at: datetime
    updated_at: datetime


class CompressiveStrengthReportPayload(CamelModel):
    technician: str | None = None
    weather: str | None = None
    placement_date: str | None = None
    spec_strength: str | None = None
    spec_strength_days: int | None = None
    structure: str | None = None
    sample_location: str | None = None
    supplier: str | None = None
    time_batched: str | None = None
    class_mix_id: str | None = None
    time_sampled: str | None = None
    yards_batched: str | None = None
    ambient_temp_measured: str | None = None
    ambient_temp_specs: str | None = None
    truck_no: str | None = None
    ticket_no: str | None = None
    concrete_temp_measured: str | None = None
    concrete_temp_specs: str | None = None
    plant: str | None = None
    slump_measured: str | None = None
    slump_specs: str | None = None
    yards_placed: str | None = None
    total_yards: str | None = None
    air_content_measured: str | None = None
    air_content_specs: str | None = None
    water_added: str | None = None
    unit_weight: str | None = None
    final_cure_method: str | None = None
    specimen_no: str | None = None
    specimen_qty: str | None = None
    specimen_type: str | None = None
    cylinders: list[dict[str, Any]] | None = None
    remarks: str | None = None


class CompressiveStrengthReportRead(_ReportReadBase, CompressiveStrengthReportPayload):
    task_id: str | None = None
    work_package_id: str | None = None
    spec_strength_days: int
    cylinders: list[dict[str, Any]]


class DensityReportPayload(CamelModel):
    client_name: str | None = None
    date_performed: str | None = None
    structure: str | None = None
    structure_type: str | None = None
    test_rows: list[dict[str, Any]] | None = None
    proctors: list[dict[str, Any]] | None = None
    dens_spec_percent: str | None = None
    moist_spec_min: str | None = None
    moist_spec_max: str | None = None
    gauge_no: str | None = None
    std_density_count: str | None = None
    std_moist_count: str | None = None
    trans_depth_in: str | None = None
    method_d2922: bool | None = None
    method_d3017: bool | None = None
    method_d698: bool | None = None
    proctor_task_id: str | None = None
    proctor_opt_moisture: str | None = None
    proctor_max_density: str | None = None
    proctor_soil_classification: str | None = None
    remarks: str | None = None
    tech_name: str | None = None
    technician_id: str | None = None
    time_str: str | None = None


class DensityReportRead(_ReportReadBase, DensityReportPayload):
    task_id: str
    test_rows: list[dict[str, Any]]
    proctors: list[dict[str, Any]]
    method_d2922: bool
    method_d3017: bool
    method_d698: bool


class ProctorReportPayload(CamelModel):
    sampled_by: str | None = None
    test_method: str | None = None
    client: str | None = None
    soil_classification: str | None = None
    description: str | None = None
    opt_moisture_pct: float | None = None
    max_dry_density_pcf: float | None = None
    liquid_limit_ll: str | None = None
    plastic_limit: str | None = None
    plasticity_index: str | None = None
    sample_date: str | None = None
    calculated_by: str | None = None
    reviewed_by: str | None = None
    checked_by: str | None = None
    passing200: list[dict[str, Any]] | None = None
    passing200_summary_pct: str | None = None
    specific_gravity_g: str | None = None
    correction_factor: float | None = None
    proctor_points: list[dict[str, Any]] | None = None
    zav_points: list[dict[str, Any]] | None = None


class ProctorReportRead(_ReportReadBase, ProctorReportPayload):
    task_id: str
    passing200: list[dict[str, Any]]
    proctor_points: list[dict[str, Any]]
    zav_points: list[dict[str, Any]]


class RebarReportPayload(CamelModel):
    client_name: str | None = None
    report_date: str | None = None
    inspection_date: str | None = None
    general_contractor: str | None = None
    location_detail: str | None = None
    wire_mesh_spec: str | None = None
    drawings: str | None = None
    technician_id: str | None = None
    tech_name: str | None = None


class RebarReportRead(_ReportReadBase, RebarReportPayload):
    task_id: str


READ_MODEL_MAPPINGS: tuple[tuple[type[SQLModel], type[CamelModel], frozenset[str]], ...] = (
    (Tenant, TenantRead, frozenset()),
    (User, UserRead, frozenset({"password_hash"})),
    (Project, ProjectRead, frozenset()),
    (WorkPackage, WorkPackageRead, frozenset()),
    (Task, TaskRead, frozenset()),
    (TaskHistory, TaskHistoryRead, frozenset()),
    (Notification, NotificationRead, frozenset()),
    (CompressiveStrengthReport, CompressiveStrengthReportRead, frozenset()),
    (DensityReport, DensityReportRead, frozenset()),
    (ProctorReport, ProctorReportRead, frozenset()),
    (RebarReport, RebarReportRead, frozenset()),
)

for _table_model, _read_model, _withheld in READ_MODEL_MAPPINGS:
    ensure_total_mapping(_table_model, _read_model, withheld=_withheld)
