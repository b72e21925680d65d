"""Per-kind report stores sharing one tenant-stamping write path.

A report row belongs to a parent (a task, or a deprecated work package) and
must always carry the parent's tenant.  ``save_tenant_stamped`` and
``load_tenant_scoped`` are the only functions that touch report tables; every
store goes through them, so the tenant is resolved from the parent on each
read and write and a caller-supplied tenant is never used.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, col, select

from app.domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.domain.field_mapping import CamelModel, CamelReadModel
from app.domain.models import (
    CompressiveStrengthReport,
    CompressiveStrengthReportPayload,
    CompressiveStrengthReportRead,
    DensityReport,
    DensityReportPayload,
    DensityReportRead,
    ProctorReport,
    ProctorReportPayload,
    ProctorReportRead,
    RebarReport,
    RebarReportPayload,
    RebarReportRead,
    Task,
    User,
    now_utc,
)
from app.domain.permissions import Actor
from app.domain.state_machine import TaskKind, TaskStatus, can_transition, find_transition
from app.infra.db import get_engine
from app.services.task_service import TaskService, ensure_task_writable, load_task_for_actor
from app.services.tenant_resolver import (
    resolve_task_tenant,
    resolve_work_package_tenant,
    same_tenant,
    tenant_clause,
)

logger = structlog.get_logger(__name__)

PROTECTED_COLUMNS = frozenset(
    {
        "id",
        "tenant_id",
        "task_id",
        "work_package_id",
        "created_at",
        "updated_at",
        "last_edited_by_user_id",
        "last_edited_by_role",
        "last_edited_by_name",
    }
)

# Report columns that point at other tenant-owned rows.
REFERENCE_TABLES: dict[str, type[SQLModel]] = {
    "proctor_task_id": Task,
    "technician_id": User,
}


@dataclass(frozen=True)
class ReportParent:
    column: str
    id: str
    resolve_tenant: Callable[[Session, str], str | None]

    @classmethod
    def task(cls, task_id: str) -> ReportParent:
        return cls(column="task_id", id=task_id, resolve_tenant=resolve_task_tenant)

    @classmethod
    def work_package(cls, work_package_id: str) -> ReportParent:
        return cls(column="work_package_id", id=work_package_id, resolve_tenant=resolve_work_package_tenant)


@dataclass(frozen=True)
class ReportKind:
    slug: str
    task_kind: TaskKind
    table: type[SQLModel]
    payload_model: type[CamelModel]
    read_model: type[CamelReadModel]


REPORT_KINDS: dict[str, ReportKind] = {
    "compressive-strength": ReportKind(
        slug="compressive-strength",
        task_kind=TaskKind.COMPRESSIVE_STRENGTH,
        table=CompressiveStrengthReport,
        payload_model=CompressiveStrengthReportPayload,
        read_model=CompressiveStrengthReportRead,
    ),
    "density": ReportKind(
        slug="density",
        task_kind=TaskKind.DENSITY_MEASUREMENT,
        table=DensityReport,
        payload_model=DensityReportPayload,
        read_model=DensityReportRead,
    ),
    "proctor": ReportKind(
        slug="proctor",
        task_kind=TaskKind.PROCTOR,
        table=ProctorReport,
        payload_model=ProctorReportPayload,
        read_model=ProctorReportRead,
    ),
    "rebar": ReportKind(
        slug="rebar",
        task_kind=TaskKind.REBAR,
        table=RebarReport,
        payload_model=RebarReportPayload,
        read_model=RebarReportRead,
    ),
}


def report_values(table: type[SQLModel], payload: BaseModel) -> dict[str, Any]:
    columns = table.__table__.columns  # type: ignore[attr-defined]
    values: dict[str, Any] = {}
    for name, value in payload.model_dump(exclude_unset=True).items():
        if name in PROTECTED_COLUMNS or name not in columns:
            continue
        if value is None and not columns[name].nullable:
            continue
        values[name] = value
    return values


def load_tenant_scoped(session: Session, table: type[SQLModel], parent: ReportParent) -> Any | None:
    tenant_id = parent.resolve_tenant(session, parent.id)
    statement = (
        select(table)
        .where(col(getattr(table, parent.column)) == parent.id)
        .where(tenant_clause(getattr(table, "tenant_id"), tenant_id))
    )
    return session.exec(statement).first()


def ensure_references_in_tenant(session: Session, values: dict[str, Any], tenant_id: str | None) -> None:
    for column, target in REFERENCE_TABLES.items():
        reference_id = values.get(column)
        if reference_id is None:
            continue
        found = session.exec(
            select(getattr(target, "id"))
            .where(getattr(target, "id") == reference_id)
            .where(tenant_clause(getattr(target, "tenant_id"), tenant_id))
        ).first()
        if found is None:
            logger.warning("report.foreign_reference", column=column, reference_id=reference_id, tenant_id=tenant_id)
            raise NotFoundError(f"{column} does not match a record in this tenant")


def save_tenant_stamped(
    session: Session,
    table: type[SQLModel],
    parent: ReportParent,
    values: dict[str, Any],
    actor: Actor,
) -> Any:
    tenant_id = parent.resolve_tenant(session, parent.id)
    existing = session.exec(
        select(table).where(col(getattr(table, parent.column)) == parent.id)
    ).first()
    if existing is not None and not same_tenant(existing.tenant_id, tenant_id):
        logger.error(
            "report.tenant_mismatch",
            table=table.__tablename__,
            parent_column=parent.column,
            parent_id=parent.id,
            row_tenant_id=existing.tenant_id,
            resolved_tenant_id=tenant_id,
        )
        raise ConflictError("report row is stamped with a different tenant than its parent")
    ensure_references_in_tenant(session, values, tenant_id)

    row = existing if existing is not None else table(**{parent.column: parent.id})
    for name, value in values.items():
        setattr(row, name, value)
    row.tenant_id = tenant_id
    row.last_edited_by_user_id = actor.user_id
    row.last_edited_by_role = actor.role
    row.last_edited_by_name = actor.display_name
    row.updated_at = now_utc()
    session.add(row)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("report could not be saved") from exc
    session.refresh(row)
    logger.info(
        "report.saved",
        table=table.__tablename__,
        parent_column=parent.column,
        parent_id=parent.id,
        created=existing is None,
    )
    return row


class ReportStore:
    """Read/write access to one report kind, keyed by task."""

    def __init__(self, kind: ReportKind, tasks: TaskService | None = None) -> None:
        self.kind = kind
        self.tasks = tasks or TaskService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def get_report(self, task_id: str, actor: Actor) -> CamelReadModel:
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            if task.kind != self.kind.task_kind:
                raise NotFoundError(f"{self.kind.slug} report not found")
            row = load_tenant_scoped(session, self.kind.table, ReportParent.task(task.id))
            if row is None:
                raise NotFoundError(f"{self.kind.slug} report not found")
            return self.kind.read_model.model_validate(row)

    def save_report(
        self,
        task_id: str,
        actor: Actor,
        payload: BaseModel,
        update_status: TaskStatus | None = None,
    ) -> CamelReadModel:
        """Save the report row, then optionally move the task.

        With ``update_status`` the status change goes through
        ``TaskService.set_status`` after the report commits, so the transition
        table, the history entry and the admin notifications all apply.  The
        transition is checked up front so an illegal request leaves the report
        untouched.
        """
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            if task.kind != self.kind.task_kind:
                raise ValidationError(f"task {task.id} does not take a {self.kind.slug} report")
            ensure_task_writable(task, actor)
            if update_status is not None and update_status != task.status:
                if find_transition(task.status, update_status) is None:
                    raise InvalidTransitionError(
                        f"cannot move task from {task.status.value} to {update_status.value}"
                    )
                if not can_transition(task.status, update_status, actor.role):
                    raise ForbiddenError(f"role {actor.role.value} cannot move task to {update_status.value}")
            else:
                update_status = None
            values = report_values(self.kind.table, payload)
            row = save_tenant_stamped(session, self.kind.table, ReportParent.task(task.id), values, actor)
            report = self.kind.read_model.model_validate(row)

        if update_status is not None:
            self.tasks.set_status(task_id, update_status, actor)
            logger.info("report.submitted", task_id=task_id, status=update_status.value)
        return report


def get_report_store(slug: str) -> ReportStore:
    kind = REPORT_KINDS.get(slug)
    if kind is None:
        raise NotFoundError(f"unknown report kind: {slug}")
    return ReportStore(kind)
