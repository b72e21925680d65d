from __future__ import annotations

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.domain.errors import ConflictError, ForbiddenError, NotFoundError
from app.domain.models import (
    CompressiveStrengthReport,
    CompressiveStrengthReportPayload,
    CompressiveStrengthReportRead,
    Project,
    User,
    WorkPackage,
    WorkPackageCreate,
)
from app.domain.permissions import Actor
from app.infra.db import get_engine
from app.services.report_service import (
    ReportParent,
    load_tenant_scoped,
    report_values,
    save_tenant_stamped,
)
from app.services.tenant_resolver import tenant_clause

logger = structlog.get_logger(__name__)


class WorkPackageService:
    """Deprecated work packages, kept for clients that predate tasks."""

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_scoped_work_package(self, session: Session, work_package_id: str, actor: Actor) -> WorkPackage:
        statement = (
            select(WorkPackage)
            .where(WorkPackage.id == work_package_id)
            .where(tenant_clause(WorkPackage.tenant_id, actor.tenant_id))
        )
        work_package = session.exec(statement).first()
        if work_package is None:
            raise NotFoundError("work package not found")
        if actor.is_technician and work_package.assigned_to != actor.user_id:
            raise ForbiddenError("work package is not assigned to you")
        return work_package

    def create(self, payload: WorkPackageCreate, actor: Actor) -> WorkPackage:
        if not actor.is_admin:
            raise ForbiddenError("only admins can create work packages")
        with self._session() as session:
            project = session.exec(
                select(Project)
                .where(Project.id == payload.project_id)
                .where(tenant_clause(Project.tenant_id, actor.tenant_id))
            ).first()
            if project is None:
                raise NotFoundError("project not found")
            if payload.assigned_to is not None:
                assignee = session.exec(
                    select(User)
                    .where(User.id == payload.assigned_to)
                    .where(tenant_clause(User.tenant_id, project.tenant_id))
                ).first()
                if assignee is None:
                    raise NotFoundError("user not found")
            work_package = WorkPackage(
                tenant_id=project.tenant_id,
                project_id=project.id,
                name=payload.name,
                type=payload.type,
                assigned_to=payload.assigned_to,
            )
            session.add(work_package)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("work package could not be created") from exc
            session.refresh(work_package)
            logger.info("work_package.created", work_package_id=work_package.id, project_id=project.id)
            return work_package

    def get(self, work_package_id: str, actor: Actor) -> WorkPackage:
        with self._session() as session:
            return self._get_scoped_work_package(session, work_package_id, actor)

    def get_compressive_strength(self, work_package_id: str, actor: Actor) -> CompressiveStrengthReportRead:
        with self._session() as session:
            work_package = self._get_scoped_work_package(session, work_package_id, actor)
            row = load_tenant_scoped(
                session,
                CompressiveStrengthReport,
                ReportParent.work_package(work_package.id),
            )
            if row is None:
                raise NotFoundError("compressive-strength report not found")
            return CompressiveStrengthReportRead.model_validate(row)

    def save_compressive_strength(
        self,
        work_package_id: str,
        payload: CompressiveStrengthReportPayload,
        actor: Actor,
    ) -> CompressiveStrengthReportRead:
        with self._session() as session:
            work_package = self._get_scoped_work_package(session, work_package_id, actor)
            row = save_tenant_stamped(
                session,
                CompressiveStrengthReport,
                ReportParent.work_package(work_package.id),
                report_values(CompressiveStrengthReport, payload),
                actor,
            )
            return CompressiveStrengthReportRead.model_validate(row)
