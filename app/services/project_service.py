from __future__ import annotations

import os

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.domain.errors import ConflictError, ForbiddenError, NotFoundError
from app.domain.models import Project, ProjectCounter, ProjectCreate, ProjectUpdate, Tenant, now_utc
from app.domain.permissions import Actor
from app.infra.db import get_engine
from app.services.tenant_resolver import scope_key, tenant_clause

PROJECT_NUMBER_PREFIX = os.getenv("PROJECT_NUMBER_PREFIX", "02")

logger = structlog.get_logger(__name__)


def format_project_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:04d}"


class ProjectService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_scoped_project(self, session: Session, tenant_id: str | None, project_id: str) -> Project | None:
        statement = (
            select(Project)
            .where(Project.id == project_id)
            .where(tenant_clause(Project.tenant_id, tenant_id))
        )
        return session.exec(statement).first()

    def _number_prefix(self, session: Session, tenant_id: str | None) -> str:
        if tenant_id is None:
            return PROJECT_NUMBER_PREFIX
        tenant = session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("tenant not found")
        return tenant.project_number_prefix or PROJECT_NUMBER_PREFIX

    def _next_project_number(self, session: Session, tenant_id: str | None) -> str:
        year = now_utc().year
        key = scope_key(tenant_id)
        statement = (
            select(ProjectCounter)
            .where(ProjectCounter.scope_key == key)
            .where(ProjectCounter.year == year)
            .with_for_update()
        )
        counter = session.exec(statement).first()
        if counter is None:
            counter = ProjectCounter(scope_key=key, year=year, next_seq=1)
        sequence = counter.next_seq
        counter.next_seq = sequence + 1
        counter.updated_at = now_utc()
        session.add(counter)
        return format_project_number(self._number_prefix(session, tenant_id), year, sequence)

    def create_project(self, payload: ProjectCreate, actor: Actor) -> Project:
        if not actor.is_admin:
            raise ForbiddenError("only admins can create projects")
        with self._session() as session:
            project = Project(
                tenant_id=actor.tenant_id,
                project_number=self._next_project_number(session, actor.tenant_id),
                project_name=payload.project_name.strip(),
                customer_emails=list(payload.customer_emails),
                soil_specs=dict(payload.soil_specs),
                concrete_specs=dict(payload.concrete_specs),
                created_by=actor.user_id,
            )
            session.add(project)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("project number already exists in tenant") from exc
            session.refresh(project)
            logger.info("project.created", project_id=project.id, project_number=project.project_number)
            return project

    def list_projects(self, actor: Actor) -> list[Project]:
        with self._session() as session:
            statement = (
                select(Project)
                .where(tenant_clause(Project.tenant_id, actor.tenant_id))
                .order_by(col(Project.created_at).desc())
            )
            return list(session.exec(statement).all())

    def get_project(self, project_id: str, actor: Actor) -> Project:
        with self._session() as session:
            project = self._get_scoped_project(session, actor.tenant_id, project_id)
            if project is None:
                raise NotFoundError("project not found")
            return project

    def update_project(self, project_id: str, payload: ProjectUpdate, actor: Actor) -> Project:
        if not actor.is_admin:
            raise ForbiddenError("only admins can edit projects")
        with self._session() as session:
            project = self._get_scoped_project(session, actor.tenant_id, project_id)
            if project is None:
                raise NotFoundError("project not found")
            updates = payload.model_dump(exclude_unset=True)
            for key, value in updates.items():
                if value is None:
                    continue
                setattr(project, key, value.strip() if isinstance(value, str) else value)
            project.updated_at = now_utc()
            session.add(project)
            session.commit()
            session.refresh(project)
            return project
