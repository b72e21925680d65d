"""Tenant ownership lookups.

Every tenant-owned row carries a nullable ``tenant_id``.  ``None`` is the legacy
"no tenant" scope, which behaves like one implicit global tenant: legacy actors
see legacy rows and nothing else, tenant actors never see legacy rows.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col

from app.domain.errors import NotFoundError
from app.domain.models import Task, WorkPackage

LEGACY_SCOPE_KEY = "__legacy__"


def tenant_clause(column: Any, tenant_id: str | None) -> ColumnElement[bool]:
    if tenant_id is None:
        return col(column).is_(None)
    return col(column) == tenant_id


def scope_key(tenant_id: str | None) -> str:
    return tenant_id if tenant_id is not None else LEGACY_SCOPE_KEY


def resolve_task_tenant(session: Session, task_id: str) -> str | None:
    task = session.get(Task, task_id)
    if task is None:
        raise NotFoundError("task not found")
    return task.tenant_id


def resolve_work_package_tenant(session: Session, work_package_id: str) -> str | None:
    work_package = session.get(WorkPackage, work_package_id)
    if work_package is None:
        raise NotFoundError("work package not found")
    return work_package.tenant_id


def same_tenant(left: str | None, right: str | None) -> bool:
    return left == right
