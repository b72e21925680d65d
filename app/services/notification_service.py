from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from sqlalchemy import func, update
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select

from app.domain.errors import NotFoundError
from app.domain.models import Notification, NotificationRead, Project, User
from app.domain.permissions import Actor
from app.domain.state_machine import Role
from app.infra.db import get_engine
from app.services.tenant_resolver import tenant_clause

logger = structlog.get_logger(__name__)

NOTIFICATION_TYPES = frozenset({"info", "success", "warning", "error"})


@dataclass(frozen=True)
class NotificationIntent:
    message: str
    tenant_id: str | None
    related_task_id: str | None = None
    related_project_id: str | None = None
    related_work_package_id: str | None = None
    recipient_id: str | None = None
    to_tenant_admins: bool = False
    type: str = "info"


class NotificationDispatcher:
    """Delivers notifications after the triggering change has committed.

    Delivery is sequential and best effort: each recipient gets its own write,
    and a failure is logged for that recipient without touching the others or
    the caller.
    """

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _tenant_admin_ids(self, tenant_id: str | None) -> list[str]:
        with self._session() as session:
            statement = (
                select(User.id)
                .where(tenant_clause(User.tenant_id, tenant_id))
                .where(User.role == Role.ADMIN)
                .where(col(User.is_active).is_(True))
                .order_by(col(User.created_at))
            )
            return list(session.exec(statement).all())

    def _recipients(self, intent: NotificationIntent) -> list[str]:
        if intent.to_tenant_admins:
            return self._tenant_admin_ids(intent.tenant_id)
        if intent.recipient_id is not None:
            return [intent.recipient_id]
        return []

    def _deliver(self, intent: NotificationIntent, recipient_id: str) -> Notification:
        kind = intent.type if intent.type in NOTIFICATION_TYPES else "info"
        with self._session() as session:
            notification = Notification(
                tenant_id=intent.tenant_id,
                user_id=recipient_id,
                message=intent.message,
                type=kind,
                related_task_id=intent.related_task_id,
                related_project_id=intent.related_project_id,
                related_work_package_id=intent.related_work_package_id,
            )
            session.add(notification)
            session.commit()
            session.refresh(notification)
            return notification

    def dispatch(self, intents: Iterable[NotificationIntent]) -> int:
        delivered = 0
        for intent in intents:
            try:
                recipients = self._recipients(intent)
            except Exception:
                logger.exception(
                    "notification.recipients_failed",
                    task_id=intent.related_task_id,
                    tenant_id=intent.tenant_id,
                )
                continue
            for recipient_id in recipients:
                try:
                    self._deliver(intent, recipient_id)
                except Exception:
                    logger.exception(
                        "notification.delivery_failed",
                        recipient_id=recipient_id,
                        task_id=intent.related_task_id,
                    )
                    continue
                delivered += 1
        if delivered:
            logger.info("notification.dispatched", delivered=delivered)
        return delivered


class NotificationService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _own(self, actor: Actor) -> tuple[ColumnElement[bool], ...]:
        return (
            col(Notification.user_id) == actor.user_id,
            tenant_clause(Notification.tenant_id, actor.tenant_id),
        )

    def list_for_user(self, actor: Actor, *, unread_only: bool = False, limit: int = 50) -> list[NotificationRead]:
        with self._session() as session:
            statement = (
                select(Notification, Project.project_number, Project.project_name)
                .outerjoin(Project, col(Project.id) == col(Notification.related_project_id))
                .where(*self._own(actor))
            )
            if unread_only:
                statement = statement.where(col(Notification.is_read).is_(False))
            statement = statement.order_by(col(Notification.created_at).desc()).limit(limit)
            rows = session.exec(statement).all()
        return [
            NotificationRead.model_validate(notification).model_copy(
                update={"project_number": project_number, "project_name": project_name}
            )
            for notification, project_number, project_name in rows
        ]

    def unread_count(self, actor: Actor) -> int:
        with self._session() as session:
            statement = (
                select(func.count())
                .select_from(Notification)
                .where(*self._own(actor))
                .where(col(Notification.is_read).is_(False))
            )
            return int(session.exec(statement).one())

    def mark_read(self, actor: Actor, notification_id: str) -> NotificationRead:
        with self._session() as session:
            statement = select(Notification).where(*self._own(actor)).where(Notification.id == notification_id)
            notification = session.exec(statement).first()
            if notification is None:
                raise NotFoundError("notification not found")
            notification.is_read = True
            session.add(notification)
            session.commit()
            session.refresh(notification)
            return NotificationRead.model_validate(notification)

    def mark_all_read(self, actor: Actor) -> int:
        with self._session() as session:
            statement = (
                update(Notification)
                .where(*self._own(actor))
                .where(col(Notification.is_read).is_(False))
                .values(is_read=True)
            )
            result = session.execute(statement)
            session.commit()
            return int(getattr(result, "rowcount", 0) or 0)
