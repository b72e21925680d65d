from __future__ import annotations

import os
from datetime import UTC, date, datetime, time, timedelta

import pytz
from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select
from sqlmodel.sql.expression import SelectOfScalar

from app.domain.models import Task, TaskHistory, TaskHistoryRead, TaskRead
from app.domain.permissions import Actor
from app.domain.state_machine import TaskStatus
from app.infra.db import get_engine
from app.services.task_service import TaskService
from app.services.tenant_resolver import tenant_clause

SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "America/Chicago")
UPCOMING_WINDOW_DAYS = int(os.getenv("UPCOMING_WINDOW_DAYS", "14"))


def reference_today() -> date:
    return datetime.now(pytz.timezone(SCHEDULE_TIMEZONE)).date()


def local_day_bounds(day: date) -> tuple[datetime, datetime]:
    zone = pytz.timezone(SCHEDULE_TIMEZONE)
    start = zone.localize(datetime.combine(day, time.min)).astimezone(UTC)
    end = zone.localize(datetime.combine(day + timedelta(days=1), time.min)).astimezone(UTC)
    return start, end


def schedule_sort_key(task: TaskRead | Task) -> tuple[int, date, str]:
    dates = [value for value in (task.due_date, task.field_start_date) if value is not None]
    earliest = min(dates) if dates else date.max
    return (0 if task.status == TaskStatus.READY_FOR_REVIEW else 1, earliest, task.id)


def _single_field_date() -> ColumnElement[bool]:
    return col(Task.field_end_date).is_(None)


def _field_covers(day: date) -> ColumnElement[bool]:
    return or_(
        and_(_single_field_date(), col(Task.field_start_date) == day),
        and_(
            col(Task.field_end_date).is_not(None),
            col(Task.field_start_date) <= day,
            col(Task.field_end_date) >= day,
        ),
    )


class ScheduleService:
    """Read-only schedule views over the report due date and the field date axes.

    All comparisons are on calendar dates in ``SCHEDULE_TIMEZONE``.  Every query
    takes an optional ``on`` date standing in for today.
    """

    def __init__(self, task_service: TaskService | None = None) -> None:
        self.task_service = task_service or TaskService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _visible(self, actor: Actor) -> SelectOfScalar[Task]:
        statement = select(Task).where(tenant_clause(Task.tenant_id, actor.tenant_id))
        if actor.is_technician:
            statement = statement.where(Task.assigned_technician_id == actor.user_id)
        return statement

    def _run(self, session: Session, statement: SelectOfScalar[Task]) -> list[TaskRead]:
        tasks = sorted(session.exec(statement).all(), key=schedule_sort_key)
        return self.task_service.present(session, tasks)

    def today(self, actor: Actor, on: date | None = None) -> list[TaskRead]:
        day = on or reference_today()
        with self._session() as session:
            statement = self._visible(actor).where(
                or_(col(Task.due_date) == day, _field_covers(day))
            )
            return self._run(session, statement)

    def upcoming(self, actor: Actor, on: date | None = None) -> list[TaskRead]:
        day = on or reference_today()
        window_start = day + timedelta(days=1)
        window_end = day + timedelta(days=UPCOMING_WINDOW_DAYS)
        with self._session() as session:
            statement = (
                self._visible(actor)
                .where(Task.status != TaskStatus.APPROVED)
                .where(
                    or_(
                        and_(col(Task.due_date) >= window_start, col(Task.due_date) <= window_end),
                        and_(
                            _single_field_date(),
                            col(Task.field_start_date) >= window_start,
                            col(Task.field_start_date) <= window_end,
                        ),
                        and_(
                            col(Task.field_end_date).is_not(None),
                            col(Task.field_end_date) >= window_start,
                            col(Task.field_start_date) <= window_end,
                        ),
                    )
                )
            )
            return self._run(session, statement)

    def overdue(self, actor: Actor, on: date | None = None) -> list[TaskRead]:
        day = on or reference_today()
        with self._session() as session:
            statement = (
                self._visible(actor)
                .where(col(Task.due_date) < day)
                .where(Task.status != TaskStatus.APPROVED)
            )
            return self._run(session, statement)

    def tomorrow(self, actor: Actor, on: date | None = None) -> list[TaskRead]:
        day = (on or reference_today()) + timedelta(days=1)
        with self._session() as session:
            return self._run(session, self._visible(actor).where(_field_covers(day)))

    def open_reports(self, actor: Actor) -> list[TaskRead]:
        with self._session() as session:
            statement = (
                self._visible(actor)
                .where(col(Task.field_completed).is_(True))
                .where(col(Task.report_submitted).is_(False))
                .where(Task.status != TaskStatus.APPROVED)
            )
            return self._run(session, statement)

    def activity(self, actor: Actor, on: date | None = None) -> list[TaskHistoryRead]:
        day = on or (reference_today() - timedelta(days=1))
        start, end = local_day_bounds(day)
        with self._session() as session:
            statement = (
                select(TaskHistory)
                .join(Task, col(Task.id) == col(TaskHistory.task_id))
                .where(tenant_clause(Task.tenant_id, actor.tenant_id))
                .where(col(TaskHistory.ts) >= start)
                .where(col(TaskHistory.ts) < end)
                .order_by(col(TaskHistory.ts).desc())
            )
            if actor.is_technician:
                statement = statement.where(Task.assigned_technician_id == actor.user_id)
            entries = session.exec(statement).all()
            return [TaskHistoryRead.model_validate(entry) for entry in entries]
