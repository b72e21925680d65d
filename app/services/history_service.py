from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy import func
from sqlmodel import Session, col, select

from app.domain.models import Task, TaskHistory, now_utc
from app.domain.permissions import Actor
from app.domain.state_machine import HistoryAction
from app.services.tenant_resolver import tenant_clause

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class HistoryGap:
    task_id: str
    version: int
    entries: int


class HistoryLog:
    """Append-only task history.

    Entries are added to the caller's session so that they commit (or roll back)
    together with the task mutation they describe.
    """

    def append(
        self,
        session: Session,
        task: Task,
        actor: Actor,
        action: HistoryAction,
        note: str | None = None,
    ) -> TaskHistory:
        entry = TaskHistory(
            tenant_id=task.tenant_id,
            task_id=task.id,
            actor_user_id=actor.user_id,
            actor_role=actor.role,
            actor_name=actor.display_name,
            action_type=action,
            note=note,
            ts=now_utc(),
        )
        session.add(entry)
        return entry

    def list_for_task(self, session: Session, task_id: str) -> list[TaskHistory]:
        statement = (
            select(TaskHistory)
            .where(TaskHistory.task_id == task_id)
            .order_by(col(TaskHistory.ts).desc())
        )
        return list(session.exec(statement).all())

    def find_gaps(self, session: Session, tenant_id: str | None) -> list[HistoryGap]:
        # Every committed mutation bumps the task version and appends one entry,
        # so a task at version N must have at least N - 1 entries.
        counts = (
            select(TaskHistory.task_id, func.count().label("entries"))
            .group_by(col(TaskHistory.task_id))
            .subquery()
        )
        statement = (
            select(Task.id, Task.version, func.coalesce(counts.c.entries, 0))
            .outerjoin(counts, counts.c.task_id == Task.id)
            .where(tenant_clause(Task.tenant_id, tenant_id))
            .where(func.coalesce(counts.c.entries, 0) < Task.version - 1)
        )
        gaps = [
            HistoryGap(task_id=task_id, version=version, entries=int(entries))
            for task_id, version, entries in session.exec(statement).all()
        ]
        for gap in gaps:
            logger.error(
                "history.append_missing",
                task_id=gap.task_id,
                version=gap.version,
                entries=gap.entries,
            )
        return gaps
