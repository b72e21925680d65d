from __future__ import annotations

from datetime import date
from typing import Any

import structlog
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.domain.models import (
    Project,
    Task,
    TaskCreate,
    TaskHistoryRead,
    TaskRead,
    TaskUpdate,
    User,
    now_utc,
)
from app.domain.permissions import Actor
from app.domain.state_machine import (
    TASK_KIND_LABELS,
    TECHNICIAN_REQUESTABLE,
    HistoryAction,
    Role,
    TaskKind,
    TaskStatus,
    find_transition,
)
from app.infra.db import get_engine
from app.services.history_service import HistoryGap, HistoryLog
from app.services.notification_service import NotificationDispatcher, NotificationIntent
from app.services.tenant_resolver import tenant_clause

logger = structlog.get_logger(__name__)

UNASSIGNED_LABEL = "Unassigned"
FIELD_COMPLETE_NOTE = "Field work marked as complete"
TECHNICIAN_EDITABLE_FIELDS = frozenset({"location_name", "location_notes", "engagement_notes"})

_DATE_FIELD_LABELS = {
    "due_date": "due date",
    "field_start_date": "field start date",
    "field_end_date": "field end date",
}
_TEXT_FIELD_LABELS = {
    "location_name": "location name",
    "location_notes": "location notes",
    "engagement_notes": "engagement notes",
}


def display_name(user: User | None) -> str:
    if user is None:
        return UNASSIGNED_LABEL
    return user.name or user.email or UNASSIGNED_LABEL


def _format_date(value: date | None) -> str:
    return value.isoformat() if value is not None else "None"


def _validate_field_range(start: date | None, end: date | None) -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError("field end date cannot be before field start date")


def ensure_task_writable(task: Task, actor: Actor) -> None:
    if task.status != TaskStatus.APPROVED:
        return
    if actor.is_technician:
        raise ForbiddenError("task is approved and read-only")
    raise ConflictError("task is approved; reopen it before editing")


def ensure_task_access(task: Task, actor: Actor) -> None:
    if actor.is_technician and task.assigned_technician_id != actor.user_id:
        raise ForbiddenError("task is not assigned to you")


def load_task_for_actor(session: Session, task_id: str, actor: Actor) -> Task:
    statement = (
        select(Task)
        .where(Task.id == task_id)
        .where(tenant_clause(Task.tenant_id, actor.tenant_id))
    )
    task = session.exec(statement).first()
    if task is None:
        raise NotFoundError("task not found")
    ensure_task_access(task, actor)
    return task


class TaskService:
    """Task lifecycle operations.

    Each mutating operation runs in one session: the task row is updated with a
    compare-and-swap on ``version`` and the matching history entry is added to
    the same transaction.  Notifications go out only after the commit.
    """

    def __init__(
        self,
        history: HistoryLog | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self.history = history or HistoryLog()
        self.dispatcher = dispatcher or NotificationDispatcher()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_scoped_project(self, session: Session, tenant_id: str | None, project_id: str) -> Project:
        statement = (
            select(Project)
            .where(Project.id == project_id)
            .where(tenant_clause(Project.tenant_id, tenant_id))
        )
        project = session.exec(statement).first()
        if project is None:
            raise NotFoundError("project not found")
        return project

    def _get_scoped_technician(self, session: Session, tenant_id: str | None, user_id: str) -> User:
        statement = (
            select(User)
            .where(User.id == user_id)
            .where(tenant_clause(User.tenant_id, tenant_id))
            .where(User.role == Role.TECHNICIAN)
            .where(col(User.is_active).is_(True))
        )
        user = session.exec(statement).first()
        if user is None:
            raise NotFoundError("technician not found")
        return user

    def _user(self, session: Session, user_id: str | None) -> User | None:
        if user_id is None:
            return None
        return session.get(User, user_id)

    def present(self, session: Session, tasks: list[Task]) -> list[TaskRead]:
        project_ids = {task.project_id for task in tasks}
        user_ids = {task.assigned_technician_id for task in tasks if task.assigned_technician_id}
        projects: dict[str, Project] = {}
        users: dict[str, User] = {}
        if project_ids:
            rows = session.exec(select(Project).where(col(Project.id).in_(sorted(project_ids)))).all()
            projects = {row.id: row for row in rows}
        if user_ids:
            rows_u = session.exec(select(User).where(col(User.id).in_(sorted(user_ids)))).all()
            users = {row.id: row for row in rows_u}

        result: list[TaskRead] = []
        for task in tasks:
            project = projects.get(task.project_id)
            technician = users.get(task.assigned_technician_id or "")
            result.append(
                TaskRead.model_validate(task).model_copy(
                    update={
                        "project_number": project.project_number if project else None,
                        "project_name": project.project_name if project else None,
                        "assigned_technician_name": technician.name if technician else None,
                        "assigned_technician_email": technician.email if technician else None,
                    }
                )
            )
        return result

    def present_one(self, session: Session, task: Task) -> TaskRead:
        return self.present(session, [task])[0]

    def _compare_and_swap(self, session: Session, task: Task, values: dict[str, Any]) -> None:
        statement = (
            update(Task)
            .where(col(Task.id) == task.id)
            .where(col(Task.version) == task.version)
            .values(**values, version=task.version + 1)
        )
        result = session.execute(statement)
        if getattr(result, "rowcount", 0) != 1:
            session.rollback()
            logger.warning("task.version_conflict", task_id=task.id, version=task.version)
            raise ConflictError("task was modified by another request")

    def _commit_change(
        self,
        session: Session,
        task: Task,
        actor: Actor,
        values: dict[str, Any],
        action: HistoryAction,
        note: str | None,
    ) -> Task:
        stamp = now_utc()
        values = {
            **values,
            "updated_at": stamp,
            "last_edited_by_user_id": actor.user_id,
            "last_edited_by_role": actor.role,
            "last_edited_at": stamp,
        }
        self._compare_and_swap(session, task, values)
        self.history.append(session, task, actor, action, note)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("task change violates a constraint") from exc
        session.refresh(task)
        return task

    def _check_expected_version(self, task: Task, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != task.version:
            raise ConflictError(
                f"task version mismatch: expected {expected_version}, current {task.version}"
            )

    def _assignment_intent(self, task: Task, project: Project, *, reassigned: bool) -> NotificationIntent:
        verb = "reassigned" if reassigned else "assigned"
        label = TASK_KIND_LABELS[task.kind]
        return NotificationIntent(
            message=f"Admin {verb} {label} for Project {project.project_number}",
            tenant_id=task.tenant_id,
            related_task_id=task.id,
            related_project_id=project.id,
            recipient_id=task.assigned_technician_id,
        )

    def list_for_actor(self, actor: Actor, project_id: str | None = None) -> list[TaskRead]:
        with self._session() as session:
            statement = select(Task).where(tenant_clause(Task.tenant_id, actor.tenant_id))
            if project_id is not None:
                self._get_scoped_project(session, actor.tenant_id, project_id)
                statement = statement.where(Task.project_id == project_id)
            if actor.is_technician:
                statement = statement.where(Task.assigned_technician_id == actor.user_id)
            statement = statement.order_by(col(Task.created_at).desc())
            tasks = list(session.exec(statement).all())
            return self.present(session, tasks)

    def get(self, task_id: str, actor: Actor) -> TaskRead:
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            return self.present_one(session, task)

    def create(self, payload: TaskCreate, actor: Actor) -> TaskRead:
        if not actor.is_admin:
            raise ForbiddenError("only admins can create tasks")
        _validate_field_range(payload.field_start_date, payload.field_end_date)
        with self._session() as session:
            project = self._get_scoped_project(session, actor.tenant_id, payload.project_id)
            if payload.assigned_technician_id is not None:
                self._get_scoped_technician(session, project.tenant_id, payload.assigned_technician_id)

            proctor_no: int | None = None
            if payload.kind == TaskKind.PROCTOR:
                current = session.exec(
                    select(func.max(Task.proctor_no))
                    .where(Task.project_id == project.id)
                    .where(Task.kind == TaskKind.PROCTOR)
                ).one()
                proctor_no = int(current or 0) + 1

            stamp = now_utc()
            task = Task(
                tenant_id=project.tenant_id,
                project_id=project.id,
                kind=payload.kind,
                status=TaskStatus.ASSIGNED,
                assigned_technician_id=payload.assigned_technician_id,
                due_date=payload.due_date,
                field_start_date=payload.field_start_date,
                field_end_date=payload.field_end_date,
                location_name=payload.location_name,
                location_notes=payload.location_notes,
                engagement_notes=payload.engagement_notes,
                proctor_no=proctor_no,
                last_edited_by_user_id=actor.user_id,
                last_edited_by_role=actor.role,
                last_edited_at=stamp,
                created_at=stamp,
                updated_at=stamp,
            )
            session.add(task)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("task could not be created") from exc
            session.refresh(task)
            logger.info("task.created", task_id=task.id, kind=task.kind.value, project_id=project.id)
            read = self.present_one(session, task)

        if task.assigned_technician_id is not None:
            self.dispatcher.dispatch([self._assignment_intent(task, project, reassigned=False)])
        return read

    def update(self, task_id: str, payload: TaskUpdate, actor: Actor) -> TaskRead:
        changes = payload.model_dump(exclude_unset=True)
        expected_version = changes.pop("expected_version", None)
        intents: list[NotificationIntent] = []
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            requested_kind = changes.pop("kind", None)
            if requested_kind is not None and requested_kind != task.kind:
                raise ValidationError("task kind cannot be changed after creation")
            if actor.is_technician:
                blocked = sorted(set(changes) - TECHNICIAN_EDITABLE_FIELDS)
                if blocked:
                    raise ForbiddenError(f"technicians cannot edit: {', '.join(blocked)}")
            ensure_task_writable(task, actor)
            self._check_expected_version(task, expected_version)

            _validate_field_range(
                changes.get("field_start_date", task.field_start_date),
                changes.get("field_end_date", task.field_end_date),
            )

            values: dict[str, Any] = {}
            notes: list[str] = []
            reassigned = False
            if "assigned_technician_id" in changes:
                new_id = changes["assigned_technician_id"]
                if new_id != task.assigned_technician_id:
                    values.update(self._reassignment_values(session, task, new_id))
                    notes.append(self._reassignment_note(session, task.assigned_technician_id, new_id))
                    reassigned = True
            for field, label in _DATE_FIELD_LABELS.items():
                if field in changes and changes[field] != getattr(task, field):
                    values[field] = changes[field]
                    notes.append(
                        f"{label} changed from {_format_date(getattr(task, field))} to {_format_date(changes[field])}"
                    )
            for field, label in _TEXT_FIELD_LABELS.items():
                if field in changes and changes[field] != getattr(task, field):
                    values[field] = changes[field]
                    notes.append(f"{label} updated")

            if not notes:
                return self.present_one(session, task)

            previous_technician_id = task.assigned_technician_id
            project = session.get(Project, task.project_id)
            action = HistoryAction.REASSIGNED if reassigned and len(notes) == 1 else HistoryAction.STATUS_CHANGED
            task = self._commit_change(session, task, actor, values, action, "; ".join(notes))
            logger.info("task.updated", task_id=task.id, fields=sorted(values))
            read = self.present_one(session, task)
            if reassigned and task.assigned_technician_id is not None and project is not None:
                intents.append(
                    self._assignment_intent(task, project, reassigned=previous_technician_id is not None)
                )

        self.dispatcher.dispatch(intents)
        return read

    def _reassignment_values(self, session: Session, task: Task, new_id: str | None) -> dict[str, Any]:
        values: dict[str, Any] = {"assigned_technician_id": new_id}
        if new_id is not None:
            self._get_scoped_technician(session, task.tenant_id, new_id)
            if task.assigned_technician_id is None:
                values["status"] = TaskStatus.ASSIGNED
        return values

    def _reassignment_note(self, session: Session, old_id: str | None, new_id: str | None) -> str:
        old_name = display_name(self._user(session, old_id))
        new_name = display_name(self._user(session, new_id))
        return f"Task reassigned from {old_name} to {new_name}"

    def reassign(
        self,
        task_id: str,
        technician_id: str | None,
        actor: Actor,
        expected_version: int | None = None,
    ) -> TaskRead:
        if not actor.is_admin:
            raise ForbiddenError("only admins can reassign tasks")
        intents: list[NotificationIntent] = []
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            ensure_task_writable(task, actor)
            self._check_expected_version(task, expected_version)
            if technician_id == task.assigned_technician_id:
                return self.present_one(session, task)

            previous_technician_id = task.assigned_technician_id
            values = self._reassignment_values(session, task, technician_id)
            note = self._reassignment_note(session, previous_technician_id, technician_id)
            project = session.get(Project, task.project_id)
            task = self._commit_change(session, task, actor, values, HistoryAction.REASSIGNED, note)
            logger.info(
                "task.reassigned",
                task_id=task.id,
                previous_technician_id=previous_technician_id,
                technician_id=technician_id,
            )
            read = self.present_one(session, task)
            if technician_id is not None and project is not None:
                intents.append(
                    self._assignment_intent(task, project, reassigned=previous_technician_id is not None)
                )

        self.dispatcher.dispatch(intents)
        return read

    def set_status(
        self,
        task_id: str,
        requested: TaskStatus,
        actor: Actor,
        *,
        rejection_remarks: str | None = None,
        resubmission_due_date: date | None = None,
        expected_version: int | None = None,
    ) -> TaskRead:
        intents: list[NotificationIntent] = []
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            if actor.is_technician:
                if requested not in TECHNICIAN_REQUESTABLE:
                    raise ForbiddenError(f"technicians cannot set status {requested.value}")
                if task.status == TaskStatus.APPROVED:
                    raise ForbiddenError("task is approved and read-only")

            current = task.status
            rule = find_transition(current, requested)
            if rule is None:
                raise InvalidTransitionError(f"cannot move task from {current.value} to {requested.value}")
            if actor.role not in rule.roles:
                raise ForbiddenError(f"role {actor.role.value} cannot move task to {requested.value}")

            note: str | None = None
            values: dict[str, Any] = {"status": requested}
            stamp = now_utc()
            if rule.requires_rejection_details:
                remarks = (rejection_remarks or "").strip()
                if not remarks:
                    raise ValidationError("rejection remarks are required")
                if resubmission_due_date is None:
                    raise ValidationError("resubmission due date is required")
                values["rejection_remarks"] = remarks
                values["resubmission_due_date"] = resubmission_due_date
                note = remarks
            if rule.marks_submitted:
                values["report_submitted"] = True
                values["submitted_at"] = stamp
            if rule.marks_completed:
                values["completed_at"] = stamp
            if note is None and rule.action == HistoryAction.STATUS_CHANGED:
                note = f"Status changed from {current.value} to {requested.value}"

            self._check_expected_version(task, expected_version)
            project = session.get(Project, task.project_id)
            project_number = project.project_number if project is not None else "N/A"
            label = TASK_KIND_LABELS[task.kind]
            technician_name = display_name(self._user(session, actor.user_id)) if actor.is_technician else None
            task = self._commit_change(session, task, actor, values, rule.action, note)
            logger.info(
                "task.status_changed",
                task_id=task.id,
                from_status=current.value,
                to_status=requested.value,
                action=rule.action.value,
            )
            read = self.present_one(session, task)

            if rule.notify_admins and technician_name is not None:
                intents.append(
                    NotificationIntent(
                        message=f"{technician_name} completed {label} for Project {project_number}",
                        tenant_id=task.tenant_id,
                        related_task_id=task.id,
                        related_project_id=task.project_id,
                        to_tenant_admins=True,
                    )
                )
            if rule.notify_technician and task.assigned_technician_id is not None:
                intents.append(
                    NotificationIntent(
                        message=(
                            f"Your task for Project {project_number} has been rejected. "
                            "Please review the remarks and resubmit."
                        ),
                        tenant_id=task.tenant_id,
                        related_task_id=task.id,
                        related_project_id=task.project_id,
                        recipient_id=task.assigned_technician_id,
                        type="warning",
                    )
                )

        self.dispatcher.dispatch(intents)
        return read

    def mark_field_complete(self, task_id: str, actor: Actor) -> TaskRead:
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            if task.field_completed:
                return self.present_one(session, task)
            ensure_task_writable(task, actor)
            values = {"field_completed": True, "field_completed_at": now_utc()}
            task = self._commit_change(
                session, task, actor, values, HistoryAction.STATUS_CHANGED, FIELD_COMPLETE_NOTE
            )
            logger.info("task.field_completed", task_id=task.id)
            return self.present_one(session, task)

    def reopen(self, task_id: str, reason: str | None, actor: Actor) -> TaskRead:
        if not actor.is_admin:
            raise ForbiddenError("only admins can reopen approved tasks")
        cleaned = (reason or "").strip()
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            if task.status != TaskStatus.APPROVED:
                raise InvalidTransitionError("only approved tasks can be reopened")
            if not cleaned:
                raise ValidationError("a reason is required to reopen an approved task")
            values = {"status": TaskStatus.READY_FOR_REVIEW, "completed_at": None}
            task = self._commit_change(
                session,
                task,
                actor,
                values,
                HistoryAction.STATUS_CHANGED,
                f"Reopened after approval: {cleaned}",
            )
            logger.info("task.reopened", task_id=task.id)
            return self.present_one(session, task)

    def get_history(self, task_id: str, actor: Actor) -> list[TaskHistoryRead]:
        with self._session() as session:
            task = load_task_for_actor(session, task_id, actor)
            entries = self.history.list_for_task(session, task.id)
            return [TaskHistoryRead.model_validate(entry) for entry in entries]

    def history_gaps(self, actor: Actor) -> list[HistoryGap]:
        if not actor.is_admin:
            raise ForbiddenError("only admins can audit task history")
        with self._session() as session:
            return self.history.find_gaps(session, actor.tenant_id)
