from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    ADMIN = "ADMIN"
    TECHNICIAN = "TECHNICIAN"


class TaskKind(StrEnum):
    COMPRESSIVE_STRENGTH = "COMPRESSIVE_STRENGTH"
    DENSITY_MEASUREMENT = "DENSITY_MEASUREMENT"
    PROCTOR = "PROCTOR"
    REBAR = "REBAR"
    CYLINDER_PICKUP = "CYLINDER_PICKUP"


TASK_KIND_LABELS: dict[TaskKind, str] = {
    TaskKind.COMPRESSIVE_STRENGTH: "Compressive Strength",
    TaskKind.DENSITY_MEASUREMENT: "Density Measurement",
    TaskKind.PROCTOR: "Proctor",
    TaskKind.REBAR: "Rebar",
    TaskKind.CYLINDER_PICKUP: "Cylinder Pickup",
}


class TaskStatus(StrEnum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS_TECH = "IN_PROGRESS_TECH"
    READY_FOR_REVIEW = "READY_FOR_REVIEW"
    APPROVED = "APPROVED"
    REJECTED_NEEDS_FIX = "REJECTED_NEEDS_FIX"


class HistoryAction(StrEnum):
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REASSIGNED = "REASSIGNED"
    STATUS_CHANGED = "STATUS_CHANGED"


TECHNICIAN_REQUESTABLE: frozenset[TaskStatus] = frozenset(
    {TaskStatus.IN_PROGRESS_TECH, TaskStatus.READY_FOR_REVIEW}
)


@dataclass(frozen=True)
class TransitionRule:
    roles: frozenset[Role]
    action: HistoryAction
    marks_submitted: bool = False
    marks_completed: bool = False
    requires_rejection_details: bool = False
    notify_admins: bool = False
    notify_technician: bool = False


_FIELD_ROLES = frozenset({Role.TECHNICIAN, Role.ADMIN})
_ADMIN_ONLY = frozenset({Role.ADMIN})

TASK_TRANSITIONS: dict[tuple[TaskStatus, TaskStatus], TransitionRule] = {
    (TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS_TECH): TransitionRule(
        roles=_FIELD_ROLES,
        action=HistoryAction.STATUS_CHANGED,
    ),
    (TaskStatus.IN_PROGRESS_TECH, TaskStatus.READY_FOR_REVIEW): TransitionRule(
        roles=_FIELD_ROLES,
        action=HistoryAction.SUBMITTED,
        marks_submitted=True,
        notify_admins=True,
    ),
    (TaskStatus.READY_FOR_REVIEW, TaskStatus.APPROVED): TransitionRule(
        roles=_ADMIN_ONLY,
        action=HistoryAction.APPROVED,
        marks_completed=True,
    ),
    (TaskStatus.READY_FOR_REVIEW, TaskStatus.REJECTED_NEEDS_FIX): TransitionRule(
        roles=_ADMIN_ONLY,
        action=HistoryAction.REJECTED,
        requires_rejection_details=True,
        notify_technician=True,
    ),
    (TaskStatus.REJECTED_NEEDS_FIX, TaskStatus.IN_PROGRESS_TECH): TransitionRule(
        roles=_FIELD_ROLES,
        action=HistoryAction.STATUS_CHANGED,
    ),
}


def find_transition(source: TaskStatus, target: TaskStatus) -> TransitionRule | None:
    return TASK_TRANSITIONS.get((source, target))


def can_transition(source: TaskStatus, target: TaskStatus, role: Role) -> bool:
    rule = find_transition(source, target)
    return rule is not None and role in rule.roles
