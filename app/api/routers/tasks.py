from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from app.api.deps import AdminActor, CurrentActor
from app.api.errors import handle_domain_error
from app.domain.errors import TrackerError
from app.domain.models import (
    TaskApproveRequest,
    TaskAssignRequest,
    TaskCreate,
    TaskHistoryRead,
    TaskRead,
    TaskRejectRequest,
    TaskReopenRequest,
    TaskStatusRequest,
    TaskUpdate,
)
from app.domain.state_machine import TaskStatus
from app.infra.audit import set_audit_context
from app.services.task_service import TaskService

router = APIRouter()


def get_task_service() -> TaskService:
    return TaskService()


Service = Annotated[TaskService, Depends(get_task_service)]


@router.get("", response_model=list[TaskRead])
def list_tasks(actor: CurrentActor, service: Service) -> list[TaskRead]:
    return service.list_for_actor(actor)


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> TaskRead:
    set_audit_context(
        request,
        action="task.create",
        detail={"what": {"project_id": payload.project_id, "kind": payload.kind.value}},
    )
    try:
        task = service.create(payload, actor)
        set_audit_context(request, resource=f"task:{task.id}")
        return task
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.get("/history-gaps")
def history_gaps(actor: AdminActor, service: Service) -> list[dict[str, object]]:
    try:
        gaps = service.history_gaps(actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise
    return [{"taskId": gap.task_id, "version": gap.version, "entries": gap.entries} for gap in gaps]


@router.get("/project/{project_id}", response_model=list[TaskRead])
def list_project_tasks(project_id: str, actor: CurrentActor, service: Service) -> list[TaskRead]:
    try:
        return service.list_for_actor(actor, project_id=project_id)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.get("/{task_id}", response_model=TaskRead)
def get_task(task_id: str, actor: CurrentActor, service: Service) -> TaskRead:
    try:
        return service.get(task_id, actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.patch("/{task_id}", response_model=TaskRead)
def update_task(
    task_id: str,
    payload: TaskUpdate,
    request: Request,
    actor: CurrentActor,
    service: Service,
) -> TaskRead:
    set_audit_context(
        request,
        action="task.update",
        resource=f"task:{task_id}",
        detail={"what": {"fields": sorted(payload.model_fields_set)}},
    )
    try:
        return service.update(task_id, payload, actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.put("/{task_id}/status", response_model=TaskRead)
def set_task_status(
    task_id: str,
    payload: TaskStatusRequest,
    request: Request,
    actor: CurrentActor,
    service: Service,
) -> TaskRead:
    set_audit_context(
        request,
        action="task.set_status",
        resource=f"task:{task_id}",
        detail={"what": {"status": payload.status.value}},
    )
    try:
        return service.set_status(
            task_id,
            payload.status,
            actor,
            rejection_remarks=payload.rejection_remarks,
            resubmission_due_date=payload.resubmission_due_date,
            expected_version=payload.expected_version,
        )
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.post("/{task_id}/approve", response_model=TaskRead)
def approve_task(
    task_id: str,
    request: Request,
    actor: AdminActor,
    service: Service,
    payload: TaskApproveRequest | None = None,
) -> TaskRead:
    set_audit_context(request, action="task.approve", resource=f"task:{task_id}")
    try:
        return service.set_status(
            task_id,
            TaskStatus.APPROVED,
            actor,
            expected_version=payload.expected_version if payload else None,
        )
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.post("/{task_id}/reject", response_model=TaskRead)
def reject_task(
    task_id: str,
    payload: TaskRejectRequest,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> TaskRead:
    set_audit_context(request, action="task.reject", resource=f"task:{task_id}")
    try:
        return service.set_status(
            task_id,
            TaskStatus.REJECTED_NEEDS_FIX,
            actor,
            rejection_remarks=payload.rejection_remarks,
            resubmission_due_date=payload.resubmission_due_date,
            expected_version=payload.expected_version,
        )
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.put("/{task_id}/assign", response_model=TaskRead)
def assign_task(
    task_id: str,
    payload: TaskAssignRequest,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> TaskRead:
    set_audit_context(
        request,
        action="task.reassign",
        resource=f"task:{task_id}",
        detail={"what": {"technician_id": payload.technician_id}},
    )
    try:
        return service.reassign(task_id, payload.technician_id, actor, payload.expected_version)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.post("/{task_id}/mark-field-complete", response_model=TaskRead)
def mark_field_complete(
    task_id: str,
    request: Request,
    actor: CurrentActor,
    service: Service,
) -> TaskRead:
    set_audit_context(request, action="task.mark_field_complete", resource=f"task:{task_id}")
    try:
        return service.mark_field_complete(task_id, actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.post("/{task_id}/reopen", response_model=TaskRead)
def reopen_task(
    task_id: str,
    payload: TaskReopenRequest,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> TaskRead:
    set_audit_context(request, action="task.reopen", resource=f"task:{task_id}")
    try:
        return service.reopen(task_id, payload.reason, actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.get("/{task_id}/history", response_model=list[TaskHistoryRead])
def get_task_history(task_id: str, actor: CurrentActor, service: Service) -> list[TaskHistoryRead]:
    try:
        return service.get_history(task_id, actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise
