from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request, status
from pydantic import ValidationError as PayloadValidationError

from app.api.deps import CurrentActor
from app.api.errors import handle_domain_error
from app.domain.errors import TrackerError
from app.domain.state_machine import TaskStatus
from app.infra.audit import set_audit_context
from app.services.report_service import ReportStore, get_report_store

router = APIRouter()


def _store(kind: str) -> ReportStore:
    try:
        return get_report_store(kind)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.get("/{kind}/task/{task_id}")
def get_report(kind: str, task_id: str, actor: CurrentActor) -> dict[str, Any]:
    store = _store(kind)
    try:
        report = store.get_report(task_id, actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise
    return report.model_dump(mode="json", by_alias=True)


@router.post("/{kind}/task/{task_id}")
def save_report(
    kind: str,
    task_id: str,
    request: Request,
    actor: CurrentActor,
    body: dict[str, Any] = Body(default_factory=dict),
) -> dict[str, Any]:
    store = _store(kind)
    set_audit_context(request, action="report.save", resource=f"{kind}:task:{task_id}")
    raw_status = body.pop("updateStatus", None)
    try:
        update_status = TaskStatus(raw_status) if raw_status is not None else None
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"unknown status: {raw_status}",
        ) from exc
    try:
        payload = store.kind.payload_model.model_validate(body)
    except PayloadValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    try:
        report = store.save_report(task_id, actor, payload, update_status=update_status)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise
    return report.model_dump(mode="json", by_alias=True)
