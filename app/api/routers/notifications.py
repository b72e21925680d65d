from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.api.deps import CurrentActor
from app.api.errors import handle_domain_error
from app.domain.errors import TrackerError
from app.domain.models import MarkAllReadResult, NotificationRead, UnreadCountRead
from app.infra.audit import set_audit_context
from app.services.notification_service import NotificationService

router = APIRouter()


def get_notification_service() -> NotificationService:
    return NotificationService()


Service = Annotated[NotificationService, Depends(get_notification_service)]


@router.get("", response_model=list[NotificationRead])
def list_notifications(
    actor: CurrentActor,
    service: Service,
    unread_only: bool = False,
    limit: int = 50,
) -> list[NotificationRead]:
    return service.list_for_user(actor, unread_only=unread_only, limit=max(1, min(limit, 200)))


@router.get("/unread-count", response_model=UnreadCountRead)
def unread_count(actor: CurrentActor, service: Service) -> UnreadCountRead:
    return UnreadCountRead(count=service.unread_count(actor))


@router.put("/mark-all-read", response_model=MarkAllReadResult)
def mark_all_read(request: Request, actor: CurrentActor, service: Service) -> MarkAllReadResult:
    set_audit_context(request, action="notification.mark_all_read")
    return MarkAllReadResult(updated=service.mark_all_read(actor))


@router.put("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: str,
    request: Request,
    actor: CurrentActor,
    service: Service,
) -> NotificationRead:
    set_audit_context(request, action="notification.mark_read", resource=f"notification:{notification_id}")
    try:
        return service.mark_read(actor, notification_id)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise
