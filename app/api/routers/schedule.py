from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import CurrentActor
from app.domain.models import TaskHistoryRead, TaskRead
from app.services.schedule_service import ScheduleService

router = APIRouter()


def get_schedule_service() -> ScheduleService:
    return ScheduleService()


Service = Annotated[ScheduleService, Depends(get_schedule_service)]


@router.get("/today", response_model=list[TaskRead])
def today(actor: CurrentActor, service: Service, on: date | None = None) -> list[TaskRead]:
    return service.today(actor, on)


@router.get("/upcoming", response_model=list[TaskRead])
def upcoming(actor: CurrentActor, service: Service, on: date | None = None) -> list[TaskRead]:
    return service.upcoming(actor, on)


@router.get("/overdue", response_model=list[TaskRead])
def overdue(actor: CurrentActor, service: Service, on: date | None = None) -> list[TaskRead]:
    return service.overdue(actor, on)


@router.get("/tomorrow", response_model=list[TaskRead])
def tomorrow(actor: CurrentActor, service: Service, on: date | None = None) -> list[TaskRead]:
    return service.tomorrow(actor, on)


@router.get("/open-reports", response_model=list[TaskRead])
def open_reports(actor: CurrentActor, service: Service) -> list[TaskRead]:
    return service.open_reports(actor)


@router.get("/activity", response_model=list[TaskHistoryRead])
def activity(actor: CurrentActor, service: Service, on: date | None = None) -> list[TaskHistoryRead]:
    return service.activity(actor, on)
