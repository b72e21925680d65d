from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from app.api.deps import AdminActor, CurrentActor
from app.api.errors import handle_domain_error
from app.domain.errors import TrackerError
from app.domain.models import (
    CompressiveStrengthReportPayload,
    CompressiveStrengthReportRead,
    WorkPackageCreate,
    WorkPackageRead,
)
from app.infra.audit import set_audit_context
from app.services.work_package_service import WorkPackageService

router = APIRouter()


def get_work_package_service() -> WorkPackageService:
    return WorkPackageService()


Service = Annotated[WorkPackageService, Depends(get_work_package_service)]


@router.post("", response_model=WorkPackageRead, status_code=status.HTTP_201_CREATED)
def create_work_package(
    payload: WorkPackageCreate,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> WorkPackageRead:
    set_audit_context(request, action="work_package.create", detail={"what": {"project_id": payload.project_id}})
    try:
        return WorkPackageRead.model_validate(service.create(payload, actor))
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.get("/{work_package_id}", response_model=WorkPackageRead)
def get_work_package(work_package_id: str, actor: CurrentActor, service: Service) -> WorkPackageRead:
    try:
        return WorkPackageRead.model_validate(service.get(work_package_id, actor))
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.get("/{work_package_id}/compressive-strength", response_model=CompressiveStrengthReportRead)
def get_compressive_strength(
    work_package_id: str,
    actor: CurrentActor,
    service: Service,
) -> CompressiveStrengthReportRead:
    try:
        return service.get_compressive_strength(work_package_id, actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.post("/{work_package_id}/compressive-strength", response_model=CompressiveStrengthReportRead)
def save_compressive_strength(
    work_package_id: str,
    payload: CompressiveStrengthReportPayload,
    request: Request,
    actor: CurrentActor,
    service: Service,
) -> CompressiveStrengthReportRead:
    set_audit_context(request, action="report.save", resource=f"compressive-strength:workpackage:{work_package_id}")
    try:
        return service.save_compressive_strength(work_package_id, payload, actor)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise
