from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from app.api.deps import AdminActor, CurrentActor
from app.api.errors import handle_domain_error
from app.domain.errors import TrackerError
from app.domain.models import ProjectCreate, ProjectRead, ProjectUpdate
from app.infra.audit import set_audit_context
from app.services.project_service import ProjectService

router = APIRouter()


def get_project_service() -> ProjectService:
    return ProjectService()


Service = Annotated[ProjectService, Depends(get_project_service)]


@router.post("", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> ProjectRead:
    set_audit_context(request, action="project.create", detail={"what": {"project_name": payload.project_name}})
    try:
        project = service.create_project(payload, actor)
        set_audit_context(request, resource=f"project:{project.id}")
        return ProjectRead.model_validate(project)
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.get("", response_model=list[ProjectRead])
def list_projects(actor: CurrentActor, service: Service) -> list[ProjectRead]:
    return [ProjectRead.model_validate(item) for item in service.list_projects(actor)]


@router.get("/{project_id}", response_model=ProjectRead)
def get_project(project_id: str, actor: CurrentActor, service: Service) -> ProjectRead:
    try:
        return ProjectRead.model_validate(service.get_project(project_id, actor))
    except TrackerError as exc:
        handle_domain_error(exc)
        raise


@router.patch("/{project_id}", response_model=ProjectRead)
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> ProjectRead:
    set_audit_context(request, action="project.update", resource=f"project:{project_id}")
    try:
        return ProjectRead.model_validate(service.update_project(project_id, payload, actor))
    except TrackerError as exc:
        handle_domain_error(exc)
        raise
