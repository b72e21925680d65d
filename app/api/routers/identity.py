from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.api.deps import AdminActor, CurrentActor
from app.api.errors import handle_domain_error
from app.domain.errors import TrackerError
from app.domain.models import (
    BootstrapAdminRequest,
    DevLoginRequest,
    TechnicianUpdate,
    TenantCreate,
    TenantRead,
    TokenResponse,
    UserCreate,
    UserRead,
)
from app.domain.state_machine import Role
from app.infra.audit import set_audit_context
from app.infra.auth import create_access_token
from app.services.identity_service import AuthError, IdentityService

router = APIRouter()


def get_identity_service() -> IdentityService:
    return IdentityService()


Service = Annotated[IdentityService, Depends(get_identity_service)]


def _handle_identity_error(exc: Exception) -> None:
    if isinstance(exc, AuthError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    handle_domain_error(exc)


@router.post("/tenants", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
def create_tenant(
    payload: TenantCreate,
    request: Request,
    service: Service,
) -> TenantRead:
    set_audit_context(request, action="identity.tenant.create", detail={"what": {"name": payload.name}})
    try:
        tenant = service.create_tenant(payload)
        return TenantRead.model_validate(tenant)
    except TrackerError as exc:
        _handle_identity_error(exc)
        raise


@router.post("/bootstrap-admin", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def bootstrap_admin(
    payload: BootstrapAdminRequest,
    request: Request,
    service: Service,
) -> UserRead:
    set_audit_context(request, action="identity.bootstrap_admin")
    try:
        user = service.bootstrap_admin(payload)
        return UserRead.model_validate(user)
    except TrackerError as exc:
        _handle_identity_error(exc)
        raise


@router.post("/dev-login", response_model=TokenResponse)
def dev_login(
    payload: DevLoginRequest,
    service: Service,
) -> TokenResponse:
    try:
        user = service.dev_login(payload.tenant_id, payload.email, payload.password)
    except TrackerError as exc:
        _handle_identity_error(exc)
        raise
    token = create_access_token(
        user_id=user.id,
        tenant_id=user.tenant_id,
        role=user.role.value,
        name=user.name,
        email=user.email,
    )
    return TokenResponse(access_token=token)


@router.post("/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> UserRead:
    set_audit_context(
        request,
        action="identity.user.create",
        detail={"what": {"email": payload.email, "role": payload.role.value}},
    )
    try:
        user = service.create_user(payload, actor)
        return UserRead.model_validate(user)
    except TrackerError as exc:
        _handle_identity_error(exc)
        raise


@router.get("/users", response_model=list[UserRead])
def list_users(
    actor: AdminActor,
    service: Service,
    role: Role | None = None,
) -> list[UserRead]:
    return [UserRead.model_validate(user) for user in service.list_users(actor, role)]


@router.get("/technicians", response_model=list[UserRead])
def list_technicians(
    actor: CurrentActor,
    service: Service,
) -> list[UserRead]:
    return [UserRead.model_validate(user) for user in service.list_technicians(actor)]


@router.put("/technicians/{technician_id}", response_model=UserRead)
def update_technician(
    technician_id: str,
    payload: TechnicianUpdate,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> UserRead:
    set_audit_context(
        request,
        action="identity.technician.update",
        detail={"what": {"technician_id": technician_id, "fields": sorted(payload.model_fields_set)}},
    )
    try:
        user = service.update_technician(technician_id, payload, actor)
        return UserRead.model_validate(user)
    except TrackerError as exc:
        _handle_identity_error(exc)
        raise


@router.delete("/technicians/{technician_id}", response_model=UserRead)
def deactivate_technician(
    technician_id: str,
    request: Request,
    actor: AdminActor,
    service: Service,
) -> UserRead:
    set_audit_context(
        request,
        action="identity.technician.deactivate",
        detail={"what": {"technician_id": technician_id}},
    )
    try:
        user = service.deactivate_technician(technician_id, actor)
        return UserRead.model_validate(user)
    except TrackerError as exc:
        _handle_identity_error(exc)
        raise
