from __future__ import annotations

import hashlib
import os

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.domain.errors import ConflictError, ForbiddenError, NotFoundError, TrackerError, ValidationError
from app.domain.models import (
    BootstrapAdminRequest,
    TechnicianUpdate,
    Tenant,
    TenantCreate,
    User,
    UserCreate,
)
from app.domain.permissions import Actor
from app.domain.state_machine import Role
from app.infra.db import get_engine
from app.services.tenant_resolver import tenant_clause

logger = structlog.get_logger(__name__)


class AuthError(TrackerError):
    pass


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _hash_password(self, raw_password: str) -> str:
        salt = os.getenv("PASSWORD_SALT", "field-tracker-dev-salt")
        return hashlib.sha256(f"{salt}:{raw_password}".encode()).hexdigest()

    def _ensure_tenant(self, session: Session, tenant_id: str | None) -> None:
        if tenant_id is not None and session.get(Tenant, tenant_id) is None:
            raise NotFoundError("tenant not found")

    def _ensure_email_free(
        self,
        session: Session,
        tenant_id: str | None,
        email: str,
        exclude_user_id: str | None = None,
    ) -> None:
        # The (tenant_id, email) constraint does not cover NULL tenants.
        statement = select(User.id).where(tenant_clause(User.tenant_id, tenant_id)).where(User.email == email)
        if exclude_user_id is not None:
            statement = statement.where(User.id != exclude_user_id)
        if session.exec(statement).first() is not None:
            raise ConflictError("email already exists in tenant")

    def _get_scoped_technician(self, session: Session, technician_id: str, actor: Actor) -> User:
        user = session.exec(
            select(User).where(User.id == technician_id).where(tenant_clause(User.tenant_id, actor.tenant_id))
        ).first()
        if user is None:
            raise NotFoundError("technician not found")
        if user.role != Role.TECHNICIAN:
            raise ValidationError("user is not a technician")
        return user

    def create_tenant(self, payload: TenantCreate) -> Tenant:
        with self._session() as session:
            tenant = Tenant(name=payload.name.strip(), project_number_prefix=payload.project_number_prefix)
            session.add(tenant)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("tenant name already exists") from exc
            session.refresh(tenant)
            logger.info("tenant.created", tenant_id=tenant.id)
            return tenant

    def bootstrap_admin(self, payload: BootstrapAdminRequest) -> User:
        with self._session() as session:
            self._ensure_tenant(session, payload.tenant_id)
            existing = session.exec(select(User.id).where(tenant_clause(User.tenant_id, payload.tenant_id))).first()
            if existing is not None:
                raise ConflictError("tenant already initialized")
            admin = User(
                tenant_id=payload.tenant_id,
                email=normalize_email(payload.email),
                name=payload.name,
                role=Role.ADMIN,
                password_hash=self._hash_password(payload.password),
                is_active=True,
            )
            session.add(admin)
            session.commit()
            session.refresh(admin)
            logger.info("identity.bootstrap_admin", tenant_id=payload.tenant_id, user_id=admin.id)
            return admin

    def create_user(self, payload: UserCreate, actor: Actor) -> User:
        if not actor.is_admin:
            raise ForbiddenError("only admins can create users")
        with self._session() as session:
            self._ensure_tenant(session, actor.tenant_id)
            email = normalize_email(payload.email)
            self._ensure_email_free(session, actor.tenant_id, email)
            user = User(
                tenant_id=actor.tenant_id,
                email=email,
                name=payload.name,
                role=payload.role,
                password_hash=self._hash_password(payload.password),
                is_active=payload.is_active,
            )
            session.add(user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("email already exists in tenant") from exc
            session.refresh(user)
            return user

    def list_users(self, actor: Actor, role: Role | None = None) -> list[User]:
        with self._session() as session:
            statement = select(User).where(tenant_clause(User.tenant_id, actor.tenant_id))
            if role is not None:
                statement = statement.where(User.role == role)
            statement = statement.order_by(col(User.created_at))
            return list(session.exec(statement).all())

    def list_technicians(self, actor: Actor) -> list[User]:
        return [user for user in self.list_users(actor, Role.TECHNICIAN) if user.is_active]

    def dev_login(self, tenant_id: str | None, email: str, password: str) -> User:
        with self._session() as session:
            statement = (
                select(User)
                .where(tenant_clause(User.tenant_id, tenant_id))
                .where(User.email == normalize_email(email))
            )
            user = session.exec(statement).first()
            if user is None:
                raise AuthError("invalid credentials")
            if not user.is_active:
                raise AuthError("user disabled")
            if user.password_hash != self._hash_password(password):
                raise AuthError("invalid credentials")
            return user

    def update_technician(self, technician_id: str, payload: TechnicianUpdate, actor: Actor) -> User:
        if not actor.is_admin:
            raise ForbiddenError("only admins can update technicians")
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationError("no fields to update")
        with self._session() as session:
            user = self._get_scoped_technician(session, technician_id, actor)
            if "email" in changes:
                email = normalize_email(changes["email"])
                self._ensure_email_free(session, user.tenant_id, email, exclude_user_id=user.id)
                user.email = email
            if "name" in changes:
                user.name = changes["name"].strip()
            if "password" in changes:
                user.password_hash = self._hash_password(changes["password"])
            if "is_active" in changes:
                user.is_active = changes["is_active"]
            session.add(user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("email already exists in tenant") from exc
            session.refresh(user)
            logger.info("identity.technician_updated", user_id=user.id, fields=sorted(changes))
            return user

    def deactivate_technician(self, technician_id: str, actor: Actor) -> User:
        """Soft-delete: the user keeps its history rows but can no longer log in or be assigned."""
        return self.update_technician(technician_id, TechnicianUpdate(is_active=False), actor)
