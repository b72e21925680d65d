from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.domain.state_machine import Role


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role
    tenant_id: str | None = None
    name: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_technician(self) -> bool:
        return self.role == Role.TECHNICIAN

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.role.value.title()


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    user_id = claims.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise ValueError("token has no subject")
    raw_role = claims.get("role")
    try:
        role = Role(raw_role)
    except ValueError as exc:
        raise ValueError(f"unknown role: {raw_role}") from exc
    tenant_id = claims.get("tenant_id")
    return Actor(
        user_id=user_id,
        role=role,
        tenant_id=tenant_id if isinstance(tenant_id, str) else None,
        name=claims.get("name"),
        email=claims.get("email"),
    )
