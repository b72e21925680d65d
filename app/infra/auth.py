from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", "60"))

REQUIRED_CLAIMS = ("sub", "role", "exp")


def create_access_token(
    *,
    user_id: str,
    tenant_id: str | None,
    role: str,
    name: str | None = None,
    email: str | None = None,
    expires_minutes: int | None = None,
) -> str:
    issued_at = datetime.now(UTC)
    lifetime = timedelta(minutes=expires_minutes or JWT_EXPIRES_MIN)
    # tenant_id stays in the payload even when None; None is the legacy scope.
    claims: dict[str, Any] = {
        "sub": user_id,
        "tenant_id": tenant_id,
        "role": role,
        "name": name,
        "email": email,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    decoded = jwt.decode(
        token,
        JWT_SECRET,
        algorithms=[JWT_ALGORITHM],
        options={"require": list(REQUIRED_CLAIMS)},
    )
    if not isinstance(decoded, dict):
        raise ValueError("Invalid token payload")
    if "tenant_id" not in decoded:
        raise ValueError("Token has no tenant scope")
    return decoded
