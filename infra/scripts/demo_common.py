from __future__ import annotations

import asyncio
import time
from uuid import uuid4

import httpx


def assert_status(response: httpx.Response, expected: int | tuple[int, ...]) -> None:
    expected_codes = (expected,) if isinstance(expected, int) else expected
    if response.status_code not in expected_codes:
        raise RuntimeError(
            f"{response.request.method} {response.request.url} expected {expected_codes}, "
            f"got {response.status_code}: {response.text}"
        )


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def wait_ok(client: httpx.AsyncClient, path: str, timeout_seconds: float = 60.0) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            response = await client.get(path)
            if response.status_code == 200:
                return
        except httpx.HTTPError:
            pass
        await asyncio.sleep(1.0)
    raise RuntimeError(f"timeout waiting for {path}")


async def login(client: httpx.AsyncClient, tenant_id: str | None, email: str, password: str) -> str:
    response = await client.post(
        "/api/identity/dev-login",
        json={"tenantId": tenant_id, "email": email, "password": password},
    )
    assert_status(response, 200)
    return response.json()["access_token"]


async def bootstrap_admin(client: httpx.AsyncClient, prefix: str) -> tuple[str, str]:
    run_id = uuid4().hex[:8]
    tenant_name = f"{prefix}-tenant-{run_id}"
    email = f"{prefix}-admin-{run_id}@demo.test"
    password = f"pass-{run_id}"

    tenant_resp = await client.post("/api/identity/tenants", json={"name": tenant_name})
    assert_status(tenant_resp, 201)
    tenant_id = tenant_resp.json()["id"]

    bootstrap_resp = await client.post(
        "/api/identity/bootstrap-admin",
        json={"tenantId": tenant_id, "email": email, "password": password, "name": f"{prefix} admin"},
    )
    assert_status(bootstrap_resp, 201)

    token = await login(client, tenant_id, email, password)
    return tenant_id, token


async def create_user(
    client: httpx.AsyncClient,
    token: str,
    tenant_id: str,
    email: str,
    *,
    name: str,
    role: str = "TECHNICIAN",
) -> tuple[str, str]:
    password = f"pass-{uuid4().hex[:8]}"
    response = await client.post(
        "/api/identity/users",
        json={"email": email, "password": password, "name": name, "role": role},
        headers=auth_headers(token),
    )
    assert_status(response, 201)
    user_token = await login(client, tenant_id, email, password)
    return response.json()["id"], user_token
