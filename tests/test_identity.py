from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlmodel import Session, SQLModel, col, create_engine, select

from app import main as app_main
from app.domain.models import AuditLog, User
from app.infra import audit, db
from app.infra.auth import JWT_ALGORITHM, JWT_SECRET, create_access_token, decode_access_token


@pytest.fixture()
def identity_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "identity_test.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(test_engine, "connect")
    def _enable_foreign_keys(dbapi_connection: object, _connection_record: object) -> None:
        cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(audit, "engine", test_engine)
    client = TestClient(app_main.app)
    yield client
    client.close()


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _create_tenant(client: TestClient, name: str) -> str:
    response = client.post("/api/identity/tenants", json={"name": name})
    assert response.status_code == 201
    return response.json()["id"]


def _bootstrap_admin(client: TestClient, tenant_id: str, email: str, password: str) -> None:
    response = client.post(
        "/api/identity/bootstrap-admin",
        json={"tenantId": tenant_id, "email": email, "password": password},
    )
    assert response.status_code == 201


def _login(client: TestClient, tenant_id: str, email: str, password: str) -> str:
    response = client.post(
        "/api/identity/dev-login",
        json={"tenantId": tenant_id, "email": email, "password": password},
    )
    assert response.status_code == 200
    return response.json()["access_token"]


def test_bootstrap_login_and_user_management(identity_client: TestClient) -> None:
    tenant_id = _create_tenant(identity_client, "acme")
    _bootstrap_admin(identity_client, tenant_id, "Admin@Acme.test", "admin-pass")
    token = _login(identity_client, tenant_id, "admin@acme.test", "admin-pass")

    second = identity_client.post(
        "/api/identity/bootstrap-admin",
        json={"tenantId": tenant_id, "email": "other@acme.test", "password": "x"},
    )
    assert second.status_code == 409

    created = identity_client.post(
        "/api/identity/users",
        json={"email": "tech@acme.test", "password": "tech-pass", "name": "Tech One"},
        headers=_auth_header(token),
    )
    assert created.status_code == 201
    body = created.json()
    assert body["role"] == "TECHNICIAN"
    assert body["tenantId"] == tenant_id
    assert "passwordHash" not in body
    assert "password_hash" not in body

    duplicate = identity_client.post(
        "/api/identity/users",
        json={"email": "TECH@acme.test", "password": "again"},
        headers=_auth_header(token),
    )
    assert duplicate.status_code == 409

    users = identity_client.get("/api/identity/users", headers=_auth_header(token)).json()
    assert sorted(user["email"] for user in users) == ["admin@acme.test", "tech@acme.test"]
    admins = identity_client.get("/api/identity/users", params={"role": "ADMIN"}, headers=_auth_header(token)).json()
    assert [user["email"] for user in admins] == ["admin@acme.test"]

    tech_token = _login(identity_client, tenant_id, "tech@acme.test", "tech-pass")
    technicians = identity_client.get("/api/identity/technicians", headers=_auth_header(tech_token))
    assert technicians.status_code == 200
    assert [user["name"] for user in technicians.json()] == ["Tech One"]
    forbidden = identity_client.post(
        "/api/identity/users",
        json={"email": "sneaky@acme.test", "password": "x", "role": "ADMIN"},
        headers=_auth_header(tech_token),
    )
    assert forbidden.status_code == 403


def test_login_failures_and_bad_tokens(identity_client: TestClient) -> None:
    tenant_id = _create_tenant(identity_client, "acme")
    other_id = _create_tenant(identity_client, "globex")
    _bootstrap_admin(identity_client, tenant_id, "admin@acme.test", "admin-pass")

    wrong_password = identity_client.post(
        "/api/identity/dev-login",
        json={"tenantId": tenant_id, "email": "admin@acme.test", "password": "nope"},
    )
    assert wrong_password.status_code == 401
    wrong_tenant = identity_client.post(
        "/api/identity/dev-login",
        json={"tenantId": other_id, "email": "admin@acme.test", "password": "admin-pass"},
    )
    assert wrong_tenant.status_code == 401

    assert identity_client.get("/api/tasks").status_code == 401
    assert identity_client.get("/api/tasks", headers=_auth_header("not-a-jwt")).status_code == 401

    duplicate_tenant = identity_client.post("/api/identity/tenants", json={"name": "acme"})
    assert duplicate_tenant.status_code == 409
    unknown_tenant = identity_client.post(
        "/api/identity/bootstrap-admin",
        json={"tenantId": "missing", "email": "a@b.test", "password": "x"},
    )
    assert unknown_tenant.status_code == 404


def test_inactive_user_cannot_log_in(identity_client: TestClient) -> None:
    tenant_id = _create_tenant(identity_client, "acme")
    _bootstrap_admin(identity_client, tenant_id, "admin@acme.test", "admin-pass")
    token = _login(identity_client, tenant_id, "admin@acme.test", "admin-pass")
    created = identity_client.post(
        "/api/identity/users",
        json={"email": "gone@acme.test", "password": "gone-pass", "isActive": False},
        headers=_auth_header(token),
    )
    assert created.status_code == 201
    response = identity_client.post(
        "/api/identity/dev-login",
        json={"tenantId": tenant_id, "email": "gone@acme.test", "password": "gone-pass"},
    )
    assert response.status_code == 401
    technicians = identity_client.get("/api/identity/technicians", headers=_auth_header(token)).json()
    assert technicians == []


def test_identity_writes_are_audited_with_tenant(identity_client: TestClient) -> None:
    tenant_id = _create_tenant(identity_client, "acme")
    _bootstrap_admin(identity_client, tenant_id, "admin@acme.test", "admin-pass")
    token = _login(identity_client, tenant_id, "admin@acme.test", "admin-pass")
    identity_client.post(
        "/api/identity/users",
        json={"email": "tech@acme.test", "password": "tech-pass"},
        headers=_auth_header(token),
    )

    with Session(db.engine) as session:
        rows = session.exec(select(AuditLog).where(AuditLog.action == "identity.user.create")).all()
        logins = session.exec(select(AuditLog).where(AuditLog.resource == "/api/identity/dev-login")).all()
        stored = session.exec(select(User).where(User.email == "tech@acme.test")).one()
    assert len(rows) == 1
    assert rows[0].tenant_id == tenant_id
    assert rows[0].detail["what"]["role"] == "TECHNICIAN"
    assert rows[0].detail["result"]["outcome"] == "success"
    assert logins == []
    assert stored.password_hash != "tech-pass"


def test_tokens_without_scope_or_expired_are_rejected(identity_client: TestClient) -> None:
    tenant_id = _create_tenant(identity_client, "acme")
    _bootstrap_admin(identity_client, tenant_id, "admin@acme.test", "admin-pass")
    token = _login(identity_client, tenant_id, "admin@acme.test", "admin-pass")
    claims = decode_access_token(token)
    assert claims["tenant_id"] == tenant_id
    assert claims["role"] == "ADMIN"

    unscoped = jwt.encode(
        {"sub": claims["sub"], "role": "ADMIN", "exp": claims["exp"]},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
    assert identity_client.get("/api/projects", headers=_auth_header(unscoped)).status_code == 401

    expired = create_access_token(user_id=claims["sub"], tenant_id=tenant_id, role="ADMIN", expires_minutes=-5)
    assert identity_client.get("/api/projects", headers=_auth_header(expired)).status_code == 401

    unknown_role = create_access_token(user_id=claims["sub"], tenant_id=tenant_id, role="AUDITOR")
    assert identity_client.get("/api/projects", headers=_auth_header(unknown_role)).status_code == 401


def test_admin_updates_and_deactivates_technicians(identity_client: TestClient) -> None:
    tenant_id = _create_tenant(identity_client, "acme")
    other_id = _create_tenant(identity_client, "globex")
    _bootstrap_admin(identity_client, tenant_id, "admin@acme.test", "admin-pass")
    _bootstrap_admin(identity_client, other_id, "admin@globex.test", "admin-pass")
    token = _login(identity_client, tenant_id, "admin@acme.test", "admin-pass")
    other_token = _login(identity_client, other_id, "admin@globex.test", "admin-pass")
    tech_id = identity_client.post(
        "/api/identity/users",
        json={"email": "tech@acme.test", "password": "tech-pass", "name": "Tech One"},
        headers=_auth_header(token),
    ).json()["id"]
    identity_client.post(
        "/api/identity/users",
        json={"email": "taken@acme.test", "password": "tech-pass"},
        headers=_auth_header(token),
    )

    renamed = identity_client.put(
        f"/api/identity/technicians/{tech_id}",
        json={"name": "Tech Prime", "email": "Prime@Acme.test", "password": "new-pass"},
        headers=_auth_header(token),
    )
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Tech Prime"
    assert renamed.json()["email"] == "prime@acme.test"
    tech_token = _login(identity_client, tenant_id, "prime@acme.test", "new-pass")

    taken = identity_client.put(
        f"/api/identity/technicians/{tech_id}",
        json={"email": "taken@acme.test"},
        headers=_auth_header(token),
    )
    assert taken.status_code == 409
    empty = identity_client.put(f"/api/identity/technicians/{tech_id}", json={}, headers=_auth_header(token))
    assert empty.status_code == 422
    cross_tenant = identity_client.put(
        f"/api/identity/technicians/{tech_id}",
        json={"name": "Hijacked"},
        headers=_auth_header(other_token),
    )
    assert cross_tenant.status_code == 404
    by_technician = identity_client.delete(f"/api/identity/technicians/{tech_id}", headers=_auth_header(tech_token))
    assert by_technician.status_code == 403
    admin_id = decode_access_token(token)["sub"]
    not_a_technician = identity_client.delete(f"/api/identity/technicians/{admin_id}", headers=_auth_header(token))
    assert not_a_technician.status_code == 422

    project_id = identity_client.post(
        "/api/projects", json={"projectName": "Depot"}, headers=_auth_header(token)
    ).json()["id"]
    task_id = identity_client.post(
        "/api/tasks",
        json={"projectId": project_id, "kind": "REBAR"},
        headers=_auth_header(token),
    ).json()["id"]

    removed = identity_client.delete(f"/api/identity/technicians/{tech_id}", headers=_auth_header(token))
    assert removed.status_code == 200
    assert removed.json()["isActive"] is False

    assign = identity_client.put(
        f"/api/tasks/{task_id}/assign",
        json={"technicianId": tech_id},
        headers=_auth_header(token),
    )
    assert assign.status_code == 404
    listed = identity_client.get("/api/identity/technicians", headers=_auth_header(token)).json()
    assert [user["email"] for user in listed] == ["taken@acme.test"]
    login = identity_client.post(
        "/api/identity/dev-login",
        json={"tenantId": tenant_id, "email": "prime@acme.test", "password": "new-pass"},
    )
    assert login.status_code == 401

    with Session(db.engine) as session:
        actions = session.exec(
            select(AuditLog.action).where(col(AuditLog.action).like("identity.technician.%"))
        ).all()
    assert "identity.technician.deactivate" in actions
