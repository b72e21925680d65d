from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlmodel import SQLModel, create_engine

from app import main as app_main
from app.infra import audit, db


@pytest.fixture()
def work_package_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "work_packages_test.db"
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


def _login(client: TestClient, tenant_id: str, email: str, password: str) -> str:
    response = client.post(
        "/api/identity/dev-login",
        json={"tenantId": tenant_id, "email": email, "password": password},
    )
    assert response.status_code == 200
    return response.json()["access_token"]


def _setup(client: TestClient, name: str) -> dict[str, str]:
    tenant = client.post("/api/identity/tenants", json={"name": name})
    assert tenant.status_code == 201
    tenant_id = tenant.json()["id"]
    bootstrap = client.post(
        "/api/identity/bootstrap-admin",
        json={"tenantId": tenant_id, "email": f"admin@{name}.test", "password": "admin-pass"},
    )
    assert bootstrap.status_code == 201
    admin_token = _login(client, tenant_id, f"admin@{name}.test", "admin-pass")
    tech = client.post(
        "/api/identity/users",
        json={"email": f"tech@{name}.test", "password": "tech-pass", "name": "Tech One"},
        headers=_auth_header(admin_token),
    )
    assert tech.status_code == 201
    project = client.post("/api/projects", json={"projectName": "Garage"}, headers=_auth_header(admin_token))
    assert project.status_code == 201
    return {
        "tenant_id": tenant_id,
        "admin_token": admin_token,
        "tech_id": tech.json()["id"],
        "tech_token": _login(client, tenant_id, f"tech@{name}.test", "tech-pass"),
        "project_id": project.json()["id"],
    }


def _create_work_package(client: TestClient, ctx: dict[str, str], assigned_to: str | None = None) -> dict[str, str]:
    response = client.post(
        "/api/workpackages",
        json={"projectId": ctx["project_id"], "name": "Level 2 slab", "assignedTo": assigned_to},
        headers=_auth_header(ctx["admin_token"]),
    )
    assert response.status_code == 201
    return response.json()


def test_work_package_compressive_strength_report_is_tenant_stamped(work_package_client: TestClient) -> None:
    ctx = _setup(work_package_client, "acme")
    work_package = _create_work_package(work_package_client, ctx, assigned_to=ctx["tech_id"])
    assert work_package["tenantId"] == ctx["tenant_id"]
    assert work_package["type"] == "WP1"
    assert work_package["status"] == "Draft"

    missing = work_package_client.get(
        f"/api/workpackages/{work_package['id']}/compressive-strength",
        headers=_auth_header(ctx["tech_token"]),
    )
    assert missing.status_code == 404

    saved = work_package_client.post(
        f"/api/workpackages/{work_package['id']}/compressive-strength",
        json={"slumpMeasured": "5", "specStrength": "4000", "tenantId": "forged"},
        headers=_auth_header(ctx["tech_token"]),
    )
    assert saved.status_code == 200
    body = saved.json()
    assert body["tenantId"] == ctx["tenant_id"]
    assert body["workPackageId"] == work_package["id"]
    assert body["taskId"] is None
    assert body["specStrengthDays"] == 28
    assert body["lastEditedByName"] == "Tech One"

    fetched = work_package_client.get(
        f"/api/workpackages/{work_package['id']}/compressive-strength",
        headers=_auth_header(ctx["admin_token"]),
    )
    assert fetched.status_code == 200
    assert fetched.json()["specStrength"] == "4000"


def test_work_packages_are_scoped_to_tenant_and_assignee(work_package_client: TestClient) -> None:
    acme = _setup(work_package_client, "acme")
    globex = _setup(work_package_client, "globex")
    unassigned = _create_work_package(work_package_client, acme)

    other_tenant = work_package_client.get(
        f"/api/workpackages/{unassigned['id']}",
        headers=_auth_header(globex["admin_token"]),
    )
    assert other_tenant.status_code == 404
    foreign_write = work_package_client.post(
        f"/api/workpackages/{unassigned['id']}/compressive-strength",
        json={"remarks": "x"},
        headers=_auth_header(globex["admin_token"]),
    )
    assert foreign_write.status_code == 404
    not_assigned = work_package_client.get(
        f"/api/workpackages/{unassigned['id']}",
        headers=_auth_header(acme["tech_token"]),
    )
    assert not_assigned.status_code == 403

    foreign_project = work_package_client.post(
        "/api/workpackages",
        json={"projectId": globex["project_id"], "name": "Stolen"},
        headers=_auth_header(acme["admin_token"]),
    )
    assert foreign_project.status_code == 404
    by_technician = work_package_client.post(
        "/api/workpackages",
        json={"projectId": acme["project_id"], "name": "Nope"},
        headers=_auth_header(acme["tech_token"]),
    )
    assert by_technician.status_code == 403
