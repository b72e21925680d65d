from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlmodel import SQLModel, create_engine

from app import main as app_main
from app.infra import audit, db
from app.services.notification_service import NotificationDispatcher, NotificationIntent


@pytest.fixture()
def notifications_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "notifications_test.db"
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


def _setup(client: TestClient) -> dict[str, str]:
    tenant = client.post("/api/identity/tenants", json={"name": "acme"})
    assert tenant.status_code == 201
    tenant_id = tenant.json()["id"]
    bootstrap = client.post(
        "/api/identity/bootstrap-admin",
        json={"tenantId": tenant_id, "email": "admin@acme.test", "password": "admin-pass"},
    )
    assert bootstrap.status_code == 201
    admin_token = _login(client, tenant_id, "admin@acme.test", "admin-pass")
    tech = client.post(
        "/api/identity/users",
        json={"email": "tech@acme.test", "password": "tech-pass", "name": "Tech One"},
        headers=_auth_header(admin_token),
    )
    assert tech.status_code == 201
    project = client.post("/api/projects", json={"projectName": "Depot"}, headers=_auth_header(admin_token))
    assert project.status_code == 201
    return {
        "tenant_id": tenant_id,
        "admin_id": bootstrap.json()["id"],
        "admin_token": admin_token,
        "tech_id": tech.json()["id"],
        "tech_token": _login(client, tenant_id, "tech@acme.test", "tech-pass"),
        "project_id": project.json()["id"],
        "project_number": project.json()["projectNumber"],
    }


def _assign_tasks(client: TestClient, ctx: dict[str, str], count: int) -> list[str]:
    task_ids = []
    for _ in range(count):
        response = client.post(
            "/api/tasks",
            json={"projectId": ctx["project_id"], "kind": "REBAR", "assignedTechnicianId": ctx["tech_id"]},
            headers=_auth_header(ctx["admin_token"]),
        )
        assert response.status_code == 201
        task_ids.append(response.json()["id"])
    return task_ids


def test_notifications_list_newest_first_with_project_details(notifications_client: TestClient) -> None:
    ctx = _setup(notifications_client)
    task_ids = _assign_tasks(notifications_client, ctx, 2)

    response = notifications_client.get("/api/notifications", headers=_auth_header(ctx["tech_token"]))
    assert response.status_code == 200
    items = response.json()
    assert [item["relatedTaskId"] for item in items] == list(reversed(task_ids))
    assert all(item["projectNumber"] == ctx["project_number"] for item in items)
    assert all(item["projectName"] == "Depot" for item in items)
    assert all(item["isRead"] is False and item["type"] == "info" for item in items)
    assert items[0]["tenantId"] == ctx["tenant_id"]

    limited = notifications_client.get(
        "/api/notifications",
        params={"limit": 1},
        headers=_auth_header(ctx["tech_token"]),
    )
    assert len(limited.json()) == 1


def test_mark_read_and_unread_count(notifications_client: TestClient) -> None:
    ctx = _setup(notifications_client)
    _assign_tasks(notifications_client, ctx, 3)

    count = notifications_client.get("/api/notifications/unread-count", headers=_auth_header(ctx["tech_token"]))
    assert count.json() == {"count": 3}

    items = notifications_client.get("/api/notifications", headers=_auth_header(ctx["tech_token"])).json()
    marked = notifications_client.put(
        f"/api/notifications/{items[0]['id']}/read",
        headers=_auth_header(ctx["tech_token"]),
    )
    assert marked.status_code == 200
    assert marked.json()["isRead"] is True

    unread = notifications_client.get(
        "/api/notifications",
        params={"unread_only": True},
        headers=_auth_header(ctx["tech_token"]),
    )
    assert len(unread.json()) == 2
    count = notifications_client.get("/api/notifications/unread-count", headers=_auth_header(ctx["tech_token"]))
    assert count.json() == {"count": 2}

    cleared = notifications_client.put("/api/notifications/mark-all-read", headers=_auth_header(ctx["tech_token"]))
    assert cleared.status_code == 200
    assert cleared.json() == {"updated": 2}
    count = notifications_client.get("/api/notifications/unread-count", headers=_auth_header(ctx["tech_token"]))
    assert count.json() == {"count": 0}


def test_cannot_mark_someone_elses_notification(notifications_client: TestClient) -> None:
    ctx = _setup(notifications_client)
    _assign_tasks(notifications_client, ctx, 1)
    items = notifications_client.get("/api/notifications", headers=_auth_header(ctx["tech_token"])).json()

    response = notifications_client.put(
        f"/api/notifications/{items[0]['id']}/read",
        headers=_auth_header(ctx["admin_token"]),
    )
    assert response.status_code == 404
    missing = notifications_client.put(
        "/api/notifications/does-not-exist/read",
        headers=_auth_header(ctx["tech_token"]),
    )
    assert missing.status_code == 404
    assert notifications_client.get("/api/notifications", headers=_auth_header(ctx["admin_token"])).json() == []


def test_dispatch_skips_failed_recipient_and_continues(
    notifications_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ctx = _setup(notifications_client)
    second_admin = notifications_client.post(
        "/api/identity/users",
        json={"email": "lead@acme.test", "password": "lead-pass", "name": "Lead", "role": "ADMIN"},
        headers=_auth_header(ctx["admin_token"]),
    )
    assert second_admin.status_code == 201
    lead_token = _login(notifications_client, ctx["tenant_id"], "lead@acme.test", "lead-pass")

    original = NotificationDispatcher._deliver

    def _flaky_deliver(self: NotificationDispatcher, intent: NotificationIntent, recipient_id: str) -> object:
        if recipient_id == ctx["admin_id"]:
            raise RuntimeError("mailbox full")
        return original(self, intent, recipient_id)

    monkeypatch.setattr(NotificationDispatcher, "_deliver", _flaky_deliver)
    delivered = NotificationDispatcher().dispatch(
        [
            NotificationIntent(
                message="Weekly review is due",
                tenant_id=ctx["tenant_id"],
                related_project_id=ctx["project_id"],
                to_tenant_admins=True,
                type="unknown",
            )
        ]
    )
    assert delivered == 1

    lead_items = notifications_client.get("/api/notifications", headers=_auth_header(lead_token)).json()
    assert [item["message"] for item in lead_items] == ["Weekly review is due"]
    assert lead_items[0]["type"] == "info"
    assert notifications_client.get("/api/notifications", headers=_auth_header(ctx["admin_token"])).json() == []


def test_dispatch_without_recipient_delivers_nothing(notifications_client: TestClient) -> None:
    ctx = _setup(notifications_client)
    delivered = NotificationDispatcher().dispatch(
        [NotificationIntent(message="nobody", tenant_id=ctx["tenant_id"])]
    )
    assert delivered == 0
