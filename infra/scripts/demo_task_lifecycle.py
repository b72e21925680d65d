from __future__ import annotations

import asyncio
import os
from uuid import uuid4

import httpx
from demo_common import assert_status, auth_headers, bootstrap_admin, create_user, wait_ok


async def _set_status(client: httpx.AsyncClient, token: str, task_id: str, status: str, **extra: str) -> None:
    response = await client.put(
        f"/api/tasks/{task_id}/status",
        json={"status": status, **extra},
        headers=auth_headers(token),
    )
    assert_status(response, 200)


async def _run() -> None:
    base_url = os.getenv("APP_BASE_URL", "http://app:8000").rstrip("/")
    timeout = httpx.Timeout(20.0)
    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        await wait_ok(client, "/healthz")
        await wait_ok(client, "/readyz")

        tenant_id, admin_token = await bootstrap_admin(client, "lifecycle")
        run_id = uuid4().hex[:8]
        tech_id, tech_token = await create_user(
            client,
            admin_token,
            tenant_id,
            f"tech-{run_id}@demo.test",
            name="Demo Technician",
        )

        project_resp = await client.post(
            "/api/projects",
            json={"projectName": f"lifecycle-{run_id}", "customerEmails": ["pm@demo.test"]},
            headers=auth_headers(admin_token),
        )
        assert_status(project_resp, 201)
        project = project_resp.json()

        task_resp = await client.post(
            "/api/tasks",
            json={
                "projectId": project["id"],
                "kind": "DENSITY_MEASUREMENT",
                "assignedTechnicianId": tech_id,
                "fieldStartDate": "2025-03-10",
                "fieldEndDate": "2025-03-15",
            },
            headers=auth_headers(admin_token),
        )
        assert_status(task_resp, 201)
        task_id = task_resp.json()["id"]

        today_resp = await client.get(
            "/api/schedule/today",
            params={"on": "2025-03-12"},
            headers=auth_headers(tech_token),
        )
        assert_status(today_resp, 200)
        if task_id not in {item["id"] for item in today_resp.json()}:
            raise RuntimeError(f"task missing from today view: {today_resp.json()}")

        report_resp = await client.post(
            f"/api/reports/density/task/{task_id}",
            json={"clientName": "Demo Client", "densSpecPercent": "95", "testRows": [{"testNo": 1}]},
            headers=auth_headers(tech_token),
        )
        assert_status(report_resp, 200)
        if report_resp.json()["tenantId"] != tenant_id:
            raise RuntimeError(f"report not stamped with task tenant: {report_resp.json()}")

        complete_resp = await client.post(
            f"/api/tasks/{task_id}/mark-field-complete",
            headers=auth_headers(tech_token),
        )
        assert_status(complete_resp, 200)

        await _set_status(client, tech_token, task_id, "IN_PROGRESS_TECH")
        await _set_status(client, tech_token, task_id, "READY_FOR_REVIEW")

        reject_resp = await client.post(
            f"/api/tasks/{task_id}/reject",
            json={"rejectionRemarks": "Add moisture readings", "resubmissionDueDate": "2025-03-20"},
            headers=auth_headers(admin_token),
        )
        assert_status(reject_resp, 200)

        await _set_status(client, tech_token, task_id, "IN_PROGRESS_TECH")
        await _set_status(client, tech_token, task_id, "READY_FOR_REVIEW")

        approve_resp = await client.post(
            f"/api/tasks/{task_id}/approve",
            headers=auth_headers(admin_token),
        )
        assert_status(approve_resp, 200)
        if approve_resp.json()["status"] != "APPROVED":
            raise RuntimeError(f"unexpected approval payload: {approve_resp.json()}")

        history_resp = await client.get(
            f"/api/tasks/{task_id}/history",
            headers=auth_headers(admin_token),
        )
        assert_status(history_resp, 200)
        actions = {item["actionType"] for item in history_resp.json()}
        required_actions = {"SUBMITTED", "REJECTED", "APPROVED", "STATUS_CHANGED"}
        if not required_actions.issubset(actions):
            raise RuntimeError(f"history missing required actions: actions={actions}")

        notifications_resp = await client.get("/api/notifications", headers=auth_headers(admin_token))
        assert_status(notifications_resp, 200)
        if len(notifications_resp.json()) < 2:
            raise RuntimeError("admin should be notified of both submissions")

        gaps_resp = await client.get("/api/tasks/history-gaps", headers=auth_headers(admin_token))
        assert_status(gaps_resp, 200)
        if gaps_resp.json():
            raise RuntimeError(f"history gaps detected: {gaps_resp.json()}")

    print("demo_task_lifecycle: ok")


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
