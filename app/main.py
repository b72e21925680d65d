from __future__ import annotations

from fastapi import FastAPI, HTTPException

from app.api.routers import identity, notifications, projects, reports, schedule, tasks, work_packages
from app.infra.audit import AuditMiddleware
from app.infra.db import check_db_ready
from app.infra.logging import setup_logging

setup_logging()

app = FastAPI(
    title="field-tracker",
    description="Task lifecycle engine for field testing projects.",
    version="0.1.0",
)

app.add_middleware(AuditMiddleware)

app.include_router(identity.router, prefix="/api/identity", tags=["identity"])
app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])
app.include_router(reports.router, prefix="/api/reports", tags=["reports"])
app.include_router(schedule.router, prefix="/api/schedule", tags=["schedule"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
app.include_router(work_packages.router, prefix="/api/workpackages", tags=["workpackages"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
