from __future__ import annotations

import os
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import create_engine

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "postgresql+psycopg://tracker:tracker@db:5432/field_tracker",
)
DB_ECHO = os.getenv("DB_ECHO", "false").lower() in {"1", "true", "yes"}


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "echo": DB_ECHO}
    return {"pool_pre_ping": True, "echo": DB_ECHO}


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))


def get_engine() -> Engine:
    return engine


def check_db_ready() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
