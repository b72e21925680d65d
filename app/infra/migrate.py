from __future__ import annotations

import os
import sys

import structlog
from alembic import command
from alembic.config import Config

from app.infra.logging import setup_logging

ALEMBIC_CONFIG = os.getenv("ALEMBIC_CONFIG", "alembic.ini")

logger = structlog.get_logger(__name__)


def run_upgrade(revision: str = "head") -> None:
    config = Config(ALEMBIC_CONFIG)
    logger.info("migrate.upgrade_started", revision=revision, config=ALEMBIC_CONFIG)
    command.upgrade(config, revision)
    logger.info("migrate.upgrade_finished", revision=revision)


if __name__ == "__main__":
    setup_logging()
    run_upgrade(sys.argv[1] if len(sys.argv) > 1 else "head")
