#!/usr/bin/env python3
"""Alembic bootstrap for databases created before migrations existed.

If the documents table already exists but alembic_version is missing, stamp
the baseline revision before normal upgrades.
"""

from __future__ import annotations

import os
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from printflow.config import settings
from printflow.database import build_engine


BASELINE_REVISION = os.getenv("ALEMBIC_BASELINE_REVISION", "001")
ALEMBIC_INI = Path(__file__).resolve().parent / "alembic.ini"


def alembic_config(database_url: str) -> Config:
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("sqlalchemy.url", database_url)
    # Keep the caller's logging setup.
    config.attributes["configure_logger"] = False
    return config


def stamp_if_unversioned(database_url: str) -> bool:
    """Stamp the baseline when the schema predates alembic; True if stamped."""
    engine = build_engine(database_url)
    try:
        inspector = inspect(engine)
        has_alembic_version = inspector.has_table("alembic_version")
        has_documents = inspector.has_table("documents")
    finally:
        engine.dispose()

    if has_documents and not has_alembic_version:
        print(f"Existing schema detected without alembic_version. Stamping baseline: {BASELINE_REVISION}")
        command.stamp(alembic_config(database_url), BASELINE_REVISION)
        return True
    print("Alembic bootstrap check: no baseline stamp required")
    return False


def main() -> int:
    stamp_if_unversioned(settings.DATABASE_URL)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
