from __future__ import annotations

import logging

from sqlalchemy import text
from sqlmodel import SQLModel

from sleep_competition.db import tables  # noqa: F401  registers table metadata
from sleep_competition.db.session import get_engine

logger = logging.getLogger(__name__)


def tables_to_reset() -> list[str]:
    # children first
    return [
        "reported_dates",
        "scores",
        "competitions",
    ]


def migrate() -> None:
    """Create missing tables. Safe to run on every boot, never drops data."""
    logger.info("creating tables if they do not exist")
    SQLModel.metadata.create_all(get_engine())
    logger.info("database migration complete")


def reset_db() -> None:
    """Drop all tables and recreate from scratch. Destroys all data."""
    logger.warning("dropping all competition tables")
    with get_engine().begin() as conn:
        for table in tables_to_reset():
            conn.execute(text(f"DROP TABLE IF EXISTS {table}"))

    migrate()
    logger.info("database reset complete")


if __name__ == "__main__":
    import sys

    from sleep_competition.app import configure_logging
    from sleep_competition.config.runtime import RuntimeSettings

    configure_logging(RuntimeSettings.from_env())
    if "--reset" in sys.argv:
        reset_db()
    else:
        migrate()
    sys.exit(0)
