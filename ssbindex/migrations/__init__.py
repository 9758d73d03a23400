"""
Schema revisions for the index database.

Each revision module exposes VERSION, STATEMENTS, upgrade(connection) and
downgrade(connection). Applied versions are recorded in the
__schema_migrations table.
"""
import logging
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ssbindex.migrations import (
    v1_create_messages,
    v2_add_messages_id,
    v3_create_authors_and_keys,
)

logger = logging.getLogger(__name__)

# Applied in this order
MIGRATIONS = [
    v1_create_messages,
    v2_add_messages_id,
    v3_create_authors_and_keys,
]

VERSION_TABLE = "__schema_migrations"


def _ensure_version_table(engine: Engine):
    with engine.begin() as connection:
        connection.execute(text(f"""
            CREATE TABLE IF NOT EXISTS {VERSION_TABLE} (
              version VARCHAR(50) PRIMARY KEY NOT NULL,
              run_on TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """))


def applied_migrations(engine: Engine) -> List[str]:
    """
    Versions recorded as applied, oldest first.

    Read-only: a database without the version table has nothing applied.
    """
    with engine.connect() as connection:
        exists = connection.execute(
            text("SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name=:name"),
            {"name": VERSION_TABLE},
        ).scalar()
        if not exists:
            return []
        rows = connection.execute(text(f"SELECT version FROM {VERSION_TABLE} ORDER BY version"))
        return [row[0] for row in rows]


def pending_migrations(engine: Engine) -> List[str]:
    """Versions not applied yet, in the order they would run"""
    applied = set(applied_migrations(engine))
    return [m.VERSION for m in MIGRATIONS if m.VERSION not in applied]


def current_version(engine: Engine) -> Optional[str]:
    applied = applied_migrations(engine)
    return applied[-1] if applied else None


def apply_migrations(engine: Engine, target: Optional[str] = None) -> List[str]:
    """
    Apply pending revisions in order, each in its own transaction.

    Args:
        engine: Engine bound to the index database
        target: Last version to apply (inclusive); all when None

    Returns:
        Versions applied by this call; empty when the schema is current
    """
    known = [m.VERSION for m in MIGRATIONS]
    if target is not None and target not in known:
        raise ValueError(f"Unknown migration version: {target}")

    _ensure_version_table(engine)
    applied = set(applied_migrations(engine))
    ran = []

    for migration in MIGRATIONS:
        if target is not None and migration.VERSION > target:
            break
        if migration.VERSION in applied:
            continue

        logger.info(f"Applying migration {migration.VERSION}")
        with engine.begin() as connection:
            migration.upgrade(connection)
            connection.execute(
                text(f"INSERT INTO {VERSION_TABLE} (version) VALUES (:version)"),
                {"version": migration.VERSION},
            )
        ran.append(migration.VERSION)

    if ran:
        logger.info(f"Applied {len(ran)} migration(s), schema at {ran[-1]}")
    else:
        logger.debug("No pending migrations")
    return ran


def rollback_migrations(engine: Engine) -> List[str]:
    """
    Downgrade every applied revision, newest first.

    Returns:
        Versions rolled back, in the order they were undone
    """
    applied = set(applied_migrations(engine))
    undone = []

    for migration in reversed(MIGRATIONS):
        if migration.VERSION not in applied:
            continue

        logger.info(f"Rolling back migration {migration.VERSION}")
        with engine.begin() as connection:
            migration.downgrade(connection)
            connection.execute(
                text(f"DELETE FROM {VERSION_TABLE} WHERE version = :version"),
                {"version": migration.VERSION},
            )
        undone.append(migration.VERSION)

    return undone
