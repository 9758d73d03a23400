"""
Migration v3: Add authors and keys lookup tables

messages.author_id and messages.key_id point at these rows.
"""
import logging

from sqlalchemy import text
from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

VERSION = "20191125120100"

STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS authors (
      id INTEGER PRIMARY KEY,
      author TEXT UNIQUE NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS keys (
      id INTEGER PRIMARY KEY,
      key TEXT UNIQUE NOT NULL
    )
    """,
]


def upgrade(connection: Connection):
    """Create authors and keys tables"""
    for statement in STATEMENTS:
        connection.execute(text(statement))
    logger.info("Migration v3: Created authors and keys tables")


def downgrade(connection: Connection):
    """Drop authors and keys tables"""
    connection.execute(text("DROP TABLE IF EXISTS keys"))
    connection.execute(text("DROP TABLE IF EXISTS authors"))
    logger.info("Migration v3 downgrade: Dropped authors and keys tables")
