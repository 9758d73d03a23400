"""
Migration v1: Create messages table

The log offset (flume_seq) is the primary key in this revision.
"""
import logging

from sqlalchemy import text
from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

VERSION = "20191118201151"

STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS messages (
      flume_seq BIGINT PRIMARY KEY NOT NULL,
      seq INTEGER NOT NULL,
      key_id INTEGER UNIQUE NOT NULL,
      author_id INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS messages_author_id_index ON messages(author_id)",
    "CREATE INDEX IF NOT EXISTS messages_author_id_seq_index ON messages(author_id, seq)",
]


def upgrade(connection: Connection):
    """Create messages table keyed by flume_seq"""
    for statement in STATEMENTS:
        connection.execute(text(statement))
    logger.info("Migration v1: Created messages table")


def downgrade(connection: Connection):
    """Drop messages table"""
    connection.execute(text("DROP INDEX IF EXISTS messages_author_id_seq_index"))
    connection.execute(text("DROP INDEX IF EXISTS messages_author_id_index"))
    connection.execute(text("DROP TABLE IF EXISTS messages"))
    logger.info("Migration v1 downgrade: Dropped messages table")
