"""
Migration v2: Give messages a surrogate id primary key

flume_seq stays UNIQUE NOT NULL. SQLite cannot add a primary key column
in place, so an existing v1 table is renamed aside, recreated and its rows
copied across in flume_seq order.
"""
import logging

from sqlalchemy import text
from sqlalchemy.engine import Connection

from ssbindex.migrations import v1_create_messages

logger = logging.getLogger(__name__)

VERSION = "20191125120000"

STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS messages (
      id INTEGER PRIMARY KEY,
      flume_seq BIGINT UNIQUE NOT NULL,
      seq INTEGER NOT NULL,
      key_id INTEGER UNIQUE NOT NULL,
      author_id INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS messages_author_id_index ON messages(author_id)",
    "CREATE INDEX IF NOT EXISTS messages_author_id_seq_index ON messages(author_id, seq)",
]


def message_columns(connection: Connection) -> list:
    """Column names of the messages table, empty if it does not exist"""
    rows = connection.execute(text("PRAGMA table_info(messages)"))
    return [row[1] for row in rows]


def _move_messages_aside(connection: Connection, name: str):
    # Index names are global in SQLite and survive a rename
    connection.execute(text("DROP INDEX IF EXISTS messages_author_id_seq_index"))
    connection.execute(text("DROP INDEX IF EXISTS messages_author_id_index"))
    connection.execute(text(f"ALTER TABLE messages RENAME TO {name}"))


def upgrade(connection: Connection):
    """Recreate messages with an id column, keeping existing rows"""
    columns = message_columns(connection)

    if not columns or "id" in columns:
        for statement in STATEMENTS:
            connection.execute(text(statement))
        logger.info("Migration v2: Created messages table")
        return

    _move_messages_aside(connection, "messages_v1")
    for statement in STATEMENTS:
        connection.execute(text(statement))
    copied = connection.execute(text("""
        INSERT INTO messages (flume_seq, seq, key_id, author_id)
        SELECT flume_seq, seq, key_id, author_id FROM messages_v1
        ORDER BY flume_seq
    """)).rowcount
    connection.execute(text("DROP TABLE messages_v1"))
    logger.info(f"Migration v2: Added id column to messages, copied {copied} rows")


def downgrade(connection: Connection):
    """Restore flume_seq as the primary key of messages"""
    if "id" not in message_columns(connection):
        return

    _move_messages_aside(connection, "messages_v2")
    for statement in v1_create_messages.STATEMENTS:
        connection.execute(text(statement))
    connection.execute(text("""
        INSERT INTO messages (flume_seq, seq, key_id, author_id)
        SELECT flume_seq, seq, key_id, author_id FROM messages_v2
    """))
    connection.execute(text("DROP TABLE messages_v2"))
    logger.info("Migration v2 downgrade: Removed id column from messages")
