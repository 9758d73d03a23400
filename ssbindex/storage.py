import logging
from typing import Generator, List, Optional

from sqlalchemy import create_engine, event, text, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool

from ssbindex.config import settings
from ssbindex.exceptions import FeedNotFound, MessageNotFound

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLite engine for the index database.

    In-memory databases share one connection so every session sees the
    same schema.
    """
    kwargs = {}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool

    db_engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},
        echo=echo,
        **kwargs,
    )

    # pysqlite only opens a transaction before DML. Issue BEGIN ourselves so
    # DDL in a migration commits or rolls back as a unit.
    @event.listens_for(db_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(db_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    return db_engine


engine = create_db_engine(settings.DATABASE_URL)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> List[str]:
    """
    Bring the index schema up to date by applying pending migrations.

    Returns:
        Versions applied
    """
    from ssbindex.migrations import apply_migrations

    logger.debug(f"Initializing database with URL: {bind.url}")
    try:
        applied = apply_migrations(bind)
        logger.info("Database initialized successfully")
        return applied
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health(bind: Engine = engine) -> bool:
    """
    Check if the database is reachable and the schema is current.

    Returns:
        True if DB is healthy and fully migrated, False otherwise.
    """
    from ssbindex.migrations import pending_migrations

    logger.debug("Checking database health...")
    try:
        with bind.connect() as connection:
            connection.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

            result = connection.execute(text(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name='messages'"
            )).scalar()
            if result == 0:
                logger.error("Database schema not applied: 'messages' table not found")
                return False

        pending = pending_migrations(bind)
        if pending:
            logger.error(f"Database schema out of date, pending migrations: {pending}")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Lookup Table Functions
# =============================================================================

def find_or_create_author(db: Session, author: str) -> int:
    """
    Get the id of an author row, inserting it on first sight.

    Args:
        db: Database session
        author: Feed id, e.g. @...=.ed25519

    Returns:
        authors.id for the feed
    """
    from ssbindex.models import Author

    author_id = db.query(Author.id).filter(Author.author == author).scalar()
    if author_id is None:
        row = Author(author=author)
        db.add(row)
        db.flush()
        author_id = row.id
        logger.debug(f"Created author {author_id}: {author}")
    return author_id


def find_or_create_key(db: Session, key: str) -> int:
    """
    Get the id of a key row, inserting it on first sight.

    Args:
        db: Database session
        key: Message key, e.g. %...=.sha256

    Returns:
        keys.id for the message key
    """
    from ssbindex.models import Key

    key_id = db.query(Key.id).filter(Key.key == key).scalar()
    if key_id is None:
        row = Key(key=key)
        db.add(row)
        db.flush()
        key_id = row.id
    return key_id


def _author_id(db: Session, author: str) -> Optional[int]:
    from ssbindex.models import Author

    return db.query(Author.id).filter(Author.author == author).scalar()


# =============================================================================
# Message Repository Functions
# =============================================================================

def insert_message(
    db: Session,
    seq: int,
    flume_seq: int,
    key_id: int,
    author_id: int
):
    """
    Insert one message row. The caller owns the transaction.

    Args:
        db: Database session
        seq: Sequence number of the message in its author's feed
        flume_seq: Offset of the message in the log
        key_id: keys.id of the message key
        author_id: authors.id of the message author

    Returns:
        The flushed Message

    Raises:
        IntegrityError: flume_seq or key_id is already indexed
    """
    from ssbindex.models import Message

    message = Message(
        flume_seq=flume_seq,
        seq=seq,
        key_id=key_id,
        author_id=author_id,
    )
    db.add(message)
    db.flush()
    logger.debug(f"Inserted message flume_seq={flume_seq} author_id={author_id} seq={seq}")
    return message


def get_latest(db: Session) -> Optional[int]:
    """
    Highest log offset in the index.

    Returns:
        None when the index is empty, 0 when only the first log entry is
        indexed, the latest offset otherwise
    """
    from ssbindex.models import Message

    return db.query(func.max(Message.flume_seq)).scalar()


def find_message_flume_seq_by_key(db: Session, key: str) -> int:
    """
    Look up the log offset of a message by its key.

    Raises:
        MessageNotFound: No message with this key is indexed
    """
    from ssbindex.models import Key, Message

    row = (
        db.query(Message.flume_seq)
        .join(Key, Key.id == Message.key_id)
        .filter(Key.key == key)
        .first()
    )
    if row is None:
        logger.info(f"Message not found: {key}")
        raise MessageNotFound(key)
    return row.flume_seq


def find_message_flume_seq_by_author_and_sequence(
    db: Session,
    author: str,
    sequence: int
) -> Optional[int]:
    """
    Look up the log offset of the message at `sequence` in a feed.

    Returns:
        The offset, or None if the feed or the sequence is not indexed
    """
    from ssbindex.models import Message

    author_id = _author_id(db, author)
    if author_id is None:
        return None

    row = (
        db.query(Message.flume_seq)
        .filter(Message.author_id == author_id, Message.seq == sequence)
        .first()
    )
    return row.flume_seq if row else None


def find_feed_latest_seq(db: Session, author: str) -> Optional[int]:
    """
    Highest sequence number indexed for a feed, None for an unknown feed.
    """
    from ssbindex.models import Author, Message

    return (
        db.query(func.max(Message.seq))
        .select_from(Message)
        .join(Author, Author.id == Message.author_id)
        .filter(Author.author == author)
        .scalar()
    )


def find_feed_flume_seqs_newer_than(
    db: Session,
    author: str,
    sequence: int,
    limit: Optional[int] = None
) -> List[int]:
    """
    Log offsets of a feed's messages after `sequence`.

    Args:
        db: Database session
        author: Feed id
        sequence: Only messages with a greater seq are returned
        limit: Maximum number of offsets to return; unbounded when None

    Returns:
        Offsets ordered by seq ascending

    Raises:
        FeedNotFound: The author has never been indexed
    """
    from ssbindex.models import Message

    author_id = _author_id(db, author)
    if author_id is None:
        raise FeedNotFound(author)

    query = (
        db.query(Message.flume_seq)
        .filter(Message.author_id == author_id, Message.seq > sequence)
        .order_by(Message.seq.asc())
    )
    if limit is not None:
        query = query.limit(limit)

    flume_seqs = [row.flume_seq for row in query.all()]
    logger.debug(f"Found {len(flume_seqs)} messages newer than {sequence} for {author}")
    return flume_seqs


def append_item(db: Session, flume_seq: int, item: bytes) -> bool:
    """
    Index one log entry.

    Entries that are not valid messages (deleted records are zeroed out
    in the log) are skipped.

    Args:
        db: Database session
        flume_seq: Offset of the entry in the log
        item: Raw entry bytes (JSON)

    Returns:
        True if the entry was indexed, False if it was skipped
    """
    from ssbindex.schemas import SsbMessage

    try:
        message = SsbMessage.model_validate_json(item)
    except ValueError:
        logger.debug(f"Skipping unparseable log entry at {flume_seq}")
        return False

    key_id = find_or_create_key(db, message.key)
    author_id = find_or_create_author(db, message.value.author)
    insert_message(db, message.value.sequence, flume_seq, key_id, author_id)
    return True
