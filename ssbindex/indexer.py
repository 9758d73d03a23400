"""
Feeds entries of an append-only log into the index.

The log is any object with an `iter_at_offset(offset)` method yielding
entries that have `offset` and `data` attributes (see LogEntry). Indexing
resumes after the highest offset already in the index, and each chunk of
entries is committed in its own transaction.
"""

import logging
import time
from itertools import islice
from typing import Iterable, Iterator, List, NamedTuple, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ssbindex.config import settings
from ssbindex.exceptions import SqliteAppendError, UnableToGetLatestSequence
from ssbindex.logging_utils import batch_context
from ssbindex.metrics import record_chunk, record_index_error, record_log_entry
from ssbindex.migrations import apply_migrations, rollback_migrations
from ssbindex.storage import append_item, get_latest

logger = logging.getLogger(__name__)


class LogEntry(NamedTuple):
    offset: int
    data: bytes


def _chunked(entries: Iterable, size: int) -> Iterator[List]:
    iterator = iter(entries)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


def update_indexes_from_log(db: Session, log, chunk_size: Optional[int] = None) -> int:
    """
    Index every log entry after the latest one already indexed.

    Args:
        db: Database session; committed once per chunk
        log: Source log exposing iter_at_offset(offset)
        chunk_size: Entries per transaction, settings.INDEX_CHUNK_SIZE by default

    Returns:
        Number of messages indexed (skipped entries not included)

    Raises:
        UnableToGetLatestSequence: The resume point could not be read
        SqliteAppendError: A chunk failed; it is rolled back, earlier chunks stay
    """
    chunk_size = chunk_size or settings.INDEX_CHUNK_SIZE

    try:
        latest = get_latest(db)
    except SQLAlchemyError as e:
        logger.error(f"Failed to read latest indexed offset: {e}")
        raise UnableToGetLatestSequence() from e

    # An empty index starts from the first entry. Otherwise the entry at
    # the latest offset is already indexed and is skipped.
    if latest is None:
        entries = log.iter_at_offset(0)
    else:
        entries = islice(log.iter_at_offset(latest), 1, None)

    total = 0
    with batch_context():
        logger.info(f"Indexing log from offset {latest if latest is not None else 0}")

        for chunk in _chunked(entries, chunk_size):
            started = time.perf_counter()
            indexed = 0
            try:
                for entry in chunk:
                    if append_item(db, entry.offset, entry.data):
                        indexed += 1
                db.commit()
            except Exception as e:
                db.rollback()
                record_index_error()
                logger.error(f"Failed to index chunk starting at offset {chunk[0].offset}: {e}")
                raise SqliteAppendError() from e

            record_chunk(time.perf_counter() - started)
            record_log_entry("indexed", indexed)
            record_log_entry("skipped", len(chunk) - indexed)

            total += indexed
            logger.debug(f"Committed chunk of {len(chunk)} entries, {indexed} indexed")

        logger.info(f"Indexed {total} messages")

    return total


def rebuild_indexes(bind: Engine, log, chunk_size: Optional[int] = None) -> int:
    """
    Drop the whole index and rebuild it from the start of the log.

    Returns:
        Number of messages indexed
    """
    logger.warning("Rebuilding index from scratch")
    rollback_migrations(bind)
    apply_migrations(bind)

    with Session(bind=bind) as db:
        return update_indexes_from_log(db, log, chunk_size)
