"""
Tests for feeding log entries into the index.

Tests cover:
- Indexing a whole log from an empty index
- Resuming after the latest indexed offset
- Skipping unparseable entries
- Chunked commits and rollback of a failing chunk
- Unreadable resume point
- Rebuilding the index
- Indexing metrics
"""

import json

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ssbindex.exceptions import SqliteAppendError, UnableToGetLatestSequence
from ssbindex.indexer import LogEntry, rebuild_indexes, update_indexes_from_log
from ssbindex.storage import (
    find_feed_flume_seqs_newer_than,
    find_feed_latest_seq,
    find_message_flume_seq_by_key,
    get_latest,
)


ALICE = "@QlCTpvY7p9ty2yOFrv1WU1AE88aoQc4Y7wYal7PFc+w=.ed25519"
BOB = "@vt8uK0++cpFioCCBeB3p3jdx4RIdQYJOL/imN1Hv0Wk=.ed25519"


def ssb_entry(key: str, author: str, sequence: int) -> bytes:
    return json.dumps({
        "key": key,
        "value": {"author": author, "sequence": sequence, "content": {"type": "post"}},
    }).encode("utf-8")


class MemoryLog:
    """In-memory stand-in for an offset log with 100-byte records."""

    def __init__(self):
        self.entries = []

    def append(self, data: bytes) -> int:
        offset = len(self.entries) * 100
        self.entries.append(LogEntry(offset, data))
        return offset

    def iter_at_offset(self, offset: int):
        return iter([entry for entry in self.entries if entry.offset >= offset])


def entries_total(result: str) -> float:
    value = REGISTRY.get_sample_value("ssbindex_log_entries_total", {"result": result})
    return value or 0.0


@pytest.fixture
def log():
    log = MemoryLog()
    log.append(ssb_entry("%a1=.sha256", ALICE, 1))
    log.append(ssb_entry("%b1=.sha256", BOB, 1))
    log.append(ssb_entry("%a2=.sha256", ALICE, 2))
    return log


class TestUpdateIndexes:
    """Test incremental indexing."""

    def test_index_whole_log(self, db, log):
        indexed = update_indexes_from_log(db, log)

        assert indexed == 3
        assert get_latest(db) == 200
        assert find_message_flume_seq_by_key(db, "%b1=.sha256") == 100
        assert find_feed_flume_seqs_newer_than(db, ALICE, 0) == [0, 200]

    def test_nothing_new_is_noop(self, db, log):
        update_indexes_from_log(db, log)

        assert update_indexes_from_log(db, log) == 0
        assert get_latest(db) == 200

    def test_resume_after_latest(self, db, log):
        update_indexes_from_log(db, log)
        log.append(ssb_entry("%a3=.sha256", ALICE, 3))
        log.append(ssb_entry("%b2=.sha256", BOB, 2))

        assert update_indexes_from_log(db, log) == 2
        assert get_latest(db) == 400
        assert find_feed_latest_seq(db, ALICE) == 3
        assert find_feed_latest_seq(db, BOB) == 2

    def test_first_entry_at_offset_zero_not_reindexed(self, db):
        """A latest offset of 0 means one entry is indexed, not none."""
        log = MemoryLog()
        log.append(ssb_entry("%a1=.sha256", ALICE, 1))
        assert update_indexes_from_log(db, log) == 1
        assert get_latest(db) == 0

        log.append(ssb_entry("%a2=.sha256", ALICE, 2))
        assert update_indexes_from_log(db, log) == 1
        assert find_feed_flume_seqs_newer_than(db, ALICE, 0) == [0, 100]

    def test_unparseable_entries_skipped(self, db, log):
        log.append(b"\x00" * 100)
        log.append(ssb_entry("%a3=.sha256", ALICE, 3))

        assert update_indexes_from_log(db, log) == 4
        assert get_latest(db) == 400
        assert find_feed_latest_seq(db, ALICE) == 3

    def test_small_chunks(self, db, log):
        assert update_indexes_from_log(db, log, chunk_size=1) == 3
        assert get_latest(db) == 200

    def test_failing_chunk_rolled_back(self, db, log):
        # Same key as the first entry violates keys uniqueness in messages
        log.append(ssb_entry("%a1=.sha256", ALICE, 1))

        with pytest.raises(SqliteAppendError) as exc_info:
            update_indexes_from_log(db, log, chunk_size=2)

        assert isinstance(exc_info.value.__cause__, IntegrityError)
        # First chunk committed, second chunk rolled back
        assert get_latest(db) == 100

    def test_non_database_failure_rolled_back(self, db, log):
        """An offset SQLite cannot store fails the chunk without poisoning the session."""
        log.entries.append(LogEntry(2**70, ssb_entry("%a3=.sha256", ALICE, 3)))

        with pytest.raises(SqliteAppendError) as exc_info:
            update_indexes_from_log(db, log, chunk_size=2)

        assert exc_info.value.__cause__ is not None
        assert get_latest(db) == 100
        assert find_feed_latest_seq(db, ALICE) == 1

    def test_missing_schema_reported(self, index_engine, log):
        with Session(bind=index_engine) as db:
            with pytest.raises(UnableToGetLatestSequence) as exc_info:
                update_indexes_from_log(db, log)

        assert isinstance(exc_info.value.__cause__, OperationalError)


class TestRebuildIndexes:
    """Test dropping and rebuilding the index."""

    def test_rebuild(self, migrated_engine, log):
        with Session(bind=migrated_engine) as db:
            update_indexes_from_log(db, log)

        assert rebuild_indexes(migrated_engine, log) == 3

        with Session(bind=migrated_engine) as db:
            assert get_latest(db) == 200
            assert find_feed_latest_seq(db, ALICE) == 2

    def test_rebuild_empty_database(self, index_engine, log):
        assert rebuild_indexes(index_engine, log) == 3


class TestIndexMetrics:
    """Test that indexing outcomes are counted."""

    def test_entries_counted(self, db, log):
        log.append(b"\x00" * 100)
        indexed_before = entries_total("indexed")
        skipped_before = entries_total("skipped")

        update_indexes_from_log(db, log)

        assert entries_total("indexed") - indexed_before == 3
        assert entries_total("skipped") - skipped_before == 1
