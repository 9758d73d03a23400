import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

from pythonjsonlogger import jsonlogger

from ssbindex.config import settings


# Context variable holding the id of the indexing batch currently running
batch_id_ctx: ContextVar[Optional[str]] = ContextVar("batch_id", default=None)


def get_batch_id() -> Optional[str]:
    """Get the current batch ID from context."""
    return batch_id_ctx.get()


@contextmanager
def batch_context(batch_id: Optional[str] = None) -> Iterator[str]:
    """
    Tag every log record emitted inside the block with a batch id.

    Args:
        batch_id: Explicit id to use; a random UUID is generated when omitted

    Yields:
        The batch id in effect
    """
    batch_id = batch_id or str(uuid.uuid4())
    token = batch_id_ctx.set(batch_id)
    try:
        yield batch_id
    finally:
        batch_id_ctx.reset(token)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter to ensure ISO-8601 timestamps and batch_id."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get('ts'):
            now = datetime.now(timezone.utc)
            log_record['ts'] = now.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
        log_record['level'] = record.levelname

        if 'batch_id' not in log_record:
            batch_id = batch_id_ctx.get()
            if batch_id:
                log_record['batch_id'] = batch_id


def setup_logging(log_level: Optional[str] = None):
    """
    Setup structured JSON logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL),
            settings.LOG_LEVEL when omitted
    """
    log_level = log_level or settings.LOG_LEVEL
    logger = logging.getLogger()
    logger.setLevel(log_level.upper())

    # Remove existing handlers
    logger.handlers = []

    json_handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        '%(ts)s %(level)s %(name)s %(message)s'
    )
    json_handler.setFormatter(formatter)

    logger.addHandler(json_handler)

    return logger
