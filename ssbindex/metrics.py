"""
Prometheus metrics for the message index.

This module provides:
- Log entry counter (result)
- Chunk commit latency histogram
- Indexing error counter

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# result: indexed, skipped
log_entries_total = Counter(
    "ssbindex_log_entries_total",
    "Total log entries processed by the indexer",
    labelnames=["result"]
)

# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
chunk_latency_seconds = Histogram(
    "ssbindex_chunk_latency_seconds",
    "Time spent indexing and committing one chunk of log entries"
)

index_errors_total = Counter(
    "ssbindex_index_errors_total",
    "Total chunks rolled back because indexing failed"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_log_entry(result: str, count: int = 1) -> None:
    """
    Record the outcome of processing log entries.

    Args:
        result: Processing result - one of:
            - "indexed": Entry stored in the index
            - "skipped": Entry could not be parsed as a message
        count: Number of entries with this outcome
    """
    log_entries_total.labels(result=result).inc(count)


def record_chunk(latency_seconds: float) -> None:
    """Record the time taken to index one committed chunk."""
    chunk_latency_seconds.observe(latency_seconds)


def record_index_error() -> None:
    index_errors_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string for Prometheus exposition format
    """
    return CONTENT_TYPE_LATEST
