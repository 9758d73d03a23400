"""SQLite index over an append-only log of SSB messages."""

__version__ = "0.1.0"
