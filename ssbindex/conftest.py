"""
Pytest configuration and shared fixtures.

Test environment variables are set here, before any ssbindex import, and
the settings cache is cleared so they take effect.
"""

import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

# Clear settings cache before any other ssbindex imports
from ssbindex.config import get_settings
get_settings.cache_clear()

from sqlalchemy.orm import sessionmaker

from ssbindex.storage import create_db_engine, init_db


@pytest.fixture
def index_engine():
    """Fresh in-memory database with no schema."""
    engine = create_db_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def migrated_engine(index_engine):
    """In-memory database with every migration applied."""
    init_db(index_engine)
    return index_engine


@pytest.fixture
def db(migrated_engine):
    """Session on a fully migrated database."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=migrated_engine)()
    yield session
    session.close()
