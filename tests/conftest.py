"""
Global test configuration and fixtures for sessionstore

Provides a throwaway SQLite database per test, a controllable clock, and
connected stores built on top of them.
"""

import os
import tempfile

import pytest
from sqlalchemy.engine import Engine

from sessionstore.core.session_store import SessionStore
from sessionstore.db.init_db import init_database
from sessionstore.db.session import create_db_engine, create_session_factory
from tests.utils.helpers import FakeClock


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def test_engine() -> Engine:
    """Create a test database with the session table for each test function"""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    engine = create_db_engine(f"sqlite:///{db_path}")
    init_database(engine)

    yield engine

    engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture(scope="function")
def empty_engine() -> Engine:
    """A database without any tables, so every statement fails"""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    engine = create_db_engine(f"sqlite:///{db_path}")

    yield engine

    engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test database"""
    return create_session_factory(test_engine)


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def clock():
    """Clock frozen at a fixed instant until a test advances it"""
    return FakeClock(start_ms=1_700_000_000_000)


@pytest.fixture(scope="function")
def make_store(session_factory, clock):
    """Build connected stores with custom options"""
    def _make_store(**options) -> SessionStore:
        options.setdefault("clock", clock)
        return SessionStore(**options).connect(session_factory)
    return _make_store


@pytest.fixture(scope="function")
def store(make_store):
    """Connected store with default options"""
    return make_store()


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Add markers based on file location"""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
