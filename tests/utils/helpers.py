"""
Test helper functions for common testing operations

These helpers provide a controllable clock and direct table access so tests
can check what the store actually wrote.
"""

import time
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from sessionstore.db.models.session_record import SessionRecord
from sessionstore.db.session import get_db_sync


class FakeClock:
    """Callable clock returning epoch milliseconds, moved by hand"""

    def __init__(self, start_ms: Optional[int] = None):
        self.now = start_ms if start_ms is not None else int(time.time() * 1000)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def fetch_row(session_factory: sessionmaker, sid: str, model: Any = SessionRecord) -> Optional[Any]:
    """Load a raw row, soft-deleted or expired included"""
    with get_db_sync(session_factory) as db:
        row = db.get(model, sid)
        if row is not None:
            db.expunge(row)
        return row


def count_rows(session_factory: sessionmaker, model: Any = SessionRecord) -> int:
    """Count physical rows in the session table"""
    with get_db_sync(session_factory) as db:
        return db.scalar(select(func.count()).select_from(model))


def insert_rows(session_factory: sessionmaker, *rows: Any) -> None:
    """Insert rows bypassing the store"""
    with get_db_sync(session_factory) as db:
        db.add_all(rows)
        db.commit()


def get_log_messages(caplog, level: Optional[str] = None) -> list[str]:
    """Get log messages, optionally filtered by level"""
    if level:
        return [record.getMessage() for record in caplog.records if record.levelname == level.upper()]
    return [record.getMessage() for record in caplog.records]
