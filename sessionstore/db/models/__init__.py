"""Database models"""

from sessionstore.db.models.session_record import SessionRecord, SessionRecordMixin

__all__ = [
    "SessionRecord",
    "SessionRecordMixin",
]
