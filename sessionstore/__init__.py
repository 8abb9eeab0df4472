"""SQLAlchemy-backed session persistence for ASGI session middleware."""

from sessionstore.core.session_store import SessionStore, StorageError
from sessionstore.db.models.session_record import SessionRecord, SessionRecordMixin

__all__ = ["SessionStore", "StorageError", "SessionRecord", "SessionRecordMixin"]

__version__ = "1.0.0"
