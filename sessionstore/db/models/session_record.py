from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from sessionstore.db.base import Base


class SessionRecordMixin:
    """Columns every session table needs.

    Applications that store extra indexed columns (a user id, a tenant) declare
    their own model from this mixin and ``Base`` and hand it to the store as
    ``model=``.
    """

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    json: Mapped[Any] = mapped_column(JSON, nullable=False)
    # Epoch milliseconds
    expired_at: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    destroyed_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<{type(self).__name__}(id={self.id!r}, expired_at={self.expired_at})>"


class SessionRecord(SessionRecordMixin, Base):
    """Default session table."""

    __tablename__ = "session"
