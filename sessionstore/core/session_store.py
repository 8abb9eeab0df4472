"""Server-side session storage on a relational table.

Rows live in the ``session`` table, or in any model built on
``SessionRecordMixin``. Every public operation is a coroutine; the SQLAlchemy
work runs on a worker thread so the event loop is never blocked.

Expired rows are never returned. They are physically removed lazily: when a
``cleanup_limit`` is configured, each ``set`` first deletes up to that many
expired rows, soft-deleted or not.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Type,
    Union,
)

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sessionstore.core.config import Settings
from sessionstore.core.ttl import TtlPolicy, resolve_ttl
from sessionstore.core.utils.database_helpers import supports_native_upsert
from sessionstore.db.models.session_record import SessionRecord
from sessionstore.db.session import get_db_sync

logger = logging.getLogger(__name__)

ErrorHandler = Callable[["SessionStore", Exception], None]
FieldsStrategy = Callable[[Any], Mapping[str, Any]]

# Keys match NATIVE_UPSERT_DIALECTS
_UPSERT_INSERTS = {"sqlite": sqlite_insert, "postgresql": postgresql_insert}


class StorageError(Exception):
    """Raised when the backing database fails a session operation"""
    pass


def _now_ms() -> int:
    return int(time.time() * 1000)


def no_additional_fields(payload: Any) -> Dict[str, Any]:
    return {}


def _describe(exc: SQLAlchemyError) -> str:
    """Driver error without the SQL statement or its bound parameters"""
    orig = getattr(exc, "orig", None)
    if orig is not None:
        return f"{type(orig).__name__}: {orig}"
    return type(exc).__name__


class SessionStore:
    """Session store for ASGI session middleware.

    Args:
        cleanup_limit: Max expired rows removed per ``set`` call. ``None`` or 0
            disables the sweep.
        limit_subquery: Remove expired rows with one ``DELETE ... WHERE id IN
            (SELECT ... LIMIT n)`` statement. Set to False for backends that
            cannot take a limited subquery inside a delete; the ids are then
            fetched first and deleted in a second statement.
        on_error: Called as ``on_error(store, error)`` on every failure. Without
            it the store emits ``"disconnect"`` to its listeners.
        ttl: Fixed TTL in seconds, or ``ttl(store, payload, sid)``. Defaults to
            the session cookie's ``maxAge``, else one day.
        additional_fields: ``additional_fields(payload)`` returning extra column
            values to write alongside the payload. ``model`` must map them.
        model: Mapped class built on ``SessionRecordMixin``.
        clock: Returns the current time in epoch milliseconds.
        native_upsert: Force (True) or forbid (False) ``INSERT ... ON CONFLICT``.
            ``None`` picks it for SQLite and PostgreSQL. Without it ``set`` looks
            the row up and updates or inserts, one ``set`` per sid at a time.
    """

    def __init__(
        self,
        *,
        cleanup_limit: Optional[int] = None,
        limit_subquery: bool = True,
        on_error: Optional[ErrorHandler] = None,
        ttl: TtlPolicy = None,
        additional_fields: Optional[FieldsStrategy] = None,
        model: Type[Any] = SessionRecord,
        clock: Callable[[], int] = _now_ms,
        native_upsert: Optional[bool] = None,
    ) -> None:
        self.cleanup_limit = cleanup_limit
        self.limit_subquery = limit_subquery
        self.on_error = on_error
        self.ttl = ttl
        self.additional_fields = additional_fields or no_additional_fields
        self.model = model
        self.clock = clock
        self.native_upsert = native_upsert

        self._session_factory: Optional[sessionmaker] = None
        self._native_upsert = False
        self._listeners: Dict[str, List[Callable[..., None]]] = defaultdict(list)
        # sid -> [lock, number of holders and waiters]
        self._sid_locks: Dict[str, List[Any]] = {}

    @classmethod
    def from_settings(cls, app_settings: Settings, **kwargs: Any) -> "SessionStore":
        """Build a store from application settings; ``kwargs`` take precedence."""
        options: Dict[str, Any] = {
            "cleanup_limit": app_settings.cleanup_limit,
            "limit_subquery": app_settings.limit_subquery,
            "ttl": app_settings.ttl,
        }
        options.update(kwargs)
        return cls(**options)

    def connect(self, session_factory: sessionmaker) -> "SessionStore":
        """Bind the store to a session factory and emit ``"connect"``."""
        bind = session_factory.kw.get("bind")
        if self.native_upsert is None:
            self._native_upsert = bind is not None and supports_native_upsert(bind)
        elif self.native_upsert and bind is not None and not supports_native_upsert(bind):
            raise ValueError(
                f"native_upsert is not available for {bind.dialect.name}; "
                "use native_upsert=None or False"
            )
        else:
            self._native_upsert = self.native_upsert
        self._session_factory = session_factory
        logger.info(
            "Session store connected",
            extra={"native_upsert": self._native_upsert, "table": self.model.__tablename__},
        )
        self.emit("connect")
        return self

    @property
    def connected(self) -> bool:
        return self._session_factory is not None

    # -- events ---------------------------------------------------------

    def on(self, event: str, listener: Callable[..., None]) -> None:
        """Register ``listener`` for ``event`` (``"connect"``, ``"disconnect"``)."""
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Callable[..., None]) -> None:
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener(*args)

    # -- public operations ---------------------------------------------

    async def get(self, sid: str) -> Optional[Any]:
        """Return the payload of the active session ``sid``, or None."""
        logger.debug('GET "%s"', sid)
        try:
            return await self._execute(self._get, sid, self.clock())
        except StorageError as exc:
            self._handle_error(exc)
            raise

    async def set(self, sid: str, payload: Any) -> None:
        """Create or refresh session ``sid`` with ``payload``.

        A soft-deleted row with the same id is brought back to life. ``None``
        is rejected since ``get`` uses it to mean "no session".
        """
        if payload is None:
            raise ValueError("Session payload must not be None")
        ttl = resolve_ttl(self.ttl, self, payload, sid)
        logger.debug('SET "%s" ttl:%s', sid, ttl)
        try:
            if self.cleanup_limit:
                await self._execute(self._cleanup, self.clock())

            values = {
                "expired_at": self.clock() + ttl * 1000,
                "json": payload,
                **self.additional_fields(payload),
            }
            if self._native_upsert:
                await self._execute(self._upsert, sid, values)
            else:
                async with self._sid_lock(sid):
                    await self._execute(self._find_or_create, sid, values)
        except StorageError as exc:
            self._handle_error(exc)
            raise
        logger.debug("SET complete")

    async def destroy(self, sid: Union[str, Iterable[str]]) -> None:
        """Soft-delete one session or several.

        The deletes run concurrently and are not atomic: when one fails the
        others are not undone.
        """
        sids = [sid] if isinstance(sid, str) else list(sid)
        logger.debug('DEL "%s"', sids)
        now = self.clock()
        try:
            results = await asyncio.gather(
                *(self._execute(self._soft_delete, x, now) for x in sids),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
        except StorageError as exc:
            self._handle_error(exc)
            raise

    async def touch(self, sid: str, payload: Any) -> None:
        """Push back the expiry of ``sid`` without rewriting its payload."""
        ttl = resolve_ttl(self.ttl, self, payload)
        logger.debug('EXPIRE "%s" ttl:%s', sid, ttl)
        try:
            await self._execute(self._touch, sid, self.clock() + ttl * 1000)
        except StorageError as exc:
            self._handle_error(exc)
            raise
        logger.debug("EXPIRE complete")

    async def all(self) -> List[Any]:
        """Return every active payload, each tagged with its ``id``."""
        try:
            return await self._execute(self._all, self.clock())
        except StorageError as exc:
            self._handle_error(exc)
            raise

    async def length(self) -> int:
        """Count active sessions."""
        try:
            return await self._execute(self._length, self.clock())
        except StorageError as exc:
            self._handle_error(exc)
            raise

    async def clear(self) -> None:
        """Physically remove every session row."""
        logger.debug("CLEAR")
        try:
            await self._execute(self._clear)
        except StorageError as exc:
            self._handle_error(exc)
            raise

    # -- plumbing ------------------------------------------------------

    async def _execute(self, operation: Callable[..., Any], *args: Any) -> Any:
        if self._session_factory is None:
            raise StorageError("Session store is not connected")

        def _run() -> Any:
            with get_db_sync(self._session_factory) as db:
                try:
                    return operation(db, *args)
                except SQLAlchemyError:
                    db.rollback()
                    raise

        try:
            return await asyncio.to_thread(_run)
        except SQLAlchemyError as exc:
            raise StorageError(
                f"{operation.__name__.lstrip('_')} failed: {_describe(exc)}"
            ) from exc

    def _handle_error(self, error: Exception) -> None:
        logger.error(f"Session storage failed: {error}", exc_info=error)
        if self.on_error is not None:
            self.on_error(self, error)
        else:
            self.emit("disconnect", error)

    @asynccontextmanager
    async def _sid_lock(self, sid: str) -> AsyncIterator[None]:
        entry = self._sid_locks.get(sid)
        if entry is None:
            entry = self._sid_locks[sid] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._sid_locks[sid]

    def _active(self, now: int) -> Any:
        return and_(self.model.expired_at > now, self.model.destroyed_at.is_(None))

    # -- statements (worker thread) -------------------------------------

    def _get(self, db: Session, sid: str, now: int) -> Optional[Any]:
        row = db.execute(
            select(self.model.json).where(self.model.id == sid, self._active(now))
        ).first()
        if row is None:
            return None
        logger.debug('GOT "%s"', sid)
        return row[0]

    def _cleanup(self, db: Session, now: int) -> int:
        model = self.model
        expired = (
            select(model.id)
            .where(model.expired_at <= now)
            .limit(self.cleanup_limit)
        )
        if self.limit_subquery:
            candidates: Any = expired
        else:
            candidates = db.scalars(expired).all()

        result = db.execute(
            delete(model)
            .where(model.id.in_(candidates))
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount:
            logger.debug("Cleanup removed %s expired sessions", result.rowcount)
        return result.rowcount

    def _upsert(self, db: Session, sid: str, values: Dict[str, Any]) -> None:
        insert = _UPSERT_INSERTS[db.get_bind().dialect.name]
        changes = {**values, "destroyed_at": None}
        stmt = insert(self.model).values(id=sid, **changes)
        db.execute(
            stmt.on_conflict_do_update(index_elements=["id"], set_=changes)
        )
        db.commit()

    def _find_or_create(self, db: Session, sid: str, values: Dict[str, Any]) -> None:
        record = db.get(self.model, sid)
        if record is None:
            db.add(self.model(id=sid, **values))
        else:
            for key, value in values.items():
                setattr(record, key, value)
            record.destroyed_at = None
        db.commit()

    def _soft_delete(self, db: Session, sid: str, now: int) -> None:
        db.execute(
            update(self.model)
            .where(self.model.id == sid, self.model.destroyed_at.is_(None))
            .values(destroyed_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()

    def _touch(self, db: Session, sid: str, expired_at: int) -> None:
        db.execute(
            update(self.model)
            .where(self.model.id.in_([sid]))
            .values(expired_at=expired_at)
            .execution_options(synchronize_session=False)
        )
        db.commit()

    def _all(self, db: Session, now: int) -> List[Any]:
        rows = db.execute(
            select(self.model.id, self.model.json)
            .where(self._active(now))
            .order_by(self.model.id)
        ).all()
        sessions = []
        for sid, payload in rows:
            if isinstance(payload, dict):
                payload = {**payload, "id": sid}
            sessions.append(payload)
        return sessions

    def _length(self, db: Session, now: int) -> int:
        return db.scalar(
            select(func.count()).select_from(self.model).where(self._active(now))
        ) or 0

    def _clear(self, db: Session) -> None:
        db.execute(delete(self.model).execution_options(synchronize_session=False))
        db.commit()
