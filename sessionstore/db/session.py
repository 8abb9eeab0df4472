from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # Store calls run on worker threads
        return {"check_same_thread": False}
    return {}


def create_db_engine(database_url: str, **kwargs: Any) -> Engine:
    """Create an engine with the connection args the backend needs.

    Bound parameters carry session bodies, so they are kept out of error
    messages unless the caller opts back in.
    """
    kwargs.setdefault("hide_parameters", True)
    return create_engine(
        database_url,
        connect_args=get_connect_args(database_url),
        **kwargs,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory a SessionStore connects to"""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_sync(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Get a synchronous DB session with proper resource management"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
