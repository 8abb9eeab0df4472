"""
Database helper utilities for sessionstore.

Provides dialect detection and health checks for SQLite and PostgreSQL (and
any other SQLAlchemy backend).
"""

import logging
from typing import Any, Dict

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Dialects whose insert() construct supports ON CONFLICT DO UPDATE
NATIVE_UPSERT_DIALECTS = frozenset({"sqlite", "postgresql"})


def get_database_type(engine: Engine) -> str:
    """
    Get the database type of an engine.

    Returns:
        str: Database type ('sqlite', 'postgresql', 'mysql', etc.)
    """
    return engine.dialect.name


def supports_native_upsert(engine: Engine) -> bool:
    """Whether ``INSERT ... ON CONFLICT DO UPDATE`` is available."""
    return get_database_type(engine) in NATIVE_UPSERT_DIALECTS


def get_database_info(engine: Engine) -> Dict[str, Any]:
    """
    Get database connection information and metadata.

    Returns:
        Dict containing database type, connection status, and metadata
    """
    db_type = get_database_type(engine)
    info: Dict[str, Any] = {
        "type": db_type,
        "connected": False,
        "tables": [],
        "version": None,
        "error": None,
    }

    try:
        with engine.connect() as conn:
            info["connected"] = True

            if db_type == "sqlite":
                info["version"] = conn.execute(text("SELECT sqlite_version()")).scalar()
            elif db_type == "postgresql":
                version_str = conn.execute(text("SELECT version()")).scalar()
                info["version"] = version_str.split()[1] if version_str else "unknown"

            info["tables"] = inspect(conn).get_table_names()

    except Exception as e:
        logger.error(f"Database connection error: {e}")
        info["error"] = str(e)

    return info


def check_database_health(engine: Engine, table_name: str = "session") -> Dict[str, Any]:
    """
    Perform database health check.

    Returns:
        Dict containing health status and metrics
    """
    health: Dict[str, Any] = {
        "status": "healthy",
        "database_type": get_database_type(engine),
        "connected": False,
        "table_present": False,
        "last_error": None,
    }

    db_info = get_database_info(engine)
    health["connected"] = db_info["connected"]
    health["table_present"] = table_name in db_info["tables"]

    if db_info["error"]:
        health["status"] = "unhealthy"
        health["last_error"] = db_info["error"]
    elif not health["table_present"]:
        health["status"] = "warning"
        health["last_error"] = f"Table {table_name!r} not found - database may need initialization"

    return health
