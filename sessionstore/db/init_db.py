"""Initialize the database with proper schema"""

import logging
from typing import Optional, Sequence

from sqlalchemy import Table
from sqlalchemy.engine import Engine

from sessionstore.db.base import Base

# Register the default model with the metadata
from sessionstore.db.models import session_record as _model_session_record  # noqa: F401

logger = logging.getLogger(__name__)


def init_database(engine: Engine, tables: Optional[Sequence[Table]] = None) -> list[str]:
    """Create session tables that do not exist yet.

    ``tables`` restricts creation to the given tables; by default every model
    registered on ``Base.metadata`` is created. Returns the created-or-present
    table names.
    """
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine, tables=tables, checkfirst=True)
    except Exception as e:
        logger.error(f"Error initializing database: {e}", extra={
            "error_type": type(e).__name__,
            "database_url": "[REDACTED]",
        })
        raise

    table_names = [table.name for table in (tables or Base.metadata.sorted_tables)]
    logger.info("Database initialized", extra={
        "table_count": len(table_names),
        "tables": table_names,
    })
    return table_names
