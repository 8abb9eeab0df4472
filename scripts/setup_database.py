#!/usr/bin/env python3
"""
Database setup script for sessionstore.

Creates the session table for the configured database (SQLite or PostgreSQL)
and reports its health.
"""

import sys
from pathlib import Path

from sessionstore.core.config import settings
from sessionstore.core.utils.database_helpers import check_database_health, get_database_info
from sessionstore.db.init_db import init_database
from sessionstore.db.session import create_db_engine


def main() -> bool:
    """Initialize database based on configuration"""
    print("sessionstore database setup")
    print("=" * 40)

    if settings.database_url.startswith("sqlite:///"):
        Path(settings.database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    engine = create_db_engine(settings.database_url)

    db_info = get_database_info(engine)
    print(f"Database Type: {db_info['type']}")
    print(f"Connected: {db_info['connected']}")

    if db_info['error']:
        print(f"Connection Error: {db_info['error']}")
        return False

    if db_info['version']:
        print(f"Database Version: {db_info['version']}")

    print(f"Existing Tables: {len(db_info['tables'])}")
    for table in sorted(db_info['tables']):
        print(f"  - {table}")

    print("\nInitializing database...")

    try:
        init_database(engine)
    except Exception as e:
        print(f"Database initialization failed: {e}")
        return False

    health = check_database_health(engine)
    print(f"Health Status: {health['status']}")
    if health['status'] != 'healthy':
        print(f"Warning: {health['last_error']}")
        return False

    print("Database initialized successfully!")
    return True


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
