"""Application factory wiring settings, logging, database and session store."""

import logging
from typing import Optional

from fastapi import FastAPI

from sessionstore.api import sessions
from sessionstore.core.config import Settings, settings
from sessionstore.core.logging_config import init_logging
from sessionstore.core.session_store import SessionStore
from sessionstore.db.init_db import init_database
from sessionstore.db.session import create_db_engine, create_session_factory
from sessionstore.web.middleware import ServerSessionMiddleware

logger = logging.getLogger("sessionstore.main")


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build a FastAPI app with server-side sessions and the admin router.

    When ``store`` is given it must already be connected; otherwise one is
    built from ``app_settings`` and its table created.
    """
    app_settings = app_settings or settings
    if configure_logging:
        init_logging(app_settings)

    if store is None:
        engine = create_db_engine(app_settings.database_url)
        init_database(engine)
        store = SessionStore.from_settings(app_settings)
        store.connect(create_session_factory(engine))

    app = FastAPI(title=app_settings.app_name, debug=app_settings.debug)
    app.state.session_store = store

    app.add_middleware(
        ServerSessionMiddleware,
        store=store,
        secret_key=app_settings.secret_key,
        session_cookie=app_settings.cookie_name,
        max_age=app_settings.cookie_max_age,
        https_only=app_settings.https_only,
    )
    app.include_router(sessions.router, prefix="/api", tags=["Sessions"])

    logger.info(
        "Application configured",
        extra={
            "cleanup_limit": app_settings.cleanup_limit,
            "limit_subquery": app_settings.limit_subquery,
        },
    )
    return app
