"""FastAPI application factory and lifespan management."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bugledger.config import APP_VERSION, Settings, settings as default_settings
from bugledger.db.engine import create_db_engine, create_session_factory
from bugledger.logging_config import configure_logging
from bugledger.storage.attachment_store import HttpAttachmentStore, create_attachment_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    app_settings: Settings = app.state.settings
    db_url = app_settings.effective_database_url
    engine = create_db_engine(db_url)

    # Auto-create tables for SQLite (local dev, no Alembic migrations)
    if "sqlite" in db_url:
        from bugledger.db.base import Base
        import bugledger.db.models  # noqa: F401 - register all ORM models

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite tables created (local mode)")

    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)

    attachment_store = create_attachment_store(app_settings)
    app.state.attachment_store = attachment_store
    if not isinstance(attachment_store, HttpAttachmentStore):
        logger.warning("Attachment storage not configured, screenshots will be dropped")

    logger.info("bugledger API started (db=%s)", "sqlite" if "sqlite" in db_url else "postgresql")
    yield

    # Shutdown
    if isinstance(attachment_store, HttpAttachmentStore):
        await attachment_store.client.aclose()
    await engine.dispose()
    logger.info("bugledger API shutdown complete")


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = app_settings or default_settings
    configure_logging(log_level=app_settings.log_level, json_output=not app_settings.local_mode)

    app = FastAPI(
        title="bugledger API",
        version=APP_VERSION,
        description="Multi-tenant bug report ingestion with fingerprint-based deduplication.",
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from bugledger.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(TraceIdMiddleware)

    from bugledger.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    from bugledger.api.router import api_router
    app.include_router(api_router)

    return app


# Settings are read here, not at config import, so server_cli flags exported
# as environment variables take effect.
app = create_app(Settings())
