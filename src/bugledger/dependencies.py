"""FastAPI dependency injection providers."""

from collections.abc import AsyncGenerator
from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bugledger.config import Settings
from bugledger.repositories.report_repo import ReportRepository
from bugledger.services.duplicate_resolver import DuplicateResolver
from bugledger.services.report_ledger import ReportLedger


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session from the app's session factory."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


def get_settings(request: Request) -> Settings:
    """Return the settings object the app was created with."""
    return request.app.state.settings


def get_trace_id(request: Request) -> str:
    """Extract trace_id from request state (set by middleware)."""
    return getattr(request.state, "trace_id", "unknown")


def get_submitter_id(request: Request) -> str | None:
    """Return the caller's user id when an upstream auth layer attached one."""
    user = getattr(request.state, "user", None) or {}
    sub = user.get("sub")
    if not sub or sub == "anonymous":
        return None
    return sub


async def get_report_repo(db: AsyncSession = Depends(get_db)) -> ReportRepository:
    return ReportRepository(db)


async def get_ledger(
    request: Request,
    repo: ReportRepository = Depends(get_report_repo),
) -> ReportLedger:
    """Assemble a request-scoped ledger over the shared attachment store."""
    app_settings: Settings = request.app.state.settings
    resolver = DuplicateResolver(repo, window=timedelta(days=app_settings.duplicate_window_days))
    return ReportLedger(
        repo=repo,
        resolver=resolver,
        attachment_store=request.app.state.attachment_store,
        max_attachments=app_settings.max_attachments,
    )


# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
TraceId = Annotated[str, Depends(get_trace_id)]
SubmitterId = Annotated[str | None, Depends(get_submitter_id)]
Repo = Annotated[ReportRepository, Depends(get_report_repo)]
Ledger = Annotated[ReportLedger, Depends(get_ledger)]
