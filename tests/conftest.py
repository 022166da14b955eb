"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bugledger.config import Settings
from bugledger.db.base import Base
# Import all models to register with Base.metadata
import bugledger.db.models  # noqa: F401
from bugledger.db.models.report import ReportRow
from bugledger.repositories.report_repo import ReportRepository
from bugledger.services.duplicate_resolver import DuplicateResolver
from bugledger.services.fingerprint import generate_fingerprint
from bugledger.services.id_generator import new_report_id
from bugledger.services.report_ledger import ReportLedger

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


class RecordingAttachmentStore:
    """In-memory attachment store.

    ``b"fail"`` payloads degrade to None and ``b"boom"`` payloads raise, the
    two ways a real upload can go wrong.
    """

    def __init__(self):
        self.uploads: list[tuple[str, bytes]] = []

    async def store(self, tenant_id: str, data: bytes) -> str | None:
        if data == b"boom":
            raise RuntimeError("object store unreachable")
        if data == b"fail":
            return None
        self.uploads.append((tenant_id, data))
        return f"https://cdn.test/{tenant_id}/{len(self.uploads)}.png"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def test_settings():
    return Settings(
        database_url="sqlite+aiosqlite:///",
        storage_url=None,
        duplicate_window_days=7,
        max_attachments=5,
        log_level="warning",
    )


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a test database session."""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def report_repo(db_session):
    return ReportRepository(db_session)


@pytest.fixture
def attachment_store():
    return RecordingAttachmentStore()


@pytest.fixture
def resolver(report_repo):
    return DuplicateResolver(report_repo, window=timedelta(days=7))


@pytest.fixture
def ledger(report_repo, resolver, attachment_store):
    return ReportLedger(report_repo, resolver, attachment_store, max_attachments=5)


@pytest.fixture
def app(db_engine, test_settings, attachment_store):
    """Create a test application instance with in-memory DB."""
    from bugledger.main import create_app

    _app = create_app(test_settings)
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    _app.state.attachment_store = attachment_store
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def seed_report(
    session: AsyncSession,
    created_at: datetime,
    tenant_id: str = "app1",
    description: str = "crash on launch",
    screen_context: str | None = None,
    canonical_id: str | None = None,
    status: str | None = None,
    priority: str = "medium",
    duplicate_count: int | None = None,
) -> ReportRow:
    """Insert a report row directly, bypassing the ledger."""
    row = ReportRow(
        report_id=new_report_id(),
        tenant_id=tenant_id,
        description=description,
        priority=priority,
        status=status or ("duplicate" if canonical_id else "open"),
        screen_context=screen_context,
        fingerprint=generate_fingerprint(tenant_id, description, screen_context),
        canonical_id=canonical_id,
        duplicate_count=duplicate_count if duplicate_count is not None else (0 if canonical_id else 1),
        created_at=created_at,
        updated_at=created_at,
    )
    session.add(row)
    await session.flush()
    return row


@pytest.fixture
def seed():
    """Return the row-seeding helper for tests that need hand-built history."""
    return seed_report
