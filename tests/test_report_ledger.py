"""Tests for the report ledger: submission, linkage, counting and updates."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bugledger.db.base import Base
from bugledger.db.models.report import ReportRow
from bugledger.errors.exceptions import ConflictError, NotFoundError, ValidationError
from bugledger.repositories.report_repo import ReportRepository
from bugledger.services.duplicate_resolver import DuplicateResolver
from bugledger.services.report_ledger import ReportLedger, ReportSubmission


def _submission(**overrides) -> ReportSubmission:
    fields = {"tenant_id": "app1", "description": "Crash on launch!!", "priority": "high"}
    fields.update(overrides)
    return ReportSubmission(**fields)


async def _row_count(session) -> int:
    result = await session.execute(select(func.count(ReportRow.report_id)))
    return result.scalar_one()


class _StubResolver:
    def __init__(self, canonical_id):
        self.canonical_id = canonical_id

    async def find_canonical_match(self, fingerprint, tenant_id, now):
        return self.canonical_id


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_first_submission_is_canonical(ledger, report_repo, now):
    outcome = await ledger.submit(_submission(), now=now)

    assert outcome.status == "open"
    assert outcome.is_duplicate is False
    assert outcome.canonical_id is None
    row = await report_repo.get(outcome.id)
    assert row.canonical_id is None
    assert row.duplicate_count == 1
    assert row.description == "Crash on launch!!"
    assert len(row.fingerprint) == 64


@pytest.mark.asyncio
async def test_repeat_submission_becomes_duplicate(ledger, report_repo, now):
    first = await ledger.submit(_submission(), now=now)
    second = await ledger.submit(
        _submission(description="crash on launch", priority="low"),
        now=now + timedelta(days=2),
    )

    assert second.status == "duplicate"
    assert second.is_duplicate is True
    assert second.canonical_id == first.id

    canonical = await report_repo.get(first.id)
    assert canonical.duplicate_count == 2
    duplicate = await report_repo.get(second.id)
    assert duplicate.canonical_id == first.id
    assert duplicate.duplicate_count == 0
    assert duplicate.priority == "low"
    assert duplicate.fingerprint == canonical.fingerprint


@pytest.mark.asyncio
async def test_increment_refreshes_canonical_timestamp(ledger, report_repo, now):
    first = await ledger.submit(_submission(), now=now)
    later = now + timedelta(hours=5)
    await ledger.submit(_submission(), now=later)

    canonical = await report_repo.get(first.id)
    assert canonical.updated_at.replace(tzinfo=None) == later.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_same_description_other_tenant_is_independent(ledger, now):
    a = await ledger.submit(_submission(tenant_id="app1"), now=now)
    b = await ledger.submit(_submission(tenant_id="app2"), now=now)

    assert a.is_duplicate is False
    assert b.is_duplicate is False
    assert a.id != b.id


@pytest.mark.asyncio
async def test_screen_context_separates_reports(ledger, now):
    a = await ledger.submit(_submission(screen_context="Home"), now=now)
    b = await ledger.submit(_submission(screen_context="Settings"), now=now)
    assert b.is_duplicate is False
    assert a.id != b.id


@pytest.mark.asyncio
async def test_count_conservation(ledger, report_repo, now):
    outcomes = [
        await ledger.submit(_submission(), now=now + timedelta(minutes=i))
        for i in range(5)
    ]
    canonical_id = outcomes[0].id

    canonical = await report_repo.get(canonical_id)
    assert canonical.duplicate_count == 5
    duplicates = await report_repo.list_duplicates(canonical_id)
    assert len(duplicates) == 4
    assert all(d.canonical_id == canonical_id for d in duplicates)
    assert {o.canonical_id for o in outcomes[1:]} == {canonical_id}


@pytest.mark.asyncio
async def test_submission_after_window_starts_new_cluster(ledger, report_repo, now):
    first = await ledger.submit(_submission(), now=now)
    later = await ledger.submit(_submission(), now=now + timedelta(days=7, seconds=1))

    assert later.is_duplicate is False
    assert later.id != first.id
    assert (await report_repo.get(first.id)).duplicate_count == 1


@pytest.mark.asyncio
async def test_duplicate_roots_at_oldest_canonical(db_session, seed, ledger, report_repo, now):
    t1 = await seed(db_session, created_at=now - timedelta(days=3), description="Crash on launch")
    t2 = await seed(db_session, created_at=now - timedelta(days=2), description="crash on launch")
    await seed(db_session, created_at=now - timedelta(days=1), description="CRASH ON LAUNCH")

    outcome = await ledger.submit(_submission(), now=now)

    assert outcome.canonical_id == t1.report_id
    assert (await report_repo.get(t1.report_id)).duplicate_count == 2
    assert (await report_repo.get(t2.report_id)).duplicate_count == 1


@pytest.mark.asyncio
async def test_increment_is_a_single_sql_update(db_engine, ledger, now):
    await ledger.submit(_submission(), now=now)
    statements: list[str] = []

    def _capture(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(db_engine.sync_engine, "before_cursor_execute", _capture)
    try:
        await ledger.submit(_submission(), now=now + timedelta(minutes=1))
    finally:
        event.remove(db_engine.sync_engine, "before_cursor_execute", _capture)

    increments = [s for s in statements if s.lstrip().upper().startswith("UPDATE")]
    assert len(increments) == 1
    assert "duplicate_count + " in increments[0]
    assert "SELECT" not in increments[0].upper()



@pytest.mark.asyncio
async def test_concurrent_duplicates_are_all_counted(tmp_path, attachment_store, now):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def submit(offset_seconds: int):
        async with session_factory() as session:
            repo = ReportRepository(session)
            ledger = ReportLedger(repo, DuplicateResolver(repo), attachment_store)
            outcome = await ledger.submit(_submission(), now=now + timedelta(seconds=offset_seconds))
            await session.commit()
            return outcome

    try:
        first = await submit(0)
        outcomes = await asyncio.gather(*(submit(i) for i in range(1, 11)))

        assert all(o.canonical_id == first.id for o in outcomes)
        async with session_factory() as session:
            canonical = await ReportRepository(session).get(first.id)
            assert canonical.duplicate_count == 11
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"tenant_id": ""},
        {"tenant_id": "   "},
        {"tenant_id": "x" * 101},
        {"description": "abc"},
        {"description": "   abcd   "},
        {"description": "y" * 5001},
        {"priority": "urgent"},
        {"priority": ""},
    ],
)
async def test_invalid_submission_creates_nothing(ledger, db_session, attachment_store, now, overrides):
    with pytest.raises(ValidationError):
        await ledger.submit(_submission(attachments=[b"png"], **overrides), now=now)
    assert await _row_count(db_session) == 0
    assert attachment_store.uploads == []


@pytest.mark.asyncio
async def test_too_many_attachments_rejected(ledger, db_session, now):
    with pytest.raises(ValidationError):
        await ledger.submit(_submission(attachments=[b"img"] * 6), now=now)
    assert await _row_count(db_session) == 0


@pytest.mark.asyncio
async def test_description_and_tenant_are_trimmed(ledger, report_repo, now):
    outcome = await ledger.submit(_submission(tenant_id=" app1 ", description="  Crash on launch  "), now=now)
    row = await report_repo.get(outcome.id)
    assert row.tenant_id == "app1"
    assert row.description == "Crash on launch"


@pytest.mark.asyncio
async def test_anonymous_and_attributed_submissions(ledger, report_repo, now):
    anon = await ledger.submit(_submission(), now=now)
    named = await ledger.submit(_submission(description="login fails", user_id="user_42"), now=now)
    assert (await report_repo.get(anon.id)).user_id is None
    assert (await report_repo.get(named.id)).user_id == "user_42"


@pytest.mark.asyncio
async def test_device_metadata_is_stored(ledger, report_repo, now):
    outcome = await ledger.submit(
        _submission(app_version="2.1.0", build_number="311", os_version="18.1", device_model="iPhone16,2"),
        now=now,
    )
    row = await report_repo.get(outcome.id)
    assert (row.app_version, row.build_number, row.os_version, row.device_model) == (
        "2.1.0", "311", "18.1", "iPhone16,2"
    )


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_attachments_keep_order_and_mirror_first(ledger, report_repo, now):
    outcome = await ledger.submit(_submission(attachments=[b"one", b"two"]), now=now)
    row = await report_repo.get(outcome.id)

    assert outcome.attachment_count == 2
    assert row.screenshot_urls == ["https://cdn.test/app1/1.png", "https://cdn.test/app1/2.png"]
    assert row.screenshot_url == "https://cdn.test/app1/1.png"


@pytest.mark.asyncio
async def test_failed_uploads_do_not_fail_submission(ledger, report_repo, now):
    outcome = await ledger.submit(_submission(attachments=[b"fail", b"ok", b"boom"]), now=now)
    row = await report_repo.get(outcome.id)

    assert outcome.attachment_count == 1
    assert row.screenshot_urls == ["https://cdn.test/app1/1.png"]
    assert row.screenshot_url == row.screenshot_urls[0]


@pytest.mark.asyncio
async def test_encoded_attachments_are_decoded_one_by_one(ledger, attachment_store, now):
    outcome = await ledger.submit(
        _submission(attachments=["b25l", "%%%", "", "dHdv\n"]),
        now=now,
    )

    assert outcome.attachment_count == 2
    assert [payload for _, payload in attachment_store.uploads] == [b"one", b"two"]


@pytest.mark.asyncio
async def test_no_attachments_leaves_fields_empty(ledger, report_repo, now):
    outcome = await ledger.submit(_submission(attachments=[b"fail"]), now=now)
    row = await report_repo.get(outcome.id)
    assert outcome.attachment_count == 0
    assert row.screenshot_url is None
    assert row.screenshot_urls is None


# ---------------------------------------------------------------------------
# Linkage invariants
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_refuses_to_link_to_missing_canonical(report_repo, attachment_store, db_session, now):
    ledger = ReportLedger(report_repo, _StubResolver("bug_missing"), attachment_store)
    with pytest.raises(ConflictError):
        await ledger.submit(_submission(), now=now)


@pytest.mark.asyncio
async def test_refuses_to_chain_duplicates(db_session, seed, report_repo, attachment_store, now):
    canonical = await seed(db_session, created_at=now - timedelta(days=1))
    duplicate = await seed(db_session, created_at=now - timedelta(hours=1), canonical_id=canonical.report_id)

    ledger = ReportLedger(report_repo, _StubResolver(duplicate.report_id), attachment_store)
    with pytest.raises(ConflictError):
        await ledger.submit(_submission(), now=now)
    assert (await report_repo.get(canonical.report_id)).duplicate_count == 1


@pytest.mark.asyncio
async def test_failed_increment_surfaces(db_session, report_repo, resolver, attachment_store, now):
    class _NoIncrementRepo(type(report_repo)):
        async def increment_duplicate_count(self, canonical_id, now=None):
            return False

    repo = _NoIncrementRepo(db_session)
    ledger = ReportLedger(repo, resolver.__class__(repo), attachment_store)
    await ledger.submit(_submission(), now=now)

    with pytest.raises(ConflictError):
        await ledger.submit(_submission(), now=now + timedelta(minutes=1))


def test_row_cannot_reference_itself():
    row = ReportRow(report_id="bug_self")
    with pytest.raises(ValueError):
        row.canonical_id = "bug_self"


def test_fingerprint_is_immutable():
    row = ReportRow(report_id="bug_fp", fingerprint="a" * 64)
    with pytest.raises(ValueError):
        row.fingerprint = "b" * 64


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_applies_supplied_fields(ledger, now):
    outcome = await ledger.submit(_submission(), now=now)
    row = await ledger.update(
        outcome.id,
        {"status": "in_progress", "fix_status": "pending", "suggested_fix": "Guard nil", "analysis": {"cause": "nil"}},
    )
    assert row.status == "in_progress"
    assert row.fix_status == "pending"
    assert row.suggested_fix == "Guard nil"
    assert row.analysis == {"cause": "nil"}


@pytest.mark.asyncio
async def test_update_leaves_unsupplied_fields(ledger, now):
    outcome = await ledger.submit(_submission(), now=now)
    await ledger.update(outcome.id, {"suggested_fix": "Guard nil"})
    row = await ledger.update(outcome.id, {"status": "resolved"})
    assert row.suggested_fix == "Guard nil"
    assert row.status == "resolved"


@pytest.mark.asyncio
async def test_update_can_clear_classification_fields(ledger, now):
    outcome = await ledger.submit(_submission(), now=now)
    await ledger.update(outcome.id, {"suggested_fix": "Guard nil", "fix_status": "accepted"})
    row = await ledger.update(outcome.id, {"suggested_fix": None, "fix_status": None})
    assert row.suggested_fix is None
    assert row.fix_status is None


@pytest.mark.asyncio
async def test_update_ignores_dedup_fields(ledger, report_repo, now):
    outcome = await ledger.submit(_submission(), now=now)
    before = await report_repo.get(outcome.id)
    fingerprint = before.fingerprint

    row = await ledger.update(
        outcome.id,
        {"status": "resolved", "fingerprint": "f" * 64, "canonical_id": "bug_other", "duplicate_count": 99},
    )
    assert row.fingerprint == fingerprint
    assert row.canonical_id is None
    assert row.duplicate_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("changes", [{}, {"priority": "low"}, {"fingerprint": "x", "duplicate_count": 3}])
async def test_update_without_recognized_fields_writes_nothing(resolver, attachment_store, changes):
    class _NoWriteRepo:
        async def update_by_id(self, *args, **kwargs):
            raise AssertionError("store must not be written")

    ledger = ReportLedger(_NoWriteRepo(), resolver, attachment_store)
    with pytest.raises(ValidationError):
        await ledger.update("bug_any", changes)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes",
    [
        {"status": "closed"},
        {"status": None},
        {"fix_status": "done"},
        {"analysis": "not an object"},
        {"suggested_fix": 42},
    ],
)
async def test_update_rejects_bad_values(ledger, now, changes):
    outcome = await ledger.submit(_submission(), now=now)
    with pytest.raises(ValidationError):
        await ledger.update(outcome.id, changes)


@pytest.mark.asyncio
async def test_update_unknown_report(ledger):
    with pytest.raises(NotFoundError):
        await ledger.update("bug_nonexistent", {"status": "resolved"})
