"""Read-only views over the report ledger: listings, lookups and histograms.

Duplicates are excluded from listings and statistics; they are reachable only
by id or through their canonical report.
"""

from bugledger.db.models.report import ReportRow
from bugledger.errors.exceptions import NotFoundError, ValidationError
from bugledger.models.enums import Priority, ReportStatus, parse_enum
from bugledger.models.report import Pagination, ReportOut, ReportPage, ReportStats
from bugledger.repositories.report_repo import ReportRepository

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


async def list_reports(
    repo: ReportRepository,
    tenant_id: str,
    status: ReportStatus | str | None = None,
    priority: Priority | str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> ReportPage:
    """List a tenant's canonical reports, newest first."""
    if not tenant_id:
        raise ValidationError("tenant_id query parameter is required", details={"field": "tenant_id"})
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", details={"field": "limit"})
    if offset < 0:
        raise ValidationError("offset must be >= 0", details={"field": "offset"})

    rows = await repo.list_canonical(
        tenant_id=tenant_id,
        status=parse_enum(ReportStatus, status, "status").value if status else None,
        priority=parse_enum(Priority, priority, "priority").value if priority else None,
        limit=limit,
        offset=offset,
    )
    return ReportPage(
        records=[ReportOut.model_validate(row) for row in rows],
        pagination=Pagination(limit=limit, offset=offset, has_more=len(rows) == limit),
    )


async def get_report(repo: ReportRepository, report_id: str) -> ReportRow:
    row = await repo.get(report_id)
    if row is None:
        raise NotFoundError("Bug report", report_id)
    return row


async def list_duplicates(repo: ReportRepository, canonical_id: str) -> list[ReportRow]:
    """Return every report pointing at ``canonical_id``, newest first."""
    await get_report(repo, canonical_id)
    return await repo.list_duplicates(canonical_id)


async def report_stats(repo: ReportRepository, tenant_id: str) -> ReportStats:
    """Histogram of a tenant's distinct issues by status and by priority."""
    if not tenant_id:
        raise ValidationError("tenant_id query parameter is required", details={"field": "tenant_id"})
    by_status = await repo.status_counts(tenant_id)
    by_priority = await repo.priority_counts(tenant_id)
    return ReportStats(
        tenant_id=tenant_id,
        total=sum(by_status.values()),
        by_status=by_status,
        by_priority=by_priority,
    )
