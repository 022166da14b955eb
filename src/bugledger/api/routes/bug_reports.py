"""Bug report submission, query and triage routes."""

from fastapi import APIRouter, Body, Query

from bugledger.dependencies import DBSession, Ledger, Repo, SubmitterId
from bugledger.models.enums import Priority, ReportStatus
from bugledger.models.report import (
    DuplicatesResponse,
    ReportOut,
    ReportPage,
    ReportStats,
    ReportUpdateRequest,
    SubmitReportRequest,
    SubmitReportResponse,
)
from bugledger.services import report_queries
from bugledger.services.report_ledger import ReportSubmission

router = APIRouter(prefix="/bug-reports", tags=["Bug Reports"])


@router.post("", status_code=201, response_model=SubmitReportResponse)
async def submit_bug_report(
    body: SubmitReportRequest,
    ledger: Ledger,
    db: DBSession,
    user_id: SubmitterId,
) -> SubmitReportResponse:
    """Submit a report; repeats within the window collapse onto the canonical report."""
    outcome = await ledger.submit(
        ReportSubmission(
            tenant_id=body.tenant_id,
            description=body.description,
            priority=body.priority,
            user_id=user_id,
            screen_context=body.screen_context,
            app_version=body.app_version,
            build_number=body.build_number,
            os_version=body.os_version,
            device_model=body.device_model,
            attachments=body.attachment_payloads(),
        )
    )
    await db.commit()
    return SubmitReportResponse(
        id=outcome.id,
        status=outcome.status,
        is_duplicate=outcome.is_duplicate,
        canonical_id=outcome.canonical_id,
        attachment_count=outcome.attachment_count,
    )


@router.get("", response_model=ReportPage)
async def list_bug_reports(
    repo: Repo,
    tenant_id: str = Query(..., min_length=1),
    status: ReportStatus | None = Query(None),
    priority: Priority | None = Query(None),
    limit: int = Query(report_queries.DEFAULT_PAGE_SIZE, ge=1, le=report_queries.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
) -> ReportPage:
    """List canonical reports for a tenant, newest first."""
    return await report_queries.list_reports(
        repo,
        tenant_id=tenant_id,
        status=status,
        priority=priority,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=ReportStats)
async def bug_report_stats(
    repo: Repo,
    tenant_id: str = Query(..., min_length=1),
) -> ReportStats:
    """Counts of distinct (canonical) reports by status and priority."""
    return await report_queries.report_stats(repo, tenant_id)


@router.get("/{report_id}", response_model=ReportOut)
async def get_bug_report(report_id: str, repo: Repo) -> ReportOut:
    row = await report_queries.get_report(repo, report_id)
    return ReportOut.model_validate(row)


@router.patch("/{report_id}", response_model=ReportOut)
async def update_bug_report(
    report_id: str,
    ledger: Ledger,
    db: DBSession,
    body: ReportUpdateRequest = Body(...),
) -> ReportOut:
    """Triage a report. Only fields present in the body are written."""
    row = await ledger.update(report_id, body.model_dump(mode="json", exclude_unset=True))
    await db.commit()
    return ReportOut.model_validate(row)


@router.get("/{report_id}/duplicates", response_model=DuplicatesResponse)
async def list_bug_report_duplicates(report_id: str, repo: Repo) -> DuplicatesResponse:
    rows = await report_queries.list_duplicates(repo, report_id)
    return DuplicatesResponse(
        canonical_id=report_id,
        duplicates=[ReportOut.model_validate(row) for row in rows],
        count=len(rows),
    )
