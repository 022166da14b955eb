"""Bug report repository."""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bugledger.db.base import utcnow
from bugledger.db.models.report import ReportRow
from bugledger.repositories.base import BaseRepository


class ReportRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, ReportRow, "report_id")

    async def get(self, report_id: str) -> ReportRow | None:
        return await self.get_by_id(report_id)

    async def find_canonical_match(self, tenant_id: str, fingerprint: str, since: datetime) -> str | None:
        """Return the id of the oldest canonical report with this fingerprint created at or after ``since``."""
        stmt = (
            select(ReportRow.report_id)
            .where(
                ReportRow.tenant_id == tenant_id,
                ReportRow.fingerprint == fingerprint,
                ReportRow.canonical_id.is_(None),
                ReportRow.created_at >= since,
            )
            .order_by(ReportRow.created_at.asc(), ReportRow.report_id.asc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def increment_duplicate_count(self, canonical_id: str, now: datetime | None = None) -> bool:
        """Add one to a canonical report's duplicate_count in a single UPDATE.

        Returns False when no canonical report with that id exists.
        """
        stmt = (
            update(ReportRow)
            .where(ReportRow.report_id == canonical_id, ReportRow.canonical_id.is_(None))
            .values(
                duplicate_count=ReportRow.duplicate_count + 1,
                updated_at=now or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_canonical(
        self,
        tenant_id: str,
        status: str | None = None,
        priority: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ReportRow]:
        conditions = [
            ReportRow.tenant_id == tenant_id,
            ReportRow.canonical_id.is_(None),
        ]
        if status:
            conditions.append(ReportRow.status == status)
        if priority:
            conditions.append(ReportRow.priority == priority)
        stmt = (
            select(ReportRow)
            .where(*conditions)
            .order_by(ReportRow.created_at.desc(), ReportRow.report_id.desc())
            .limit(limit)
            .offset(offset)
        )
        return await self._scalars(stmt)

    async def list_duplicates(self, canonical_id: str) -> list[ReportRow]:
        stmt = (
            select(ReportRow)
            .where(ReportRow.canonical_id == canonical_id)
            .order_by(ReportRow.created_at.desc(), ReportRow.report_id.desc())
        )
        return await self._scalars(stmt)

    async def _canonical_counts_by(self, column, tenant_id: str) -> dict[str, int]:
        stmt = (
            select(column, func.count(ReportRow.report_id))
            .where(
                ReportRow.tenant_id == tenant_id,
                ReportRow.canonical_id.is_(None),
            )
            .group_by(column)
        )
        result = await self.session.execute(stmt)
        return dict(result.all())

    async def status_counts(self, tenant_id: str) -> dict[str, int]:
        """Return counts of canonical reports by status."""
        return await self._canonical_counts_by(ReportRow.status, tenant_id)

    async def priority_counts(self, tenant_id: str) -> dict[str, int]:
        """Return counts of canonical reports by priority."""
        return await self._canonical_counts_by(ReportRow.priority, tenant_id)
