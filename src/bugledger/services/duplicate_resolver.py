"""Time-windowed lookup of the canonical report a new submission duplicates."""

import logging
from datetime import datetime, timedelta

from bugledger.repositories.report_repo import ReportRepository

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(days=7)


class DuplicateResolver:
    """Finds the oldest canonical report with a matching fingerprint.

    The lookup is a plain read; no lock is held between it and the insert that
    follows. Two concurrent first submissions of the same fingerprint can both
    see no match and both become canonical. Later duplicates then attach to
    the older of the two, since the lookup always picks the earliest match.
    """

    def __init__(self, repo: ReportRepository, window: timedelta = DEFAULT_WINDOW):
        if window <= timedelta(0):
            raise ValueError("duplicate window must be positive")
        self.repo = repo
        self.window = window

    def window_start(self, now: datetime) -> datetime:
        return now - self.window

    async def find_canonical_match(self, fingerprint: str, tenant_id: str, now: datetime) -> str | None:
        """Return the canonical report id to attach to, or None.

        Matches are scoped to ``tenant_id``, restricted to canonical reports
        created at or after ``now - window``, and tie-broken oldest first.
        """
        canonical_id = await self.repo.find_canonical_match(
            tenant_id=tenant_id,
            fingerprint=fingerprint,
            since=self.window_start(now),
        )
        if canonical_id:
            logger.debug(
                "canonical_match_found",
                extra={"tenant_id": tenant_id, "canonical_id": canonical_id},
            )
        return canonical_id
