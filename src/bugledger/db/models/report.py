"""Bug report table.

A row is either canonical (``canonical_id`` is null and ``duplicate_count`` is
authoritative) or a duplicate pointing directly at a canonical row of the same
tenant. Duplicates never point at other duplicates.
"""

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from bugledger.db.base import Base, TimestampMixin


class ReportRow(Base, TimestampMixin):
    __tablename__ = "bug_reports"
    __table_args__ = (
        CheckConstraint(
            "canonical_id IS NULL OR canonical_id <> report_id",
            name="ck_bug_reports_no_self_reference",
        ),
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_bug_reports_priority"),
        CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved', 'wont_fix', 'duplicate')",
            name="ck_bug_reports_status",
        ),
        CheckConstraint(
            "fix_status IS NULL OR fix_status IN ('pending', 'accepted', 'rejected', 'implemented')",
            name="ck_bug_reports_fix_status",
        ),
        Index("ix_bug_reports_created_at", "created_at"),
        Index("ix_bug_reports_tenant_status", "tenant_id", "status"),
        Index("ix_bug_reports_dedup_lookup", "tenant_id", "fingerprint", "created_at"),
    )

    report_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="open", index=True)

    # First URL mirrored for single-attachment consumers
    screenshot_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    screenshot_urls: Mapped[list | None] = mapped_column(JSON, nullable=True)

    app_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    build_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    os_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    device_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    screen_context: Mapped[str | None] = mapped_column(String(200), nullable=True)

    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    canonical_id: Mapped[str | None] = mapped_column(
        String(128), ForeignKey("bug_reports.report_id", ondelete="SET NULL"), nullable=True
    )
    duplicate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    analysis: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    suggested_fix: Mapped[str | None] = mapped_column(Text, nullable=True)
    fix_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    @property
    def is_canonical(self) -> bool:
        return self.canonical_id is None

    @validates("canonical_id")
    def _validate_canonical_id(self, key, value):
        if value is not None and value == self.report_id:
            raise ValueError("a report cannot be a duplicate of itself")
        return value

    @validates("fingerprint")
    def _validate_fingerprint(self, key, value):
        if self.fingerprint is not None and value != self.fingerprint:
            raise ValueError("fingerprint is immutable once assigned")
        return value
