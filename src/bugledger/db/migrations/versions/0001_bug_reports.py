"""Create the bug_reports table.

Revision ID: 0001_bug_reports
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_bug_reports"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "bug_reports",
        sa.Column("report_id", sa.String(128), primary_key=True),
        sa.Column("tenant_id", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("screenshot_url", sa.Text(), nullable=True),
        sa.Column("screenshot_urls", sa.JSON(), nullable=True),
        sa.Column("app_version", sa.String(50), nullable=True),
        sa.Column("build_number", sa.String(50), nullable=True),
        sa.Column("os_version", sa.String(50), nullable=True),
        sa.Column("device_model", sa.String(100), nullable=True),
        sa.Column("screen_context", sa.String(200), nullable=True),
        sa.Column("fingerprint", sa.String(64), nullable=False),
        sa.Column(
            "canonical_id",
            sa.String(128),
            sa.ForeignKey("bug_reports.report_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("duplicate_count", sa.Integer(), nullable=False),
        sa.Column("analysis", sa.JSON(), nullable=True),
        sa.Column("suggested_fix", sa.Text(), nullable=True),
        sa.Column("fix_status", sa.String(30), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "canonical_id IS NULL OR canonical_id <> report_id",
            name="ck_bug_reports_no_self_reference",
        ),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_bug_reports_priority"),
        sa.CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved', 'wont_fix', 'duplicate')",
            name="ck_bug_reports_status",
        ),
        sa.CheckConstraint(
            "fix_status IS NULL OR fix_status IN ('pending', 'accepted', 'rejected', 'implemented')",
            name="ck_bug_reports_fix_status",
        ),
    )
    op.create_index("ix_bug_reports_tenant_id", "bug_reports", ["tenant_id"])
    op.create_index("ix_bug_reports_user_id", "bug_reports", ["user_id"])
    op.create_index("ix_bug_reports_status", "bug_reports", ["status"])
    op.create_index("ix_bug_reports_fingerprint", "bug_reports", ["fingerprint"])
    op.create_index("ix_bug_reports_created_at", "bug_reports", ["created_at"])
    op.create_index("ix_bug_reports_tenant_status", "bug_reports", ["tenant_id", "status"])
    op.create_index(
        "ix_bug_reports_dedup_lookup", "bug_reports", ["tenant_id", "fingerprint", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("bug_reports")
