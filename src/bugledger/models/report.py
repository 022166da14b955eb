"""Pydantic models for bug report requests and responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bugledger.models.enums import FixStatus, Priority, ReportStatus

# 5 MB image ~= 6.67 MB of base64
MAX_BASE64_LENGTH = 7_000_000


class SubmitReportRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tenant_id: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., max_length=5000)
    priority: Priority
    screen_context: str | None = Field(None, max_length=200)
    app_version: str | None = Field(None, max_length=50)
    build_number: str | None = Field(None, max_length=50)
    os_version: str | None = Field(None, max_length=50)
    device_model: str | None = Field(None, max_length=100)
    screenshots: list[str] | None = None
    screenshot: str | None = Field(None, max_length=MAX_BASE64_LENGTH)

    @field_validator("screenshots")
    @classmethod
    def _check_screenshot_sizes(cls, value: list[str] | None) -> list[str] | None:
        if value is not None:
            for item in value:
                if len(item) > MAX_BASE64_LENGTH:
                    raise ValueError("screenshot too large (max 5MB)")
        return value

    def attachment_payloads(self) -> list[str]:
        """Encoded images in submission order; the single legacy field is a fallback."""
        if self.screenshots is not None:
            return [item for item in self.screenshots if item]
        if self.screenshot:
            return [self.screenshot]
        return []


class SubmitReportResponse(BaseModel):
    id: str
    status: ReportStatus
    is_duplicate: bool
    canonical_id: str | None = None
    attachment_count: int


class ReportUpdateRequest(BaseModel):
    """Partial update; only fields present in the request body are applied."""

    model_config = ConfigDict(extra="ignore")

    status: ReportStatus | None = None
    fix_status: FixStatus | None = None
    suggested_fix: str | None = Field(None, max_length=5000)
    analysis: dict[str, Any] | None = None


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(validation_alias="report_id")
    tenant_id: str
    user_id: str | None = None
    description: str
    priority: Priority
    status: ReportStatus
    screen_context: str | None = None
    app_version: str | None = None
    build_number: str | None = None
    os_version: str | None = None
    device_model: str | None = None
    screenshot_url: str | None = None
    screenshot_urls: list[str] | None = None
    fingerprint: str
    canonical_id: str | None = None
    duplicate_count: int
    fix_status: FixStatus | None = None
    suggested_fix: str | None = None
    analysis: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    limit: int
    offset: int
    has_more: bool


class ReportPage(BaseModel):
    records: list[ReportOut]
    pagination: Pagination


class DuplicatesResponse(BaseModel):
    canonical_id: str
    duplicates: list[ReportOut]
    count: int


class ReportStats(BaseModel):
    tenant_id: str
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
