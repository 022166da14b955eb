"""Create and update lifecycle of bug reports.

Submission order within one request: attachments are uploaded, the
fingerprint is derived, the resolver looks for a canonical match, the report
row is inserted, and for a duplicate the canonical row's count is bumped with
a single SQL UPDATE. Insert and increment share the caller's transaction, so
a failed increment leaves nothing behind once the session rolls back.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from bugledger.db.base import utcnow
from bugledger.db.models.report import ReportRow
from bugledger.errors.exceptions import ConflictError, NotFoundError, ValidationError
from bugledger.models.enums import FixStatus, Priority, ReportStatus, parse_enum
from bugledger.repositories.report_repo import ReportRepository
from bugledger.services.duplicate_resolver import DuplicateResolver
from bugledger.services.fingerprint import generate_fingerprint
from bugledger.services.id_generator import new_report_id
from bugledger.storage.attachment_store import AttachmentStore, decode_attachment

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 5
MAX_DESCRIPTION_LENGTH = 5000
MAX_TENANT_ID_LENGTH = 100

UPDATABLE_FIELDS = ("status", "fix_status", "suggested_fix", "analysis")


@dataclass
class ReportSubmission:
    tenant_id: str
    description: str
    priority: str
    user_id: str | None = None
    screen_context: str | None = None
    app_version: str | None = None
    build_number: str | None = None
    os_version: str | None = None
    device_model: str | None = None
    # Raw bytes, or base64 text as received over the API
    attachments: list[bytes | str] = field(default_factory=list)


@dataclass(frozen=True)
class SubmissionOutcome:
    id: str
    status: str
    is_duplicate: bool
    canonical_id: str | None
    attachment_count: int


class ReportLedger:
    """Owns report creation, canonical/duplicate linkage and updates."""

    def __init__(
        self,
        repo: ReportRepository,
        resolver: DuplicateResolver,
        attachment_store: AttachmentStore,
        max_attachments: int = 10,
    ):
        self.repo = repo
        self.resolver = resolver
        self.attachment_store = attachment_store
        self.max_attachments = max_attachments

    def _validate(self, submission: ReportSubmission) -> tuple[str, str, Priority]:
        tenant_id = (submission.tenant_id or "").strip()
        if not tenant_id:
            raise ValidationError("tenant_id is required", details={"field": "tenant_id"})
        if len(tenant_id) > MAX_TENANT_ID_LENGTH:
            raise ValidationError(
                f"tenant_id must be at most {MAX_TENANT_ID_LENGTH} characters",
                details={"field": "tenant_id"},
            )

        description = (submission.description or "").strip()
        if len(description) < MIN_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"description is required (min {MIN_DESCRIPTION_LENGTH} characters)",
                details={"field": "description"},
            )
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"description must be at most {MAX_DESCRIPTION_LENGTH} characters",
                details={"field": "description"},
            )

        priority = parse_enum(Priority, submission.priority, "priority")

        if len(submission.attachments) > self.max_attachments:
            raise ValidationError(
                f"at most {self.max_attachments} attachments are accepted",
                details={"field": "attachments"},
            )
        return tenant_id, description, priority

    def _decode_attachments(self, tenant_id: str, attachments: list[bytes | str]) -> list[bytes]:
        """Decode each attachment on its own; undecodable ones are dropped."""
        payloads = []
        for position, item in enumerate(attachments):
            if not item:
                continue
            if isinstance(item, str):
                try:
                    item = decode_attachment(item)
                except ValueError as exc:
                    logger.warning(
                        "attachment_upload_failed",
                        extra={"tenant_id": tenant_id, "position": position, "error": str(exc)},
                    )
                    continue
            payloads.append(item)
        return payloads

    async def _upload_attachments(self, tenant_id: str, attachments: list[bytes | str]) -> list[str]:
        """Upload each attachment independently; failures are dropped."""
        payloads = self._decode_attachments(tenant_id, attachments)
        if not payloads:
            return []
        results = await asyncio.gather(
            *(self.attachment_store.store(tenant_id, data) for data in payloads),
            return_exceptions=True,
        )
        urls = []
        for position, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.warning(
                    "attachment_upload_failed",
                    extra={"tenant_id": tenant_id, "position": position, "error": str(result)},
                )
            elif result:
                urls.append(result)
        return urls

    async def submit(self, submission: ReportSubmission, now: datetime | None = None) -> SubmissionOutcome:
        """Record a submission as a new canonical report or a duplicate of one."""
        tenant_id, description, priority = self._validate(submission)
        now = now or utcnow()

        screenshot_urls = await self._upload_attachments(tenant_id, submission.attachments)

        fingerprint = generate_fingerprint(tenant_id, description, submission.screen_context)
        canonical_id = await self.resolver.find_canonical_match(fingerprint, tenant_id, now)
        is_duplicate = canonical_id is not None

        if is_duplicate:
            await self._ensure_linkable(canonical_id)

        row = await self.repo.create(
            report_id=new_report_id(),
            tenant_id=tenant_id,
            user_id=submission.user_id,
            description=description,
            priority=priority.value,
            status=(ReportStatus.DUPLICATE if is_duplicate else ReportStatus.OPEN).value,
            screenshot_url=screenshot_urls[0] if screenshot_urls else None,
            screenshot_urls=screenshot_urls or None,
            app_version=submission.app_version,
            build_number=submission.build_number,
            os_version=submission.os_version,
            device_model=submission.device_model,
            screen_context=submission.screen_context,
            fingerprint=fingerprint,
            canonical_id=canonical_id,
            duplicate_count=0 if is_duplicate else 1,
            created_at=now,
            updated_at=now,
        )

        if is_duplicate:
            incremented = await self.repo.increment_duplicate_count(canonical_id, now=now)
            if not incremented:
                raise ConflictError(
                    f"Canonical report '{canonical_id}' could not be incremented",
                    details={"canonical_id": canonical_id},
                )
            logger.info(
                "duplicate_report_submitted",
                extra={
                    "report_id": row.report_id,
                    "canonical_id": canonical_id,
                    "tenant_id": tenant_id,
                    "user_id": submission.user_id,
                    "attachment_count": len(screenshot_urls),
                },
            )
        else:
            logger.info(
                "report_submitted",
                extra={
                    "report_id": row.report_id,
                    "tenant_id": tenant_id,
                    "priority": priority.value,
                    "user_id": submission.user_id,
                    "attachment_count": len(screenshot_urls),
                },
            )

        return SubmissionOutcome(
            id=row.report_id,
            status=row.status,
            is_duplicate=is_duplicate,
            canonical_id=canonical_id,
            attachment_count=len(screenshot_urls),
        )

    async def _ensure_linkable(self, canonical_id: str) -> None:
        """Refuse to attach a duplicate to anything but a root canonical report."""
        target = await self.repo.get(canonical_id)
        if target is None:
            raise ConflictError(
                f"Canonical report '{canonical_id}' no longer exists",
                details={"canonical_id": canonical_id},
            )
        if not target.is_canonical:
            raise ConflictError(
                f"Report '{canonical_id}' is itself a duplicate",
                details={"canonical_id": canonical_id},
            )

    async def update(self, report_id: str, changes: Mapping[str, Any]) -> ReportRow:
        """Apply the supplied status/fix fields; other keys are ignored."""
        updates: dict[str, Any] = {}
        for key in UPDATABLE_FIELDS:
            if key in changes:
                updates[key] = changes[key]

        if not updates:
            raise ValidationError(
                "No valid fields to update",
                details={"allowed_fields": list(UPDATABLE_FIELDS)},
            )

        if "status" in updates:
            if updates["status"] is None:
                raise ValidationError("status cannot be null", details={"field": "status"})
            updates["status"] = parse_enum(ReportStatus, updates["status"], "status").value
        if updates.get("fix_status") is not None:
            updates["fix_status"] = parse_enum(FixStatus, updates["fix_status"], "fix_status").value
        suggested_fix = updates.get("suggested_fix")
        if suggested_fix is not None and (
            not isinstance(suggested_fix, str) or len(suggested_fix) > MAX_DESCRIPTION_LENGTH
        ):
            raise ValidationError(
                f"suggested_fix must be a string of at most {MAX_DESCRIPTION_LENGTH} characters",
                details={"field": "suggested_fix"},
            )
        if updates.get("analysis") is not None and not isinstance(updates["analysis"], dict):
            raise ValidationError("analysis must be an object", details={"field": "analysis"})

        row = await self.repo.update_by_id(report_id, updated_at=utcnow(), **updates)
        if row is None:
            raise NotFoundError("Bug report", report_id)

        logger.info(
            "report_updated",
            extra={"report_id": report_id, "fields": sorted(updates)},
        )
        return row
