"""Opaque report identifiers."""

import uuid

REPORT_ID_PREFIX = "bug_"


def new_report_id() -> str:
    """Return a fresh report id: ``bug_`` plus 16 hex characters of a UUID4.

    Ids carry no ordering; the ledger orders by ``created_at`` and breaks
    ties on the id only to keep results stable.
    """
    return f"{REPORT_ID_PREFIX}{uuid.uuid4().hex[:16]}"
