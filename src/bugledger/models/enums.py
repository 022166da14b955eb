"""String enums for bug report fields."""

from enum import StrEnum


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReportStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    WONT_FIX = "wont_fix"
    DUPLICATE = "duplicate"


class FixStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IMPLEMENTED = "implemented"


def parse_enum(enum_cls: type[StrEnum], value, field_name: str) -> StrEnum:
    """Coerce ``value`` into ``enum_cls`` or raise a caller-facing ValidationError."""
    from bugledger.errors.exceptions import ValidationError

    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"{field_name} must be one of: {allowed}",
            details={"field": field_name, "value": str(value)},
        ) from None
