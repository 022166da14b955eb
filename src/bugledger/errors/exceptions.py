"""Custom exception classes for the bug ledger."""


class BugLedgerError(Exception):
    """Base exception for the bug ledger."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(BugLedgerError):
    """Caller supplied a malformed or incomplete request."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class NotFoundError(BugLedgerError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class ConflictError(BugLedgerError):
    """Resource state conflict."""

    def __init__(self, message: str, details=None):
        super().__init__("CONFLICT", message, details, status_code=409)


class StoreError(BugLedgerError):
    """The durable store failed; the cause is logged, not exposed."""

    def __init__(self, message: str = "Internal store failure"):
        super().__init__("INTERNAL_ERROR", message, status_code=500)
