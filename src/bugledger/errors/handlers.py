"""FastAPI exception handlers producing the ErrorResponse envelope."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from bugledger.errors.exceptions import BugLedgerError, StoreError, ValidationError
from bugledger.models.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def _render(request: Request, exc: BugLedgerError) -> JSONResponse:
    trace_id = getattr(request.state, "trace_id", "unknown")
    error_response = ErrorResponse(
        error=ErrorDetail(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


def _describe_validation_errors(exc: RequestValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        details.append({
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "invalid value"),
        })
    return details


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app."""

    @app.exception_handler(BugLedgerError)
    async def bugledger_error_handler(request: Request, exc: BugLedgerError):
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                extra={"path": request.url.path, "method": request.method, "code": exc.code},
            )
        return _render(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = _describe_validation_errors(exc)
        message = details[0]["message"] if len(details) == 1 else "Request validation failed"
        return _render(request, ValidationError(message, details=details))

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception(
            "store_failure",
            extra={"path": request.url.path, "method": request.method},
            exc_info=exc,
        )
        return _render(request, StoreError())
