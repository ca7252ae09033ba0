"""
Error handling middleware that renders domain errors as JSON responses.

Route handlers translate the errors they expect into ``HTTPException``;
anything that escapes them ends up here.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as SQLTimeoutError
from starlette.middleware.base import BaseHTTPMiddleware

from ..utils.exceptions import (
    ConcurrencyError,
    DuplicateResourceError,
    ErrorCode,
    ExternalServiceError,
    NotFoundError,
    ParlomoError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.DUPLICATE_RESOURCE: status.HTTP_409_CONFLICT,
    ErrorCode.INSUFFICIENT_CAPACITY: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATE_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.RESOURCE_IN_USE: status.HTTP_409_CONFLICT,
    ErrorCode.PROMO_CODE_INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CHECKOUT_EXPIRED: status.HTTP_410_GONE,
    ErrorCode.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.RATE_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.EXTERNAL_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.SEATSIO_SERVICE_ERROR: status.HTTP_502_BAD_GATEWAY,
}

# Named constraints from the models and the error they stand for
CONSTRAINT_ERRORS = {
    "uq_users_email": lambda: DuplicateResourceError("An account with this email already exists"),
    "uq_promo_codes_event_code": lambda: DuplicateResourceError("This promo code already exists for the event"),
    "uq_seat_blocks_event_label": lambda: ConcurrencyError("Seat block changed concurrently"),
    "ck_ticket_types_capacity_consistency": lambda: ConcurrencyError(
        "Ticket availability changed while processing the request"
    ),
}


def error_body(error: ParlomoError, error_id: str) -> Dict[str, Any]:
    return {
        "error": error.to_dict(),
        "error_id": error_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def integrity_error_to_domain(exc: IntegrityError) -> ParlomoError:
    """Translate a database constraint violation into the matching domain error."""
    message = str(getattr(exc, "orig", exc)).lower()

    for constraint, build in CONSTRAINT_ERRORS.items():
        if constraint in message:
            return build()

    if "unique" in message:
        return DuplicateResourceError("A record with this information already exists")
    if "foreign key" in message:
        return ValidationError("Referenced resource does not exist", details={"constraint_type": "foreign_key"})
    if "not null" in message:
        return ValidationError("Required field is missing", details={"constraint_type": "not_null"})
    return ValidationError("Data integrity constraint violation", details={"constraint_type": "check"})


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns uncaught exceptions into the platform's JSON error envelope."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid4())
            self._log_error(request, exc, error_id)
            return self._render(exc, error_id)

    def _render(self, exc: Exception, error_id: str) -> JSONResponse:
        if isinstance(exc, ParlomoError):
            return self._domain_response(exc, error_id)

        if isinstance(exc, PydanticValidationError):
            field_errors: Dict[str, list] = {}
            for error in exc.errors():
                field_path = ".".join(str(loc) for loc in error["loc"])
                field_errors.setdefault(field_path, []).append(error["msg"])
            return self._domain_response(
                ValidationError("Request validation failed", field_errors=field_errors), error_id
            )

        if isinstance(exc, IntegrityError):
            domain_error = integrity_error_to_domain(exc)
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content=error_body(domain_error, error_id),
                headers=self._retry_headers(domain_error),
            )

        if isinstance(exc, (OperationalError, SQLTimeoutError)):
            domain_error = ExternalServiceError(
                "database",
                "Database service temporarily unavailable",
                details={"error_type": type(exc).__name__},
                retry_after=30,
            )
            return self._domain_response(domain_error, error_id)

        domain_error = ParlomoError(
            "An unexpected error occurred",
            error_code=ErrorCode.INTERNAL_ERROR,
            details={"error_type": type(exc).__name__} if self.debug else None,
        )
        content = error_body(domain_error, error_id)
        if self.debug:
            content["debug"] = {"exception": str(exc), "traceback": traceback.format_exc()}
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    def _domain_response(self, exc: ParlomoError, error_id: str) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_for(exc),
            content=error_body(exc, error_id),
            headers=self._retry_headers(exc),
        )

    @staticmethod
    def status_for(exc: ParlomoError) -> int:
        """HTTP status for a domain error; upstream errors keep the status they were raised with."""
        if isinstance(exc, ExternalServiceError) and exc.status_code and exc.status_code >= 500:
            return exc.status_code
        return STATUS_BY_CODE.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    @staticmethod
    def _retry_headers(exc: ParlomoError) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(exc.retry_after)} if exc.retry_after else None

    def _log_error(self, request: Request, exc: Exception, error_id: str) -> None:
        context = {
            "error_id": error_id,
            "request": {
                "method": request.method,
                "url": str(request.url),
                "client_ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent"),
            },
        }
        user = getattr(request.state, "user", None)
        if user is not None:
            context["user"] = {"user_id": str(user.id), "role": user.role.value}

        if not isinstance(exc, ParlomoError):
            context["error_type"] = type(exc).__name__
            logger.error(f"Unexpected error [{error_id}]: {exc}", exc_info=exc, extra=context)
            return

        context.update(error_code=exc.error_code.value, details=exc.details)
        if isinstance(exc, (ValidationError, NotFoundError)):
            logger.warning(f"Client error [{error_id}]: {exc.message}", extra=context)
        elif isinstance(exc, (ConcurrencyError, ExternalServiceError)):
            logger.error(f"System error [{error_id}]: {exc.message}", extra=context)
        else:
            logger.error(f"Business error [{error_id}]: {exc.message}", extra=context)
