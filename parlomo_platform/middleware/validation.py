"""
Request validation middleware: size, content type and paging parameters.
"""

import logging
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from ..utils.exceptions import ValidationError, ErrorCode

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DANGEROUS_FRAGMENTS = ["<", ">", "javascript:", "vbscript:"]


class ValidationMiddleware(BaseHTTPMiddleware):
    """Reject oversized bodies, non-JSON bodies and malformed paging parameters."""

    def __init__(self, app, max_request_size: int = 10 * 1024 * 1024):
        super().__init__(app)
        self.max_request_size = max_request_size

    async def dispatch(self, request: Request, call_next):
        content_length = self._content_length(request)

        if content_length > self.max_request_size:
            return JSONResponse(
                status_code=413,
                content={
                    "error": {
                        "error_code": ErrorCode.VALIDATION_ERROR.value,
                        "message": f"Request too large. Maximum size is {self.max_request_size} bytes",
                        "suggestions": ["Reduce request payload size"]
                    }
                }
            )

        if request.method in ["POST", "PUT", "PATCH"] and content_length > 0:
            validation_error = self._validate_content_type(request)
            if validation_error:
                return validation_error

        validation_error = self._validate_query_parameters(request)
        if validation_error:
            return validation_error

        return await call_next(request)

    def _content_length(self, request: Request) -> int:
        try:
            return int(request.headers.get("content-length") or 0)
        except ValueError:
            return 0

    def _validate_content_type(self, request: Request) -> Optional[JSONResponse]:
        content_type = request.headers.get("content-type", "")

        # Image uploads for events and categories
        if content_type.startswith("multipart/"):
            return None

        if not content_type.startswith("application/json"):
            error = ValidationError(
                "Invalid content type",
                details={"expected": "application/json", "received": content_type},
                suggestions=["Set Content-Type header to application/json"]
            )
            return JSONResponse(status_code=415, content={"error": error.to_dict()})

        return None

    def _validate_query_parameters(self, request: Request) -> Optional[JSONResponse]:
        errors = []

        for param, value in request.query_params.items():
            if param in ("page", "limit"):
                try:
                    number = int(value)
                except ValueError:
                    errors.append(f"Parameter '{param}' must be an integer, got '{value}'")
                    continue
                if number < 1:
                    errors.append(f"Parameter '{param}' must be positive, got {number}")
                elif param == "limit" and number > MAX_PAGE_SIZE:
                    errors.append(f"Parameter 'limit' cannot exceed {MAX_PAGE_SIZE}, got {number}")

            elif param == "sort_order":
                if value.lower() not in ["asc", "desc"]:
                    errors.append(f"Parameter 'sort_order' must be 'asc' or 'desc', got '{value}'")

            elif any(fragment in value.lower() for fragment in DANGEROUS_FRAGMENTS):
                errors.append(f"Parameter '{param}' contains invalid characters")

        if errors:
            logger.info(f"Rejected query parameters on {request.url.path}: {errors}")
            error = ValidationError(
                "Invalid query parameters",
                details={"parameter_errors": errors},
                suggestions=["Check parameter values and types"]
            )
            return JSONResponse(status_code=400, content={"error": error.to_dict()})

        return None
