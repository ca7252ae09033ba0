"""
Request/response logging middleware with request ID propagation.
"""

import contextvars
import logging
import time
from typing import Dict, Iterable, Optional
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Read by RequestIDFilter so every log line carries the request ID
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="no-request-id")

QUIET_PATHS = {"/health", "/health/detailed", "/", "/docs", "/redoc", "/openapi.json"}
SLOW_REQUEST_THRESHOLD = 2.0

# Path prefix -> area tag on the log record, first match wins
AREAS = (
    ("/api/v1/ticketing/checkout", "checkout"),
    ("/api/v1/ticketing/scanner", "scanner"),
    ("/api/v1/ticketing", "ticketing"),
    ("/api/v1/financials", "financials"),
    ("/api/v1/public-events", "events"),
    ("/api/v1/auth", "auth"),
)

SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key", "x-auth-token")


def request_area(path: str) -> str:
    for prefix, area in AREAS:
        if path.startswith(prefix):
            return area
    return "other"


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


def mask_headers(headers: Dict[str, str], sensitive: Iterable[str] = SENSITIVE_HEADERS) -> Dict[str, str]:
    """Mask credentials before headers reach the log."""
    sensitive = {name.lower() for name in sensitive}
    masked = {}
    for key, value in headers.items():
        if key.lower() not in sensitive:
            masked[key] = value
        elif key.lower() == "authorization" and value.startswith("Bearer "):
            masked[key] = f"Bearer ***{value[-4:]}"
        else:
            masked[key] = "***MASKED***"
    return masked


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every request and response and tag them with an ``X-Request-ID``."""

    def __init__(self, app, log_requests: bool = True, log_responses: bool = True,
                 sensitive_headers: Optional[list] = None):
        super().__init__(app)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.sensitive_headers = tuple(sensitive_headers or SENSITIVE_HEADERS)

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        path = request.url.path
        quiet = path in QUIET_PATHS
        area = request_area(path)
        started = time.perf_counter()

        if self.log_requests:
            extra = {
                "request_id": request_id,
                "area": area,
                "method": request.method,
                "path": path,
                "query_params": dict(request.query_params),
                "client_ip": client_ip(request),
                "user_agent": request.headers.get("user-agent"),
                "headers": mask_headers(dict(request.headers), self.sensitive_headers),
            }
            log = logger.debug if quiet else logger.info
            log(f"{area} request: {request.method} {path}", extra=extra)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Request exception: {type(exc).__name__} on {request.method} {path}",
                extra={"request_id": request_id, "area": area,
                       "process_time": time.perf_counter() - started},
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)

        elapsed = time.perf_counter() - started
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        if self.log_responses and not quiet:
            self._log_response(request, response, request_id, area, elapsed)
        return response

    @staticmethod
    def _log_response(request: Request, response: Response, request_id: str, area: str, elapsed: float):
        extra = {
            "request_id": request_id,
            "area": area,
            "status_code": response.status_code,
            "process_time": elapsed,
            "response_size": response.headers.get("content-length"),
        }
        message = f"{request.method} {request.url.path} -> {response.status_code} ({elapsed:.4f}s)"
        if response.status_code >= 500:
            logger.error(message, extra=extra)
        elif response.status_code >= 400:
            logger.warning(message, extra=extra)
        else:
            logger.info(message, extra=extra)

        if elapsed > SLOW_REQUEST_THRESHOLD:
            logger.warning(f"Slow {area} request: {request.method} {request.url.path} took {elapsed:.4f}s",
                           extra={"request_id": request_id, "slow_request": True, "process_time": elapsed})
