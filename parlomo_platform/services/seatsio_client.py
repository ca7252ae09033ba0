"""
Thin async client for the seats.io REST API.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import get_settings
from ..utils.circuit_breaker import get_seatsio_circuit_breaker
from ..utils.exceptions import SeatsioServiceError
from ..utils.retry import retry_on_timeout

logger = logging.getLogger(__name__)

_shared_http: Optional[httpx.AsyncClient] = None


def shared_http_client() -> httpx.AsyncClient:
    """Process-wide connection pool for seats.io calls."""
    global _shared_http
    if _shared_http is None or _shared_http.is_closed:
        _shared_http = httpx.AsyncClient(limits=httpx.Limits(max_connections=20, max_keepalive_connections=10))
    return _shared_http


async def close_seatsio_client() -> None:
    global _shared_http
    if _shared_http is not None:
        await _shared_http.aclose()
    _shared_http = None


class SeatsioClient:
    """
    Calls seats.io with the workspace secret key.

    Every request goes through the seats.io circuit breaker. Timeouts and
    connection errors are retried with backoff before they count as a failure.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.seatsio_secret_key
        self.base_url = base_url or settings.seatsio_base_url
        self.timeout = timeout or settings.seatsio_timeout
        self._http = httpx.AsyncClient(transport=transport) if transport else None
        self.breaker = get_seatsio_circuit_breaker(self.timeout)
        self.use_breaker = settings.enable_circuit_breakers

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http or shared_http_client()

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    async def change_object_status(self, event_key: str, objects: List[str], status: str) -> Dict[str, Any]:
        """Give the objects a custom status so they cannot be booked."""
        return await self._request(
            "POST",
            f"/events/{event_key}/actions/change-object-status",
            json={"objects": objects, "status": status},
        )

    async def release_objects(self, event_key: str, objects: List[str]) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/events/{event_key}/actions/release",
            json={"objects": objects},
        )

    async def summary_by_category(self, event_key: str) -> Dict[str, Any]:
        """Object counts per category label and status."""
        return await self._request("GET", f"/reports/events/{event_key}/summary/byCategoryLabel")

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.configured:
            raise SeatsioServiceError("seats.io is not configured", status_code=503)
        if not self.use_breaker:
            return await self._call(method, path, json)
        return await self.breaker.call(self._call, method, path, json)

    async def _call(self, method: str, path: str, json: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            return await self._send(method, path, json)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            raise SeatsioServiceError(f"seats.io did not respond: {e}", status_code=503)

    @retry_on_timeout()
    async def _send(self, method: str, path: str, json: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = await self.http.request(
                method,
                f"{self.base_url.rstrip('/')}{path}",
                json=json,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
            )
        except (httpx.TimeoutException, httpx.ConnectError):
            raise
        except httpx.HTTPError as e:
            raise SeatsioServiceError(f"Request failed: {e}", status_code=502)

        if response.status_code >= 400:
            logger.warning(f"seats.io {method} {path} returned {response.status_code}: {response.text[:200]}")
            status_code = 503 if response.status_code >= 500 else 502
            raise SeatsioServiceError(
                self._error_message(response),
                status_code=status_code,
                details={"upstream_status": response.status_code},
            )

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"seats.io returned HTTP {response.status_code}"
        errors = body.get("errors") or body.get("messages") or []
        if errors and isinstance(errors[0], dict):
            return errors[0].get("message", str(errors[0]))
        if errors:
            return str(errors[0])
        return f"seats.io returned HTTP {response.status_code}"
