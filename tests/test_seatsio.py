"""Tests for the seats.io client, its circuit breaker and retries."""

import json

import httpx
import pytest

from parlomo_platform.services.seat_blocking_service import summarize_category
from parlomo_platform.services.seatsio_client import SeatsioClient, close_seatsio_client
from parlomo_platform.utils.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    get_circuit_breaker_stats,
)
from parlomo_platform.utils.exceptions import ExternalServiceError, SeatsioServiceError
from parlomo_platform.utils.retry import RetryConfig, retry_async


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(RetryConfig, "delay_for", lambda self, attempt: 0)


def make_client(handler):
    client = SeatsioClient(
        secret_key="sk-test",
        base_url="https://api-eu.seatsio.net",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )
    client.breaker.reset()
    return client


class TestSeatsioClient:
    async def test_change_object_status(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(204)

        client = make_client(handler)
        result = await client.change_object_status("evt-1", ["A-1", "A-2"], "Maintenance")

        assert result == {}
        assert seen["method"] == "POST"
        assert seen["path"] == "/events/evt-1/actions/change-object-status"
        assert seen["body"] == {"objects": ["A-1", "A-2"], "status": "Maintenance"}
        assert seen["auth"].startswith("Basic ")

    async def test_summary_by_category(self):
        summary = {"Stalls": {"count": 10, "byStatus": {"free": 7, "booked": 3}}}

        def handler(request):
            assert request.url.path == "/reports/events/evt-1/summary/byCategoryLabel"
            return httpx.Response(200, json=summary)

        assert await make_client(handler).summary_by_category("evt-1") == summary

    async def test_client_error_message(self):
        def handler(request):
            return httpx.Response(400, json={"errors": [{"code": "ILLEGAL_ARGUMENT", "message": "Unknown object A-9"}]})

        with pytest.raises(SeatsioServiceError) as exc_info:
            await make_client(handler).release_objects("evt-1", ["A-9"])

        assert exc_info.value.status_code == 502
        assert "Unknown object A-9" in exc_info.value.message
        assert exc_info.value.details["upstream_status"] == 400

    async def test_server_error_is_unavailable(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        with pytest.raises(SeatsioServiceError) as exc_info:
            await make_client(handler).release_objects("evt-1", ["A-1"])
        assert exc_info.value.status_code == 503

    async def test_timeouts_are_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectTimeout("timed out", request=request)
            return httpx.Response(200, json={"ok": True})

        assert await make_client(handler).release_objects("evt-1", ["A-1"]) == {"ok": True}
        assert len(attempts) == 3

    async def test_persistent_timeout_becomes_service_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SeatsioServiceError) as exc_info:
            await make_client(handler).release_objects("evt-1", ["A-1"])
        assert exc_info.value.status_code == 503

    async def test_not_configured(self):
        client = SeatsioClient(secret_key="", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client.secret_key = None
        with pytest.raises(SeatsioServiceError):
            await client.summary_by_category("evt-1")

    async def test_clients_share_one_connection_pool(self):
        first, second = SeatsioClient(secret_key="sk-test"), SeatsioClient(secret_key="sk-test")
        pool = first.http
        assert second.http is pool
        assert make_client(lambda r: httpx.Response(200)).http is not pool

        await close_seatsio_client()
        assert pool.is_closed
        assert first.http is second.http
        assert first.http is not pool
        await close_seatsio_client()

    async def test_breaker_opens_after_repeated_failures(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = make_client(handler)
        for _ in range(client.breaker.config.failure_threshold):
            with pytest.raises(SeatsioServiceError):
                await client.release_objects("evt-1", ["A-1"])

        assert client.breaker.state == CircuitState.OPEN
        with pytest.raises(SeatsioServiceError) as exc_info:
            await client.release_objects("evt-1", ["A-1"])
        assert "temporarily unavailable" in exc_info.value.message
        assert len(calls) == client.breaker.config.failure_threshold
        assert get_circuit_breaker_stats()["seatsio"]["state"] == "open"
        client.breaker.reset()


class TestCircuitBreaker:
    async def test_half_open_recovers(self):
        breaker = CircuitBreaker(
            "test", CircuitBreakerConfig(failure_threshold=1, recovery_timeout=0, success_threshold=2)
        )

        async def failing():
            raise ExternalServiceError("test", "down")

        async def working():
            return "ok"

        with pytest.raises(ExternalServiceError):
            await breaker.call(failing)
        assert breaker.state == CircuitState.OPEN

        assert await breaker.call(working) == "ok"
        assert breaker.state == CircuitState.HALF_OPEN
        assert await breaker.call(working) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats()["state_changes"]["half_open_to_closed"] == 1

    async def test_other_errors_do_not_count(self):
        breaker = CircuitBreaker("test", CircuitBreakerConfig(failure_threshold=1))

        async def buggy():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await breaker.call(buggy)
        assert breaker.state == CircuitState.CLOSED


async def test_retry_async_gives_up():
    attempts = []

    async def flaky():
        attempts.append(1)
        raise httpx.ReadTimeout("slow")

    with pytest.raises(httpx.ReadTimeout):
        await retry_async(
            flaky,
            config=RetryConfig(max_attempts=2),
            retryable_exceptions=(httpx.TimeoutException,),
        )
    assert len(attempts) == 2


def test_summarize_category():
    summary = {"count": 10, "byStatus": {"free": 5, "booked": 2, "reservedByToken": 1, "held": 1, "Maintenance": 1}}
    result = summarize_category("Stalls", summary)
    assert result["total"] == 10
    assert result["available"] == 5
    assert result["booked"] == 2
    assert result["held"] == 2
    assert result["blocked"] == 1
