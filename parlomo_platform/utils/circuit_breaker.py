"""
Circuit breaker guarding calls to external services.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..config import get_settings
from ..utils.exceptions import ExternalServiceError, SeatsioServiceError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5          # Failures before the circuit opens
    recovery_timeout: int = 60          # Seconds before a trial call is allowed
    success_threshold: int = 2          # Trial successes needed to close again
    timeout: float = 30.0               # Per-call timeout in seconds


@dataclass
class CircuitBreakerStats:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    total_requests: int = 0
    total_failures: int = 0
    state_changes: Dict[str, int] = field(default_factory=lambda: {
        "closed_to_open": 0,
        "open_to_half_open": 0,
        "half_open_to_closed": 0,
        "half_open_to_open": 0
    })


ErrorFactory = Callable[[str, Optional[int]], ExternalServiceError]


class CircuitBreaker:
    """
    Fails fast once a service keeps failing.

    Only ``ExternalServiceError`` (and timeouts) count as failures; they are
    re-raised unchanged so callers keep the original status code. Timeouts
    and the open-circuit rejection are raised through ``error_factory``.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig,
        error_factory: Optional[ErrorFactory] = None
    ):
        self.name = name
        self.config = config
        self.stats = CircuitBreakerStats()
        self._error_factory = error_factory or (
            lambda message, status_code: ExternalServiceError(name, message, status_code=status_code)
        )
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self.stats.state

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute ``func`` with circuit breaker protection."""
        async with self._lock:
            self.stats.total_requests += 1
            if self._should_attempt_reset():
                self._transition(CircuitState.HALF_OPEN, "open_to_half_open")
                self.stats.success_count = 0

            if self.stats.state == CircuitState.OPEN:
                raise self._error_factory(
                    f"{self.name} is temporarily unavailable", 503
                )

        try:
            result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            await self._record_failure()
            raise self._error_factory(f"Request timeout after {self.config.timeout}s", 503)
        except ExternalServiceError:
            await self._record_failure()
            raise

        await self._record_success()
        return result

    async def _record_success(self):
        async with self._lock:
            if self.stats.state == CircuitState.HALF_OPEN:
                self.stats.success_count += 1
                if self.stats.success_count >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED, "half_open_to_closed")
                    logger.info(f"Circuit breaker {self.name}: CLOSED (service recovered)")
            self.stats.failure_count = 0

    async def _record_failure(self):
        async with self._lock:
            self.stats.failure_count += 1
            self.stats.total_failures += 1
            self.stats.last_failure_time = time.time()

            if self.stats.state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, "half_open_to_open")
            elif (self.stats.state == CircuitState.CLOSED
                    and self.stats.failure_count >= self.config.failure_threshold):
                self._transition(CircuitState.OPEN, "closed_to_open")

            if self.stats.state == CircuitState.OPEN:
                logger.warning(f"Circuit breaker {self.name}: OPEN (failures: {self.stats.failure_count})")

    def _should_attempt_reset(self) -> bool:
        if self.stats.state != CircuitState.OPEN or not self.stats.last_failure_time:
            return False
        return time.time() - self.stats.last_failure_time >= self.config.recovery_timeout

    def _transition(self, state: CircuitState, change: str):
        self.stats.state = state
        self.stats.state_changes[change] += 1

    def reset(self):
        self.stats = CircuitBreakerStats()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.stats.state.value,
            "failure_count": self.stats.failure_count,
            "total_requests": self.stats.total_requests,
            "total_failures": self.stats.total_failures,
            "last_failure_time": self.stats.last_failure_time,
            "state_changes": self.stats.state_changes.copy(),
        }


class CircuitBreakerRegistry:
    """Registry for managing multiple circuit breakers."""

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_breaker(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        error_factory: Optional[ErrorFactory] = None
    ) -> CircuitBreaker:
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, config or CircuitBreakerConfig(), error_factory)
        return self._breakers[name]

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}


_registry = CircuitBreakerRegistry()


def get_circuit_breaker(
    name: str,
    config: Optional[CircuitBreakerConfig] = None,
    error_factory: Optional[ErrorFactory] = None
) -> CircuitBreaker:
    """Get a circuit breaker from the global registry."""
    return _registry.get_breaker(name, config, error_factory)


def get_circuit_breaker_stats() -> Dict[str, Dict[str, Any]]:
    return _registry.get_all_stats()


def get_seatsio_circuit_breaker(timeout: float = 10.0) -> CircuitBreaker:
    """Circuit breaker for the seats.io API, tuned from settings."""
    settings = get_settings()
    config = CircuitBreakerConfig(
        failure_threshold=settings.circuit_breaker_failure_threshold,
        recovery_timeout=settings.circuit_breaker_recovery_timeout,
        timeout=timeout * 3,  # covers the client's own retries
    )
    return get_circuit_breaker(
        "seatsio",
        config,
        lambda message, status_code: SeatsioServiceError(message, status_code=status_code),
    )
