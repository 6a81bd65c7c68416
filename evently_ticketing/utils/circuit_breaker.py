"""
Circuit breaker for calls to the payment gateway and other remote services.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..config import get_settings
from ..utils.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing fast
    HALF_OPEN = "half_open"  # Probing whether the service is back


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5
    recovery_timeout: int = 60          # Seconds before a half-open trial call
    expected_exception: type = Exception
    success_threshold: int = 2          # Trial successes needed to close
    timeout: float = 30.0               # Per-call timeout in seconds


@dataclass
class CircuitBreakerStats:
    """Circuit breaker statistics."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    total_requests: int = 0
    total_failures: int = 0
    state_changes: Dict[str, int] = field(default_factory=dict)


class CircuitBreaker:
    """Async circuit breaker."""

    def __init__(self, name: str, config: CircuitBreakerConfig):
        self.name = name
        self.config = config
        self.stats = CircuitBreakerStats()
        self._lock = asyncio.Lock()

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Await ``func(*args, **kwargs)`` under circuit breaker protection.

        Raises:
            ExternalServiceError: When the circuit is open, the call times out,
                or the call raises ``expected_exception``
        """
        async with self._lock:
            self.stats.total_requests += 1

            if self._should_attempt_reset():
                self._transition(CircuitState.HALF_OPEN)
                self.stats.success_count = 0

            if self.stats.state == CircuitState.OPEN:
                raise ExternalServiceError(
                    self.name,
                    f"Circuit breaker is OPEN for {self.name}",
                    details={
                        "state": self.stats.state.value,
                        "failure_count": self.stats.failure_count,
                    },
                    retry_after=self.config.recovery_timeout
                )

        try:
            result = await asyncio.wait_for(
                func(*args, **kwargs),
                timeout=self.config.timeout
            )
        except asyncio.TimeoutError:
            await self._record_failure()
            raise ExternalServiceError(
                self.name,
                f"Request timeout after {self.config.timeout}s",
                details={"timeout": self.config.timeout}
            )
        except ExternalServiceError:
            await self._record_failure()
            raise
        except self.config.expected_exception as e:
            await self._record_failure()
            raise ExternalServiceError(
                self.name,
                f"Service call failed: {e}",
                details={"original_error": str(e)}
            ) from e

        await self._record_success()
        return result

    async def _record_success(self):
        async with self._lock:
            self.stats.success_count += 1

            if self.stats.state == CircuitState.CLOSED:
                self.stats.failure_count = 0
            elif self.stats.success_count >= self.config.success_threshold:
                self.stats.failure_count = 0
                self._transition(CircuitState.CLOSED)

    async def _record_failure(self):
        async with self._lock:
            self.stats.failure_count += 1
            self.stats.total_failures += 1
            self.stats.last_failure_time = time.monotonic()

            if self.stats.state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif (self.stats.state == CircuitState.CLOSED and
                    self.stats.failure_count >= self.config.failure_threshold):
                self._transition(CircuitState.OPEN)

            logger.warning(f"Circuit breaker {self.name}: failure recorded ({self.stats.failure_count})")

    def _should_attempt_reset(self) -> bool:
        if self.stats.state != CircuitState.OPEN or self.stats.last_failure_time is None:
            return False
        return time.monotonic() - self.stats.last_failure_time >= self.config.recovery_timeout

    def _transition(self, new_state: CircuitState):
        key = f"{self.stats.state.value}_to_{new_state.value}"
        self.stats.state_changes[key] = self.stats.state_changes.get(key, 0) + 1
        self.stats.state = new_state
        logger.warning(f"Circuit breaker {self.name}: {new_state.value.upper()}")

    def get_stats(self) -> Dict[str, Any]:
        """Get circuit breaker statistics."""
        return {
            "name": self.name,
            "state": self.stats.state.value,
            "failure_count": self.stats.failure_count,
            "total_requests": self.stats.total_requests,
            "total_failures": self.stats.total_failures,
            "state_changes": dict(self.stats.state_changes),
        }


class CircuitBreakerRegistry:
    """Registry for managing multiple circuit breakers."""

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_breaker(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        """Get or create a circuit breaker."""
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, config or CircuitBreakerConfig())
        return self._breakers[name]

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}


# Global registry instance
_registry = CircuitBreakerRegistry()


def get_circuit_breaker(name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
    """Get a circuit breaker from the global registry."""
    return _registry.get_breaker(name, config)


def get_payment_circuit_breaker() -> CircuitBreaker:
    """Get circuit breaker for the payment gateway."""
    settings = get_settings()
    config = CircuitBreakerConfig(
        failure_threshold=settings.circuit_breaker_failure_threshold,
        recovery_timeout=settings.circuit_breaker_recovery_timeout,
        timeout=15.0
    )
    return get_circuit_breaker("payment_gateway", config)


def get_all_circuit_breaker_stats() -> Dict[str, Dict[str, Any]]:
    """Stats of every circuit breaker created so far."""
    return _registry.get_all_stats()
