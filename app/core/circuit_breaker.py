"""
Circuit breaker for external services.

CLOSED passes calls through and counts failures inside a sliding window.
Reaching the threshold trips the breaker to OPEN, which rejects calls until
the reset timeout elapses. The next call then runs in HALF_OPEN: enough
consecutive successes close the circuit again, a single failure re-opens it.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout: float = 30.0  # seconds
    success_threshold: int = 2
    failure_window: float = 60.0  # seconds
    is_failure: Optional[Callable[[BaseException], bool]] = None
    on_state_change: Optional[Callable[[CircuitState, CircuitState, str], None]] = None


@dataclass
class CircuitBreakerStats:
    name: str
    state: CircuitState
    failures: int
    successes: int
    last_failure_time: Optional[float]
    last_success_time: Optional[float]
    total_requests: int
    total_failures: int
    total_successes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failures": self.failures,
            "successes": self.successes,
            "lastFailureTime": self.last_failure_time,
            "lastSuccessTime": self.last_success_time,
            "totalRequests": self.total_requests,
            "totalFailures": self.total_failures,
            "totalSuccesses": self.total_successes,
        }


class CircuitOpenError(Exception):
    def __init__(self, name: str, reset_time: float):
        super().__init__(f"Circuit breaker '{name}' is open. Service temporarily unavailable.")
        self.circuit_name = name
        self.reset_time = reset_time


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_times: List[float] = []
        self._half_open_successes = 0
        self._opened_at: Optional[float] = None
        self._last_failure_time: Optional[float] = None
        self._last_success_time: Optional[float] = None
        self._total_requests = 0
        self._total_failures = 0
        self._total_successes = 0

    @property
    def state(self) -> CircuitState:
        self._maybe_half_open()
        return self._state

    def is_available(self) -> bool:
        return self.state != CircuitState.OPEN

    async def execute(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        self.before_call()
        try:
            result = await fn()
        except Exception as exc:
            if self.config.is_failure is None or self.config.is_failure(exc):
                self.record_failure()
            raise
        self.record_success()
        return result

    def before_call(self) -> None:
        """Count a request, rejecting it with CircuitOpenError while open."""
        self._maybe_half_open()
        self._total_requests += 1
        if self._state == CircuitState.OPEN:
            raise CircuitOpenError(self.name, (self._opened_at or 0) + self.config.reset_timeout)

    def record_success(self) -> None:
        self._last_success_time = self._clock()
        self._total_successes += 1
        if self._state == CircuitState.HALF_OPEN:
            self._half_open_successes += 1
            if self._half_open_successes >= self.config.success_threshold:
                self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        now = self._clock()
        self._last_failure_time = now
        self._total_failures += 1
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return
        self._failure_times.append(now)
        self._prune(now)
        if self._state == CircuitState.CLOSED and len(self._failure_times) >= self.config.failure_threshold:
            self._transition(CircuitState.OPEN)

    def get_stats(self) -> CircuitBreakerStats:
        self._prune(self._clock())
        return CircuitBreakerStats(
            name=self.name,
            state=self.state,
            failures=len(self._failure_times),
            successes=self._half_open_successes,
            last_failure_time=self._last_failure_time,
            last_success_time=self._last_success_time,
            total_requests=self._total_requests,
            total_failures=self._total_failures,
            total_successes=self._total_successes,
        )

    def reset(self) -> None:
        self._transition(CircuitState.CLOSED)

    def trip(self) -> None:
        self._transition(CircuitState.OPEN)

    def _prune(self, now: float) -> None:
        cutoff = now - self.config.failure_window
        self._failure_times = [t for t in self._failure_times if t > cutoff]

    def _maybe_half_open(self) -> None:
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.config.reset_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
            self._half_open_successes = 0
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_successes = 0
        else:
            self._opened_at = None
            self._failure_times = []
            self._half_open_successes = 0
        if old_state != new_state:
            logger.info("Circuit '%s' %s -> %s", self.name, old_state.value, new_state.value)
            if self.config.on_state_change:
                self.config.on_state_change(old_state, new_state, self.name)


class CircuitBreakerRegistry:
    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, config)
        return self._breakers[name]

    def has(self, name: str) -> bool:
        return name in self._breakers

    def remove(self, name: str) -> bool:
        return self._breakers.pop(name, None) is not None

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()

    def get_all_stats(self) -> List[CircuitBreakerStats]:
        return [breaker.get_stats() for breaker in self._breakers.values()]

    @property
    def names(self) -> List[str]:
        return list(self._breakers.keys())


circuit_breakers = CircuitBreakerRegistry()


async def with_circuit_breaker(
    name: str,
    fn: Callable[[], Awaitable[Any]],
    config: Optional[CircuitBreakerConfig] = None,
) -> Any:
    return await circuit_breakers.get(name, config).execute(fn)
