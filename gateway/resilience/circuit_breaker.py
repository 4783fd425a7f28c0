"""Circuit breaker for upstream API protection.

States:
- CLOSED: Healthy, requests pass through
- OPEN: Failing, requests short-circuited (fail fast)
- HALF_OPEN: Testing recovery, exactly one trial request allowed

Trips to OPEN on ``failure_threshold`` consecutive failures, or when the
failure rate over the trailing ``rolling_window`` seconds reaches
``error_threshold_percentage`` with at least ``volume_threshold`` calls.
After ``recovery_timeout`` seconds one trial call decides CLOSED or OPEN.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Read-only view of a breaker, for dashboards and /metrics."""

    name: str
    state: str
    failure_count: int
    success_count: int
    last_state_change: str
    window_calls: int
    window_failures: int
    failure_rate: float
    total_calls: int
    total_successes: int
    total_failures: int
    total_rejections: int
    total_timeouts: int

    def as_dict(self) -> dict:
        return asdict(self)


class CircuitBreaker:
    """Thread-safe circuit breaker for one upstream call path."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        error_threshold_percentage: float = 50.0,
        volume_threshold: int = 10,
        rolling_window: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.error_threshold_percentage = error_threshold_percentage
        self.volume_threshold = volume_threshold
        self.rolling_window = rolling_window
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0  # consecutive
        self._success_count = 0
        self._opened_at: float = 0
        self._trial_in_flight = False
        self._last_state_change = datetime.now(timezone.utc)
        self._window: deque[tuple[float, bool]] = deque()
        self._totals = {"calls": 0, "successes": 0, "failures": 0, "rejections": 0, "timeouts": 0}
        self._lock = threading.Lock()

    def _transition(self, state: CircuitState) -> None:
        self._state = state
        self._last_state_change = datetime.now(timezone.utc)

    def _refresh(self) -> None:
        """Move OPEN -> HALF_OPEN once the recovery timeout has elapsed. Lock held."""
        if self._state == CircuitState.OPEN:
            if self._clock() - self._opened_at >= self.recovery_timeout:
                self._transition(CircuitState.HALF_OPEN)
                self._trial_in_flight = False
                logger.info("Circuit %s -> HALF_OPEN", self.name)

    def _prune(self, now: float) -> None:
        horizon = now - self.rolling_window
        while self._window and self._window[0][0] < horizon:
            self._window.popleft()

    def _trip(self, reason: str) -> None:
        self._transition(CircuitState.OPEN)
        self._opened_at = self._clock()
        self._trial_in_flight = False
        logger.warning("Circuit %s -> OPEN (%s)", self.name, reason)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh()
            return self._state

    def allow_request(self) -> bool:
        """Check if the circuit allows a request through.

        In HALF_OPEN only the first caller gets through until its outcome
        is recorded. Denied requests are counted as rejections.
        """
        with self._lock:
            self._refresh()
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            self._totals["rejections"] += 1
            return False

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._window.append((now, True))
            self._totals["calls"] += 1
            self._totals["successes"] += 1
            self._failure_count = 0
            self._success_count += 1
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)
                self._trial_in_flight = False
                self._window.clear()
                logger.info("Circuit %s -> CLOSED (recovered)", self.name)

    def record_failure(self, *, timeout: bool = False) -> None:
        """Record a failed call."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._window.append((now, False))
            self._totals["calls"] += 1
            self._totals["failures"] += 1
            if timeout:
                self._totals["timeouts"] += 1
            self._failure_count += 1
            self._success_count = 0

            if self._state == CircuitState.HALF_OPEN:
                self._trip("half-open test failed")
                return
            if self._state != CircuitState.CLOSED:
                return

            if self._failure_count >= self.failure_threshold:
                self._trip(f"{self._failure_count} consecutive failures")
                return
            calls = len(self._window)
            failures = sum(1 for _, ok in self._window if not ok)
            if calls >= self.volume_threshold and failures * 100 >= self.error_threshold_percentage * calls:
                self._trip(f"{failures}/{calls} failures in {self.rolling_window:g}s")

    def reset(self) -> None:
        """Manually reset the circuit to CLOSED."""
        with self._lock:
            self._transition(CircuitState.CLOSED)
            self._failure_count = 0
            self._success_count = 0
            self._trial_in_flight = False
            self._window.clear()

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            self._refresh()
            horizon = self._clock() - self.rolling_window
            recent = [ok for ts, ok in self._window if ts >= horizon]
            calls = len(recent)
            failures = recent.count(False)
            return BreakerSnapshot(
                name=self.name,
                state=self._state.value,
                failure_count=self._failure_count,
                success_count=self._success_count,
                last_state_change=self._last_state_change.isoformat(),
                window_calls=calls,
                window_failures=failures,
                failure_rate=round(failures / calls, 4) if calls else 0.0,
                total_calls=self._totals["calls"],
                total_successes=self._totals["successes"],
                total_failures=self._totals["failures"],
                total_rejections=self._totals["rejections"],
                total_timeouts=self._totals["timeouts"],
            )


class CircuitBreakerRegistry:
    """One breaker per upstream name, all sharing the same defaults."""

    def __init__(self, **defaults) -> None:
        self._defaults = defaults
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> CircuitBreakerRegistry:
        return cls(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            recovery_timeout=settings.circuit_breaker_reset_timeout / 1000.0,
            error_threshold_percentage=settings.circuit_breaker_error_threshold,
            volume_threshold=settings.circuit_breaker_volume_threshold,
            rolling_window=settings.circuit_breaker_rolling_window,
        )

    def get(self, name: str) -> CircuitBreaker:
        """Get or create the breaker for an upstream."""
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(name=name, **self._defaults)
            return self._breakers[name]

    def names(self) -> list[str]:
        with self._lock:
            return list(self._breakers)

    def get_all_states(self) -> dict[str, str]:
        return {name: self.get(name).state.value for name in self.names()}

    def snapshots(self) -> dict[str, dict]:
        return {name: self.get(name).snapshot().as_dict() for name in self.names()}

    def any_open(self) -> bool:
        return any(state == CircuitState.OPEN.value for state in self.get_all_states().values())
