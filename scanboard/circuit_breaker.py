from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Advisory breaker for calls to unreliable upstreams.

    The breaker never runs the guarded call. Callers ask ``can_execute()``,
    perform the call themselves and report the outcome through
    ``on_success()`` / ``on_failure()``. OPEN moves to HALF_OPEN lazily, on
    the first ``can_execute()`` after ``reset_timeout_s``.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout_s: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "default",
    ) -> None:
        if int(failure_threshold) < 1:
            raise ValueError("failure_threshold must be >= 1")
        if float(reset_timeout_s) < 0:
            raise ValueError("reset_timeout_s must be >= 0")
        self.failure_threshold = int(failure_threshold)
        self.reset_timeout_s = float(reset_timeout_s)
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def get_state(self) -> CircuitState:
        with self._lock:
            return self._state

    def can_execute(self) -> bool:
        with self._lock:
            if self._state is not CircuitState.OPEN:
                return True
            if self._clock() - self._opened_at >= self.reset_timeout_s:
                self._state = CircuitState.HALF_OPEN
                logger.info("circuit_half_open name=%s", self.name)
                return True
            return False

    def on_success(self) -> None:
        with self._lock:
            if self._state is not CircuitState.CLOSED:
                logger.info("circuit_closed name=%s", self.name)
            self._failure_count = 0
            self._state = CircuitState.CLOSED

    def on_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            if self._state is CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
                if self._state is not CircuitState.OPEN:
                    logger.warning(
                        "circuit_opened name=%s failures=%s",
                        self.name,
                        self._failure_count,
                    )
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = 0.0
