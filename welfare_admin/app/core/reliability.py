"""
Reliability Utilities.

Circuit breaker guarding outbound calls to the SMS gateway.
"""

import time
import logging
from typing import Callable, Any, Tuple, Type

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    def __init__(self, name: str, retry_after: int):
        super().__init__(f"Circuit '{name}' is OPEN")
        self.retry_after = retry_after


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    Only exceptions listed in `trip_on` count as failures; anything else
    (a bug on our side, say) propagates without touching the counters.
    After `failure_threshold` failures the circuit opens for
    `reset_timeout` seconds, then one trial call decides between closing
    and reopening.
    """
    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: int = 60,
        trip_on: Tuple[Type[BaseException], ...] = (Exception,),
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.trip_on = trip_on
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    def retry_after(self) -> int:
        remaining = self.reset_timeout - (time.monotonic() - self.last_failure_time)
        return max(int(remaining) + 1, 0) if self.state == "OPEN" else 0

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.monotonic() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError(self.name, self.retry_after())

        try:
            result = await func(*args, **kwargs)
        except self.trip_on:
            self.record_failure()
            raise
        if self.state == "HALF_OPEN" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.state == "HALF_OPEN" or self.failures >= self.failure_threshold:
            if self.state != "OPEN":
                logger.warning("Circuit '%s' opened after %d failures", self.name, self.failures)
            self.state = "OPEN"

    def reset_state(self):
        if self.state != "CLOSED":
            logger.info("Circuit '%s' closed", self.name)
        self.failures = 0
        self.state = "CLOSED"
