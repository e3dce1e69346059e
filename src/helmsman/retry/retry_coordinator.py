"""Retry Coordinator - Exponential backoff and per-key circuit breaking."""

import asyncio
import random
import re
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from helmsman.core.config import Config
from helmsman.core.types import RetryResult


logger = structlog.get_logger()

T = TypeVar("T")

HISTORY_LIMIT = 100
RECENT_FAILURE_WINDOW = 60.0

NON_RETRYABLE_PATTERNS = [
    re.compile(r"permission denied", re.IGNORECASE),
    re.compile(r"access denied", re.IGNORECASE),
    re.compile(r"not found", re.IGNORECASE),
    re.compile(r"invalid", re.IGNORECASE),
    re.compile(r"unauthorized", re.IGNORECASE),
    re.compile(r"forbidden", re.IGNORECASE),
    re.compile(r"aborted", re.IGNORECASE),
    re.compile(r"cancelled", re.IGNORECASE),
]

CIRCUIT_OPEN_MESSAGE = "Circuit breaker is open - too many recent failures"


@dataclass
class CircuitBreakerState:
    failures: int = 0
    last_failure: float = 0.0
    is_open: bool = False


@dataclass(frozen=True)
class RetryRecord:
    operation: str
    attempts: int
    success: bool
    timestamp: float


@dataclass(frozen=True)
class RetryStatistics:
    total_operations: int
    success_rate: float
    average_attempts: float
    recent_failures: int


class RetryCoordinator:
    """Runs async operations with retry, backoff and circuit breaking.

    Breaker state and history are owned by the instance, so two agents never
    share them.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the coordinator.

        Args:
            config: Application configuration (retry and circuit settings)
            clock: Monotonic time source in seconds
            sleep: Coroutine used to wait between attempts
            rng: Uniform [0, 1) source for jitter
        """
        self.config = config or Config()
        self.max_retries = self.config.max_retries
        self.base_delay = self.config.retry_base_delay
        self.max_delay = self.config.retry_max_delay
        self.exponential_base = self.config.retry_exponential_base
        self.jitter = self.config.retry_jitter
        self.circuit_threshold = self.config.circuit_threshold
        self.circuit_reset_time = self.config.circuit_reset_time

        self._clock = clock
        self._sleep = sleep
        self._rng = rng
        self._circuit_breakers: dict[str, CircuitBreakerState] = {}
        self._history: deque[RetryRecord] = deque(maxlen=HISTORY_LIMIT)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str = "operation",
        should_retry: Callable[[Exception, int], bool] | None = None,
    ) -> RetryResult[T]:
        """Execute an operation with retry logic.

        Args:
            operation: Zero-argument coroutine function to run
            name: Operation name for logs and statistics
            should_retry: Optional predicate; returning False stops retrying

        Returns:
            RetryResult with the final outcome
        """
        start = self._clock()
        last_error: Exception | None = None
        attempts = 0

        while attempts <= self.max_retries:
            attempts += 1
            try:
                result = await operation()
            except Exception as e:
                last_error = e
                logger.warning(
                    "operation_attempt_failed",
                    operation=name,
                    attempt=attempts,
                    error=self._message(e),
                )

                if attempts > self.max_retries:
                    break
                if should_retry is not None and not should_retry(e, attempts):
                    logger.debug("retry_declined_by_caller", operation=name)
                    break
                if self.is_non_retryable(e):
                    logger.debug("retry_skipped_non_retryable", operation=name)
                    break

                delay = self.calculate_delay(attempts)
                logger.debug("retry_scheduled", operation=name, delay=round(delay, 3))
                await self._sleep(delay)
                continue

            self._record(name, attempts, True)
            return RetryResult(
                success=True,
                result=result,
                attempts=attempts,
                total_time=self._clock() - start,
            )

        self._record(name, attempts, False)
        error = self._message(last_error) if last_error else "Unknown error"
        logger.error("operation_failed", operation=name, attempts=attempts, error=error)
        return RetryResult(
            success=False,
            error=error,
            attempts=attempts,
            total_time=self._clock() - start,
        )

    async def execute_with_circuit_breaker(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        circuit_key: str,
    ) -> RetryResult[T]:
        """Execute an operation behind a per-key circuit breaker.

        Args:
            operation: Zero-argument coroutine function to run
            name: Operation name for logs and statistics
            circuit_key: Breaker key (e.g. the action type)

        Returns:
            RetryResult; attempts is 0 when the breaker rejected the call
        """
        if self.is_circuit_open(circuit_key):
            logger.warning("circuit_open_rejected", operation=name, circuit=circuit_key)
            return RetryResult(success=False, error=CIRCUIT_OPEN_MESSAGE, attempts=0)

        result = await self.execute(operation, name)
        self._update_circuit_breaker(circuit_key, result.success)
        return result

    def calculate_delay(self, attempt: int) -> float:
        """Backoff delay in seconds before the retry following `attempt`."""
        delay = self.base_delay * self.exponential_base ** max(attempt - 1, 0)
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= 0.5 + self._rng() * 0.5

        return delay

    @staticmethod
    def is_non_retryable(error: BaseException) -> bool:
        message = str(error)
        return any(pattern.search(message) for pattern in NON_RETRYABLE_PATTERNS)

    def is_circuit_open(self, key: str) -> bool:
        breaker = self._circuit_breakers.get(key)
        if breaker is None:
            return False

        if breaker.is_open and self._clock() - breaker.last_failure >= self.circuit_reset_time:
            breaker.is_open = False
            breaker.failures = 0
            logger.info("circuit_half_closed", circuit=key)

        return breaker.is_open

    def get_circuit_state(self, key: str) -> CircuitBreakerState:
        """Snapshot of a breaker's state (closed and empty if unknown)."""
        breaker = self._circuit_breakers.get(key)
        return replace(breaker) if breaker else CircuitBreakerState()

    def _update_circuit_breaker(self, key: str, success: bool) -> None:
        breaker = self._circuit_breakers.setdefault(key, CircuitBreakerState())

        if success:
            breaker.failures = 0
            breaker.is_open = False
            return

        breaker.failures += 1
        breaker.last_failure = self._clock()
        if breaker.failures >= self.circuit_threshold and not breaker.is_open:
            breaker.is_open = True
            logger.warning("circuit_opened", circuit=key, failures=breaker.failures)

    def _record(self, operation: str, attempts: int, success: bool) -> None:
        self._history.append(
            RetryRecord(
                operation=operation,
                attempts=attempts,
                success=success,
                timestamp=self._clock(),
            )
        )

    def get_statistics(self) -> RetryStatistics:
        """Aggregate statistics over the rolling history."""
        if not self._history:
            return RetryStatistics(
                total_operations=0,
                success_rate=0.0,
                average_attempts=0.0,
                recent_failures=0,
            )

        total = len(self._history)
        successful = sum(1 for r in self._history if r.success)
        cutoff = self._clock() - RECENT_FAILURE_WINDOW

        return RetryStatistics(
            total_operations=total,
            success_rate=successful / total * 100,
            average_attempts=sum(r.attempts for r in self._history) / total,
            recent_failures=sum(
                1 for r in self._history if not r.success and r.timestamp > cutoff
            ),
        )

    def reset(self) -> None:
        """Clear history and all circuit breakers."""
        self._history.clear()
        self._circuit_breakers.clear()

    @staticmethod
    def _message(error: BaseException) -> str:
        return str(error) or error.__class__.__name__
