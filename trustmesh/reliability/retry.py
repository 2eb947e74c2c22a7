"""
Retry Policy: Exponential Backoff

Implements the retry strategy used by the readiness check:
- Exponential backoff: base × 2^n, capped at max_delay_ms
- Optional full jitter: random(0, backoff)
- Retry budget counted in retries after the first attempt

Readiness schedule: 1000ms, 2000ms, 3000ms, 3000ms, ... (15 retries)
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Type, TypeVar

from trustmesh.core import constants as C
from trustmesh.core.types import Result, Ok, Err
from trustmesh.core.errors import ReliabilityError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration."""

    max_retries: int = 3
    base_delay_ms: int = 100
    max_delay_ms: int = 10000
    exponential_base: float = 2.0
    jitter: bool = True  # Full jitter
    retryable_exceptions: tuple[Type[BaseException], ...] = (Exception,)
    non_retryable_exceptions: tuple[Type[BaseException], ...] = ()

    # Timeout tiers (None disables)
    request_timeout_s: Optional[float] = None
    global_timeout_s: Optional[float] = None

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def default(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """No retries (for non-idempotent operations)."""
        return cls(max_retries=0)

    @classmethod
    def readiness(
        cls,
        initial_delay_ms: int = C.READINESS_INITIAL_DELAY_MS,
        max_delay_ms: int = C.READINESS_MAX_DELAY_MS,
        max_retries: int = C.READINESS_MAX_RETRIES,
        retryable_exceptions: tuple[Type[BaseException], ...] = (Exception,),
        non_retryable_exceptions: tuple[Type[BaseException], ...] = (),
    ) -> RetryPolicy:
        """Deterministic schedule for the store readiness check."""
        return cls(
            max_retries=max_retries,
            base_delay_ms=initial_delay_ms,
            max_delay_ms=max_delay_ms,
            jitter=False,
            retryable_exceptions=retryable_exceptions,
            non_retryable_exceptions=non_retryable_exceptions,
        )


@dataclass
class RetryStats:
    """Retry attempt statistics."""
    total_attempts: int = 0
    failed_attempts: int = 0
    total_delay_ms: float = 0.0
    last_error: Optional[str] = None


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    sleep: Sleeper = asyncio.sleep,
    stats: Optional[RetryStats] = None,
) -> Result[T, ReliabilityError]:
    """
    Execute async function with retry and exponential backoff.

    Args:
        func: Async function to execute; failures are signalled by raising
        policy: Retry configuration (default if None)
        sleep: Awaitable sleeper taking seconds (injectable for tests)
        stats: Optional accumulator for attempt statistics

    Returns:
        Ok with result, or Err(ReliabilityError) whose cause is the last
        exception raised by func
    """
    if policy is None:
        policy = RetryPolicy.default()
    if stats is None:
        stats = RetryStats()

    last_exception: Optional[BaseException] = None
    deadline = (
        time.monotonic() + policy.global_timeout_s
        if policy.global_timeout_s is not None else None
    )

    for attempt in range(policy.max_attempts):
        if deadline is not None and time.monotonic() >= deadline:
            break

        stats.total_attempts += 1
        try:
            if policy.request_timeout_s is not None:
                result = await asyncio.wait_for(func(), timeout=policy.request_timeout_s)
            else:
                result = await func()
            return Ok(result)

        except policy.non_retryable_exceptions as e:
            stats.failed_attempts += 1
            stats.last_error = str(e)
            return Err(ReliabilityError.retry_exhausted(
                attempts=stats.total_attempts,
                last_error=str(e),
                cause=e,
            ))

        except policy.retryable_exceptions as e:
            last_exception = e
            stats.failed_attempts += 1
            stats.last_error = str(e)
            logger.debug("Attempt %d failed: %s", attempt + 1, e)

        if attempt < policy.max_retries:
            delay = calculate_backoff(
                attempt=attempt,
                base_delay_ms=policy.base_delay_ms,
                max_delay_ms=policy.max_delay_ms,
                exponential_base=policy.exponential_base,
                jitter=policy.jitter,
            )
            stats.total_delay_ms += delay
            logger.debug("Retrying in %.0fms (attempt %d)", delay, attempt + 2)
            await sleep(delay / 1000)

    return Err(ReliabilityError.retry_exhausted(
        attempts=stats.total_attempts,
        last_error=str(last_exception) if last_exception else "Timeout",
        cause=last_exception,
    ))


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float,
    jitter: bool,
) -> float:
    """
    Calculate backoff delay with optional jitter.

    Without jitter: min(cap, base * 2^attempt)
    Full jitter: random(0, min(cap, base * 2^attempt))
    """
    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))

    if jitter:
        delay = random.uniform(0, delay)

    return delay
