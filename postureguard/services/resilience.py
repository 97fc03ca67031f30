from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from postureguard.core.config import get_settings
from postureguard.core.errors import ProbeTimeoutError
from postureguard.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Network-level failures worth another attempt when no classifier is given.
TransientException = (TimeoutError, OSError)


@dataclass(frozen=True)
class RetryPolicy:
    timeout_ms: int
    max_attempts: int
    backoff_ms: int

    def delay_s(self, attempt: int) -> float:
        # Exponential from backoff_ms, scaled by +/-50% jitter.
        base = (self.backoff_ms / 1000.0) * (2 ** (attempt - 1))
        return base * random.uniform(0.5, 1.5)


def default_retry_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        timeout_ms=settings.aws_call_timeout_ms,
        max_attempts=max(1, settings.aws_max_attempts),
        backoff_ms=settings.aws_retry_backoff_ms,
    )


def is_transient(exc: Exception) -> bool:
    return isinstance(exc, TransientException)


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    *,
    policy: RetryPolicy | None = None,
    retryable: Callable[[Exception], bool] | None = None,
) -> Any:
    """Await ``func()`` under a per-attempt timeout, retrying classified failures.

    The last error is re-raised once attempts run out or the classifier
    rejects it.
    """
    policy = policy or default_retry_policy()
    should_retry = retryable or is_transient
    for attempt in range(1, max(policy.max_attempts, 1) + 1):
        try:
            return await asyncio.wait_for(func(), timeout=policy.timeout_ms / 1000.0)
        except Exception as exc:  # noqa: BLE001 - classified below, re-raised when final
            if attempt >= policy.max_attempts or not should_retry(exc):
                raise
            delay = policy.delay_s(attempt)
            increment_counter("aws_retries_total")
            logger.debug("aws_call_retry attempt=%s delay_s=%.3f error=%s", attempt, delay, exc)
            await asyncio.sleep(delay)
    raise RuntimeError("retry loop exited without a result")


async def with_deadline(awaitable: Awaitable[T], *, timeout_s: float, label: str) -> T:
    # Expiry surfaces as ProbeTimeoutError so callers treat it like any probe failure.
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        increment_counter("probe_timeouts_total")
        logger.warning("probe_deadline_exceeded label=%s timeout_s=%s", label, timeout_s)
        raise ProbeTimeoutError(f"{label} did not finish within {timeout_s}s") from exc
