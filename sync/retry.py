"""
Generic async retry combinator driven by an explicit ``RetryPolicy``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(step: float = 1.0) -> Callable[[int], float]:
    """Delay of ``attempt * step`` seconds after the given (1-based) attempt."""

    def _delay(attempt: int) -> float:
        return attempt * step

    return _delay


def _always(exc: BaseException) -> bool:
    return True


class RetryPolicy(BaseModel):
    max_attempts: int = 3
    backoff: Callable[[int], float] = linear_backoff(1.0)
    retry_on: Callable[[BaseException], bool] = _always

    model_config = {"frozen": True}


class RetryExhausted(Exception):
    """Raised when every attempt allowed by the policy failed."""

    def __init__(self, attempts: int, last_error: Optional[BaseException]) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"gave up after {attempts} attempts: {last_error}")


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """
    Await ``operation()`` until it succeeds or the policy gives up.

    Errors rejected by ``policy.retry_on`` propagate immediately.
    Otherwise the last error is wrapped in ``RetryExhausted``.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if not policy.retry_on(exc):
                raise
            last_error = exc
            logger.warning(
                "%s attempt %d/%d failed: %s", label, attempt, policy.max_attempts, exc,
            )
            if attempt < policy.max_attempts:
                await sleep(policy.backoff(attempt))

    raise RetryExhausted(policy.max_attempts, last_error)
