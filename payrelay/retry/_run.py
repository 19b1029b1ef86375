"""
retrying() — run a Result-returning operation under a RetryPolicy.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from kungfu import Result, Ok, Error

from payrelay.retry._policy import RetryPolicy


async def retrying[T, E](
    op: Callable[[], Awaitable[Result[T, E]]],
    policy: RetryPolicy,
    retry_on: Callable[[E], bool],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Result[T, E]:
    """
    Call `op` until Ok, a non-retryable Error, or max_attempts.

    Returns the last Result as-is.

    Example:
        result = await retrying(
            lambda: store.get(order_id),
            policy,
            retry_on=lambda e: isinstance(e, StoreError),
        )
    """
    attempt = 1
    while True:
        result = await op()
        match result:
            case Ok(_):
                return result
            case Error(err):
                if not retry_on(err) or attempt >= policy.max_attempts:
                    return result
                await sleep(policy.delay(attempt))
                attempt += 1


__all__ = ("retrying",)
