"""
Coordinator policy — server-side knobs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta

from payrelay.retry import RetryPolicy


def _store_retry() -> RetryPolicy:
    return RetryPolicy(
        initial_delays=(0.05, 0.1, 0.2),
        factor=2.0,
        max_delay=1.0,
        max_attempts=3,
    )


@dataclass(frozen=True, slots=True)
class CoordinatorPolicy:
    """
    Coordinator configuration.

    Example:
        policy = (
            CoordinatorPolicy()
            .with_record_ttl(days=30)
            .with_gateway_timeout(seconds=10)
            .with_max_restarts(3)
        )

    record_ttl: сколько живёт запись в store (None — вечно).
    gateway_timeout: bound on one charge call; exceeding it is TIMEOUT.
    max_restarts: CAS races tolerated before BUSY.
    store_retry: backoff for transient StoreError.
    """

    record_ttl: timedelta | None = timedelta(days=30)
    gateway_timeout: timedelta = timedelta(seconds=10)
    max_restarts: int = 3
    store_retry: RetryPolicy = field(default_factory=_store_retry)

    def with_record_ttl(
        self,
        *,
        days: float | None = None,
        delta: timedelta | None = None,
    ) -> CoordinatorPolicy:
        if delta is not None:
            return replace(self, record_ttl=delta)
        return replace(self, record_ttl=timedelta(days=days) if days else None)

    def with_gateway_timeout(self, *, seconds: float) -> CoordinatorPolicy:
        if seconds <= 0:
            raise ValueError(f"gateway timeout must be positive, got {seconds}")
        return replace(self, gateway_timeout=timedelta(seconds=seconds))

    def with_max_restarts(self, restarts: int) -> CoordinatorPolicy:
        if restarts < 0:
            raise ValueError(f"max_restarts must be >= 0, got {restarts}")
        return replace(self, max_restarts=restarts)

    def with_store_retry(self, policy: RetryPolicy) -> CoordinatorPolicy:
        return replace(self, store_retry=policy)


__all__ = ("CoordinatorPolicy",)
