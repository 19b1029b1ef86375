"""
Retry policy — backoff schedule and the auto-retry budget.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace


# ═══════════════════════════════════════════════════════════════════════════════
# Retry Advice
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class RetryAdvice:
    """
    What a caller should do after failed attempt n.

    prompt=False: retry silently after `delay` seconds.
    prompt=True: stop auto-retrying, surface a retry prompt to the user.
    """

    delay: float
    prompt: bool


# ═══════════════════════════════════════════════════════════════════════════════
# Retry Policy
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Stateless backoff schedule.

    Example:
        policy = (
            RetryPolicy()
            .with_initial_delays(1, 3, 5)
            .with_max_delay(30)
            .with_max_attempts(5)
        )

        policy.delay(1)   # 1.0
        policy.delay(4)   # 10.0  (5 * 2)
        policy.delay(9)   # 30.0  (capped)

    Note: Immutable — каждый with_* возвращает новую policy.
    Почему: одна policy шарится между coordinator, API и клиентами.
    """

    initial_delays: tuple[float, ...] = (1.0, 3.0, 5.0)
    factor: float = 2.0
    max_delay: float = 30.0
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if not self.initial_delays:
            raise ValueError("initial_delays must not be empty")
        if any(d < 0 for d in self.initial_delays):
            raise ValueError("delays must be non-negative")
        if self.max_delay < 0:
            raise ValueError(f"max_delay must be non-negative, got {self.max_delay}")
        if self.factor < 1:
            raise ValueError(f"factor must be >= 1, got {self.factor}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def with_initial_delays(self, *delays: float) -> RetryPolicy:
        return replace(self, initial_delays=tuple(float(d) for d in delays))

    def with_factor(self, factor: float) -> RetryPolicy:
        return replace(self, factor=factor)

    def with_max_delay(self, seconds: float) -> RetryPolicy:
        return replace(self, max_delay=seconds)

    def with_max_attempts(self, attempts: int) -> RetryPolicy:
        return replace(self, max_attempts=attempts)

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt `attempt` (1-based)."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")

        if attempt <= len(self.initial_delays):
            return min(self.initial_delays[attempt - 1], self.max_delay)

        last = self.initial_delays[-1]
        if last == 0 or self.factor == 1:
            return min(last, self.max_delay)
        if last >= self.max_delay:
            return self.max_delay

        # attempt comes from callers (X-Attempt); cap before the power overflows.
        overflow = attempt - len(self.initial_delays)
        if overflow >= math.log(self.max_delay / last, self.factor):
            return self.max_delay
        return min(last * self.factor**overflow, self.max_delay)

    def should_prompt(self, attempt: int) -> bool:
        """Automatic budget exhausted after `attempt` failures."""
        return attempt >= self.max_attempts

    def advise(self, attempt: int) -> RetryAdvice:
        return RetryAdvice(delay=self.delay(attempt), prompt=self.should_prompt(attempt))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "RetryAdvice",
    "RetryPolicy",
)
