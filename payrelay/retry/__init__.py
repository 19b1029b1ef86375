"""
Retry — backoff schedule shared by the server and its clients.

    from payrelay import retry as R

    client = R.RetryPolicy()                                  # 1s, 3s, 5s, 10s, 20s... ≤30s
    store = R.RetryPolicy().with_initial_delays(0.05, 0.1).with_max_attempts(3)

    advice = client.advise(attempt)       # RetryAdvice(delay=..., prompt=...)
    result = await R.retrying(op, store, retry_on=is_transient)
"""

from payrelay.retry._policy import RetryAdvice, RetryPolicy
from payrelay.retry._run import retrying

__all__ = (
    "RetryAdvice",
    "RetryPolicy",
    "retrying",
)
