from __future__ import annotations

import pytest
from kungfu import Ok, Error

from payrelay.retry import RetryAdvice, RetryPolicy, retrying


def test_default_schedule() -> None:
    policy = RetryPolicy()

    assert [policy.delay(n) for n in range(1, 8)] == [1.0, 3.0, 5.0, 10.0, 20.0, 30.0, 30.0]


def test_prompt_after_auto_budget() -> None:
    policy = RetryPolicy()

    assert not policy.should_prompt(4)
    assert policy.should_prompt(5)
    assert policy.advise(5) == RetryAdvice(delay=20.0, prompt=True)


def test_builders_return_new_policy() -> None:
    base = RetryPolicy()

    tuned = base.with_initial_delays(2, 4).with_factor(3).with_max_delay(50).with_max_attempts(2)

    assert base == RetryPolicy()
    assert [tuned.delay(n) for n in range(1, 5)] == [2.0, 4.0, 12.0, 36.0]
    assert tuned.delay(5) == 50.0
    assert tuned.should_prompt(2)


@pytest.mark.parametrize("attempt", [1_030, 10_000, 10**18])
def test_delay_caps_without_overflow(attempt: int) -> None:
    policy = RetryPolicy()

    assert policy.delay(attempt) == policy.max_delay
    assert policy.advise(attempt) == RetryAdvice(delay=30.0, prompt=True)


def test_degenerate_schedules_stay_flat() -> None:
    assert RetryPolicy(factor=1).delay(10_000) == 5.0
    assert RetryPolicy(initial_delays=(0.0,)).delay(10_000) == 0.0
    assert RetryPolicy(initial_delays=(50.0,)).delay(10_000) == 30.0


@pytest.mark.parametrize("attempt", [0, -1])
def test_attempts_are_one_based(attempt: int) -> None:
    with pytest.raises(ValueError):
        RetryPolicy().delay(attempt)


def test_invalid_policy_rejected() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(initial_delays=())
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(max_delay=-1)


async def test_retrying_backs_off_until_ok() -> None:
    slept: list[float] = []
    outcomes = iter([Error("flaky"), Error("flaky"), Ok(42)])

    async def op():
        return next(outcomes)

    async def sleep(seconds: float) -> None:
        slept.append(seconds)

    result = await retrying(op, RetryPolicy(), retry_on=lambda e: e == "flaky", sleep=sleep)

    assert isinstance(result, Ok)
    assert result.value == 42
    assert slept == [1.0, 3.0]


async def test_retrying_stops_on_permanent_error() -> None:
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        return Error("fatal")

    async def sleep(seconds: float) -> None:
        raise AssertionError("must not sleep")

    result = await retrying(op, RetryPolicy(), retry_on=lambda e: e == "flaky", sleep=sleep)

    assert isinstance(result, Error)
    assert calls == 1


async def test_retrying_gives_up_after_max_attempts() -> None:
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        return Error("flaky")

    async def sleep(seconds: float) -> None:
        pass

    result = await retrying(op, RetryPolicy(max_attempts=3), retry_on=lambda e: True, sleep=sleep)

    assert isinstance(result, Error)
    assert calls == 3
