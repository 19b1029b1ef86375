"""Settlement scenarios, run against both store backends."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest
from kungfu import Ok, Error

from payrelay.coordinator import SettleErrorKind as K, coordinator
from payrelay.gateway import SimulatedGateway
from payrelay.orders import OrderStatus as S, Receipt
from payrelay.store import ConflictError, MemoryStore, StoreError


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


class InterferingGateway:
    """Charges through `inner`, then lets a rival settler act before answering."""

    def __init__(self, inner: SimulatedGateway, rival: Callable[[str], Awaitable[object]]) -> None:
        self.inner = inner
        self.rival = rival

    async def charge(self, order_id: str, amount: int, user_id: str):
        result = await self.inner.charge(order_id, amount, user_id)
        await self.rival(order_id)
        return result


class BlockingGateway:
    """Charges, then waits for `release` before answering."""

    def __init__(self, inner: SimulatedGateway) -> None:
        self.inner = inner
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def charge(self, order_id: str, amount: int, user_id: str):
        result = await self.inner.charge(order_id, amount, user_id)
        self.entered.set()
        await self.release.wait()
        return result


class FlakyStore:
    """Fails the first `failures` calls with StoreError."""

    def __init__(self, inner: MemoryStore, failures: int) -> None:
        self.inner = inner
        self.failures = failures

    def _down(self) -> bool:
        if self.failures > 0:
            self.failures -= 1
            return True
        return False

    async def get(self, order_id):
        if self._down():
            return Error(StoreError("connection reset"))
        return await self.inner.get(order_id)

    async def create_if_absent(self, draft, ttl):
        if self._down():
            return Error(StoreError("connection reset"))
        return await self.inner.create_if_absent(draft, ttl)

    async def transition(self, order_id, expected, new, *, receipt=None, reason=None):
        if self._down():
            return Error(StoreError("connection reset"))
        return await self.inner.transition(order_id, expected, new, receipt=receipt, reason=reason)

    async def scan(self, statuses, updated_before, limit=500):
        return await self.inner.scan(statuses, updated_before, limit)

    async def purge_expired(self, now=None):
        return await self.inner.purge_expired(now)


def build(store, gateway, policy, sink=None, clock=None):
    b = coordinator(store).gateway(gateway).policy(policy)
    if sink is not None:
        b = b.events(sink)
    if clock is not None:
        b = b.clock(clock)
    return b.build()


# ═══════════════════════════════════════════════════════════════════════════════
# Scenarios
# ═══════════════════════════════════════════════════════════════════════════════


async def test_first_settle_charges_once_and_releases_artifact(settler, gateway, draft) -> None:
    result = await settler.settle(draft("o1"))

    assert isinstance(result, Ok)
    settlement = result.value
    assert settlement.from_cache is False
    assert settlement.order.status == S.PAID
    assert settlement.receipt == gateway.receipt_for("o1")
    assert settlement.artifact_ref == "s3://renders/o1.png"
    assert gateway.charges["o1"] == 1


async def test_replay_returns_cached_receipt_without_gateway_call(settler, gateway, draft) -> None:
    first = await settler.settle(draft("o1"))
    second = await settler.settle(draft("o1"))

    assert isinstance(second, Ok)
    assert second.value.from_cache is True
    assert second.value.receipt == first.value.receipt
    assert gateway.calls["o1"] == 1


async def test_unavailable_then_retry_succeeds(settler, gateway, store, draft) -> None:
    gateway.script("o2", "unavailable")

    first = await settler.settle(draft("o2"))

    assert isinstance(first, Error)
    assert first.value.kind == K.UNAVAILABLE
    assert first.value.retryable
    stored = (await store.get("o2")).value
    assert stored.status == S.FAILED_RETRYABLE
    assert stored.releasable_artifact is None

    second = await settler.settle(draft("o2"))

    assert isinstance(second, Ok)
    assert second.value.order.attempts == 2
    assert gateway.charges["o2"] == 1


async def test_two_timeouts_then_paid_charges_once(settler, gateway, store, draft) -> None:
    gateway.script("o2", "timeout", "lost", "ok")

    for _ in range(2):
        failed = await settler.settle(draft("o2"))

        assert isinstance(failed, Error)
        assert failed.value.kind == K.TIMEOUT
        assert failed.value.retryable
        assert (await store.get("o2")).value.status == S.FAILED_RETRYABLE

    third = await settler.settle(draft("o2"))

    assert isinstance(third, Ok)
    assert third.value.order.status == S.PAID
    assert third.value.order.attempts == 3
    assert third.value.receipt == gateway.receipt_for("o2")
    assert gateway.calls["o2"] <= 3
    assert gateway.charges["o2"] == 1


async def test_lost_response_recovers_same_receipt(settler, gateway, draft) -> None:
    gateway.script("o3", "lost")

    first = await settler.settle(draft("o3"))

    assert isinstance(first, Error)
    assert first.value.kind == K.TIMEOUT
    assert gateway.charges["o3"] == 1

    second = await settler.settle(draft("o3"))

    assert isinstance(second, Ok)
    assert second.value.receipt == gateway.receipt_for("o3")
    assert gateway.charges["o3"] == 1


async def test_rejection_is_terminal(settler, gateway, store, draft) -> None:
    gateway.script("o4", "reject:card_declined")

    first = await settler.settle(draft("o4"))

    assert isinstance(first, Error)
    assert first.value.kind == K.REJECTED
    assert not first.value.retryable
    assert "card_declined" in (first.value.reason or "")

    again = await settler.settle(draft("o4"))

    assert isinstance(again, Error)
    assert again.value.kind == K.REJECTED
    assert gateway.calls["o4"] == 1
    assert (await store.get("o4")).value.status == S.FAILED_TERMINAL


async def test_mismatched_replay_is_integrity_violation(settler, gateway, store, draft) -> None:
    await settler.settle(draft("o5", amount=500))

    result = await settler.settle(draft("o5", amount=50_000))

    assert isinstance(result, Error)
    assert result.value.kind == K.INTEGRITY_VIOLATION
    assert not result.value.retryable
    stored = (await store.get("o5")).value
    assert stored.amount == 500
    assert stored.status == S.PAID
    assert gateway.calls["o5"] == 1


async def test_feature_mismatch_before_any_charge(settler, gateway, draft) -> None:
    gateway.script("o6", "unavailable")
    await settler.settle(draft("o6", feature_id="hd-render"))

    result = await settler.settle(draft("o6", feature_id="4k-render"))

    assert isinstance(result, Error)
    assert result.value.kind == K.INTEGRITY_VIOLATION
    assert gateway.calls["o6"] == 1


async def test_events_follow_every_transition(settler, sink, gateway, draft) -> None:
    gateway.script("o1", "unavailable")

    await settler.settle(draft("o1"))
    await settler.settle(draft("o1"))

    assert sink.for_order("o1") == [S.PENDING, S.CHARGING, S.FAILED_RETRYABLE, S.CHARGING, S.PAID]
    assert all(e.amount == 500 for e in sink.events)


async def test_status_is_read_only(settler, store, draft) -> None:
    missing = await settler.status("o1")

    assert isinstance(missing, Error)
    assert missing.value.kind == K.NOT_FOUND
    assert isinstance(await store.get("o1"), Error)

    await settler.settle(draft("o1"))
    found = await settler.status("o1")

    assert isinstance(found, Ok)
    assert found.value.status == S.PAID


# ═══════════════════════════════════════════════════════════════════════════════
# Concurrency & Recovery
# ═══════════════════════════════════════════════════════════════════════════════


async def test_concurrent_settles_charge_at_most_once(store, sink, clock, fast_policy, draft) -> None:
    gateway = SimulatedGateway(latency=0.01, clock=clock)
    settler = build(store, gateway, fast_policy, sink, clock)

    results = await asyncio.gather(*(settler.settle(draft("o1")) for _ in range(10)))

    assert all(isinstance(r, Ok) for r in results)
    assert {r.value.receipt.receipt_id for r in results} == {gateway.receipt_for("o1").receipt_id}
    assert gateway.charges["o1"] == 1


async def test_different_orders_settle_independently(settler, gateway, draft) -> None:
    results = await asyncio.gather(*(settler.settle(draft(f"o{i}")) for i in range(5)))

    assert all(isinstance(r, Ok) for r in results)
    assert gateway.total_charges == 5


async def test_crash_mid_charge_is_recovered_with_same_token(settler, gateway, store, draft) -> None:
    # A previous process reached the processor, then died before recording.
    await store.create_if_absent(draft("o1"), None)
    await store.transition("o1", S.PENDING, S.CHARGING)
    await gateway.charge("o1", 500, "u1")

    result = await settler.settle(draft("o1"))

    assert isinstance(result, Ok)
    assert result.value.receipt == gateway.receipt_for("o1")
    assert gateway.charges["o1"] == 1


async def test_gateway_hang_is_timeout_not_rejection(settler, gateway, store, draft) -> None:
    gateway.script("o1", "hang")

    first = await settler.settle(draft("o1"))

    assert isinstance(first, Error)
    assert first.value.kind == K.TIMEOUT
    assert (await store.get("o1")).value.status == S.FAILED_RETRYABLE

    second = await settler.settle(draft("o1"))

    assert isinstance(second, Ok)
    assert gateway.charges["o1"] == 1


async def test_first_writer_wins_on_paid_race(store, clock, fast_policy, draft) -> None:
    rival_receipt = Receipt("rival", "o1", 500, "sim", clock())

    async def rival(order_id: str) -> None:
        await store.transition(order_id, S.CHARGING, S.PAID, receipt=rival_receipt)

    inner = SimulatedGateway(clock=clock)
    settler = build(store, InterferingGateway(inner, rival), fast_policy)

    result = await settler.settle(draft("o1"))

    assert isinstance(result, Ok)
    assert result.value.receipt == rival_receipt
    assert result.value.from_cache is True
    assert (await store.get("o1")).value.processor_receipt == rival_receipt


async def test_receipt_recorded_over_concurrent_retryable_failure(store, clock, fast_policy, draft) -> None:
    async def rival(order_id: str) -> None:
        await store.transition(order_id, S.CHARGING, S.FAILED_RETRYABLE, reason="rival timed out")

    inner = SimulatedGateway(clock=clock)
    settler = build(store, InterferingGateway(inner, rival), fast_policy)

    result = await settler.settle(draft("o1"))

    assert isinstance(result, Ok)
    assert result.value.order.status == S.PAID
    assert result.value.receipt == inner.receipt_for("o1")


async def test_cancelled_caller_does_not_lose_outcome(store, clock, fast_policy, draft) -> None:
    blocking = BlockingGateway(SimulatedGateway(clock=clock))
    settler = build(store, blocking, fast_policy.with_gateway_timeout(seconds=5))

    task = asyncio.create_task(settler.settle(draft("o1")))
    await blocking.entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    blocking.release.set()
    await settler.drain()

    stored = (await store.get("o1")).value
    assert stored.status == S.PAID
    assert stored.processor_receipt == blocking.inner.receipt_for("o1")


# ═══════════════════════════════════════════════════════════════════════════════
# Store Faults
# ═══════════════════════════════════════════════════════════════════════════════


async def test_transient_store_faults_are_retried(clock, fast_policy, draft) -> None:
    gateway = SimulatedGateway(clock=clock)
    settler = build(FlakyStore(MemoryStore(clock=clock), failures=2), gateway, fast_policy)

    result = await settler.settle(draft("o1"))

    assert isinstance(result, Ok)
    assert gateway.charges["o1"] == 1


async def test_store_down_is_unavailable(clock, fast_policy, draft) -> None:
    gateway = SimulatedGateway(clock=clock)
    settler = build(FlakyStore(MemoryStore(clock=clock), failures=100), gateway, fast_policy)

    result = await settler.settle(draft("o1"))

    assert isinstance(result, Error)
    assert result.value.kind == K.UNAVAILABLE
    assert result.value.retryable
    assert gateway.calls["o1"] == 0


async def test_endless_races_end_busy(clock, fast_policy, draft) -> None:
    inner = MemoryStore(clock=clock)

    class AlwaysLosing(FlakyStore):
        async def transition(self, order_id, expected, new, *, receipt=None, reason=None):
            return Error(ConflictError(order_id, expected, S.CHARGING))

    gateway = SimulatedGateway(clock=clock)
    settler = build(AlwaysLosing(inner, failures=0), gateway, fast_policy.with_max_restarts(2))

    result = await settler.settle(draft("o1"))

    assert isinstance(result, Error)
    assert result.value.kind == K.BUSY
    assert result.value.retryable
    assert gateway.calls["o1"] == 0


async def test_failing_event_sink_does_not_break_settlement(store, gateway, fast_policy, draft) -> None:
    class Broken:
        def emit(self, event) -> None:
            raise RuntimeError("sink down")

    settler = build(store, gateway, fast_policy, sink=Broken())

    result = await settler.settle(draft("o1"))

    assert isinstance(result, Ok)
