from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta

import pytest

from payrelay.coordinator import CoordinatorPolicy, PaymentCoordinator, coordinator
from payrelay.events import MemorySink
from payrelay.gateway import SimulatedGateway
from payrelay.orders import OrderDraft
from payrelay.retry import RetryPolicy
from payrelay.store import MemoryStore, SQLAlchemyStore, Store, create_database


class FrozenClock:
    """Deterministic naive-UTC clock."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


FAST_POLICY = (
    CoordinatorPolicy()
    .with_gateway_timeout(seconds=0.2)
    .with_store_retry(RetryPolicy(initial_delays=(0.0,), max_attempts=3))
)


def make_draft(
    order_id: str = "o1",
    *,
    user_id: str = "u1",
    amount: int = 500,
    feature_id: str = "hd-render",
    artifact_ref: str | None = None,
) -> OrderDraft:
    return OrderDraft(
        order_id=order_id,
        user_id=user_id,
        amount=amount,
        feature_id=feature_id,
        artifact_ref=artifact_ref or f"s3://renders/{order_id}.png",
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def draft() -> Callable[..., OrderDraft]:
    return make_draft


@pytest.fixture(params=["memory", "sqlalchemy"])
async def store(request: pytest.FixtureRequest, tmp_path, clock: FrozenClock) -> AsyncIterator[Store]:
    if request.param == "memory":
        yield MemoryStore(clock=clock)
        return

    session_factory, engine = await create_database(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    try:
        yield SQLAlchemyStore(session_factory, clock=clock)
    finally:
        await engine.dispose()


@pytest.fixture
def fast_policy() -> CoordinatorPolicy:
    return FAST_POLICY


@pytest.fixture
def gateway(clock: FrozenClock) -> SimulatedGateway:
    return SimulatedGateway(clock=clock)


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def settler(store: Store, gateway: SimulatedGateway, sink: MemorySink, clock: FrozenClock) -> PaymentCoordinator:
    return (
        coordinator(store)
        .gateway(gateway)
        .policy(FAST_POLICY)
        .events(sink)
        .clock(clock)
        .build()
    )
