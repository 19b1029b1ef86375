"""
Coordinator builder — fluent assembly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from payrelay._types import Clock, utcnow
from payrelay.events import EventSink
from payrelay.gateway import Gateway
from payrelay.store import Store
from payrelay.coordinator._coordinator import PaymentCoordinator
from payrelay.coordinator._policy import CoordinatorPolicy


@dataclass(slots=True, frozen=True)
class CoordinatorBuilder:
    _store: Store
    _gateway: Gateway | None = None
    _policy: CoordinatorPolicy = CoordinatorPolicy()
    _events: EventSink | None = None
    _clock: Clock = utcnow

    def gateway(self, g: Gateway) -> CoordinatorBuilder:
        return replace(self, _gateway=g)

    def policy(self, p: CoordinatorPolicy) -> CoordinatorBuilder:
        return replace(self, _policy=p)

    def events(self, sink: EventSink) -> CoordinatorBuilder:
        return replace(self, _events=sink)

    def clock(self, c: Clock) -> CoordinatorBuilder:
        return replace(self, _clock=c)

    def build(self) -> PaymentCoordinator:
        if self._gateway is None:
            raise ValueError("gateway() is required")
        return PaymentCoordinator(
            store=self._store,
            gateway=self._gateway,
            policy=self._policy,
            events=self._events,
            clock=self._clock,
        )


def coordinator(store: Store) -> CoordinatorBuilder:
    """
    Start building a coordinator.

    Example:
        settler = (
            C.coordinator(S.SQLAlchemyStore(session_factory))
            .gateway(GW.gateway_from(stripe_charge))
            .policy(C.CoordinatorPolicy().with_gateway_timeout(seconds=5))
            .events(E.LogSink())
            .build()
        )
    """
    return CoordinatorBuilder(_store=store)


__all__ = ("CoordinatorBuilder", "coordinator")
