"""
payrelay — idempotent payment relay.

Pay exactly once, recover from partial failure, never release an
artifact that was not paid for.

    from payrelay import coordinator as C
    from payrelay import gateway as GW
    from payrelay import store as S

    settler = (
        C.coordinator(S.MemoryStore())
        .gateway(GW.SimulatedGateway())
        .build()
    )

    match await settler.settle(draft):
        case Ok(settlement):
            release(settlement.artifact_ref)
        case Error(err) if err.retryable:
            ...   # same order_id, later

Modules:
    orders      — Order, OrderDraft, Receipt, lifecycle
    store       — MemoryStore, SQLAlchemyStore
    gateway     — Gateway protocol, gateway_from, SimulatedGateway
    coordinator — PaymentCoordinator, decision graph
    retry       — RetryPolicy, retrying
    reconcile   — ReconciliationScanner
    events      — TransitionEvent sinks
    graph       — nodnod runner
    wire        — HTTP codec, Lambda adapter
"""

from payrelay import (
    orders,
    store,
    gateway,
    coordinator,
    retry,
    reconcile,
    events,
    graph,
)

__version__ = "0.1.0"

__all__ = (
    "orders",
    "store",
    "gateway",
    "coordinator",
    "retry",
    "reconcile",
    "events",
    "graph",
    "__version__",
)
