"""
Coordinator — idempotent settle over a Store and a Gateway.

    from payrelay import coordinator as C

    settler = C.coordinator(store).gateway(gateway).build()

    match await settler.settle(draft):
        case Ok(settlement):
            settlement.receipt        # same on every replay
            settlement.artifact_ref   # only ever for PAID
        case Error(C.SettleError(kind=C.SettleErrorKind.REJECTED, reason=reason)):
            ...
"""

from payrelay.coordinator._errors import (
    SettleErrorKind,
    SettleError,
    Settlement,
)
from payrelay.coordinator._policy import CoordinatorPolicy
from payrelay.coordinator._graph import (
    SettleSpec,
    IntegrityViolation,
    AlreadyPaid,
    AlreadyRejected,
    Charge,
    Decision,
    decide,
)
from payrelay.coordinator._coordinator import PaymentCoordinator
from payrelay.coordinator._builder import CoordinatorBuilder, coordinator

__all__ = (
    # Errors
    "SettleErrorKind",
    "SettleError",
    "Settlement",
    # Policy
    "CoordinatorPolicy",
    # Graph
    "SettleSpec",
    "IntegrityViolation",
    "AlreadyPaid",
    "AlreadyRejected",
    "Charge",
    "Decision",
    "decide",
    # Coordinator
    "PaymentCoordinator",
    "CoordinatorBuilder",
    "coordinator",
)
