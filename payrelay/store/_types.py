"""
Store types — errors and claim result.
"""

from __future__ import annotations

from dataclasses import dataclass

from payrelay.orders import Order, OrderStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Claim — create_if_absent Result
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Claim:
    """
    Outcome of create_if_absent.

    created=False means the order already existed and is returned unchanged.
    """

    order: Order
    created: bool


# ═══════════════════════════════════════════════════════════════════════════════
# Store Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """
    Backend failure (connection drop, lock timeout, ...).

    Note: Transient by assumption — the coordinator retries these locally.
    """

    message: str
    cause: Exception | None = None


@dataclass(frozen=True, slots=True)
class ConflictError:
    """Compare-and-swap lost: the record is not in the expected status."""

    order_id: str
    expected: OrderStatus
    actual: OrderStatus

    @property
    def message(self) -> str:
        return (
            f"Order {self.order_id} is {self.actual.value}, "
            f"expected {self.expected.value}"
        )


@dataclass(frozen=True, slots=True)
class NotFound:
    """No record for the order_id."""

    order_id: str

    @property
    def message(self) -> str:
        return f"Order not found: {self.order_id}"


@dataclass(frozen=True, slots=True)
class InvalidTransition:
    """Requested edge is not part of the lifecycle (e.g. leaving PAID)."""

    order_id: str
    current: OrderStatus
    requested: OrderStatus

    @property
    def message(self) -> str:
        return (
            f"Order {self.order_id}: {self.current.value} → "
            f"{self.requested.value} is not allowed"
        )


type TransitionFault = ConflictError | NotFound | InvalidTransition | StoreError


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Claim",
    "StoreError",
    "ConflictError",
    "NotFound",
    "InvalidTransition",
    "TransitionFault",
)
