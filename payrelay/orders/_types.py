"""
Order types — the record the whole relay revolves around.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from payrelay._types import utcnow


# ═══════════════════════════════════════════════════════════════════════════════
# Order Status — Settlement Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(Enum):
    """
    Settlement state of an order.

    Lifecycle:
        PENDING → CHARGING → PAID              (absorbing)
                           → FAILED_TERMINAL   (absorbing)
                           → FAILED_RETRYABLE → CHARGING (retry)
                                              → PAID (late receipt)

    CHARGING → CHARGING is a re-entry "touch": a retry found the order
    in flight and re-issues the charge with the same token.
    """

    PENDING = "pending"
    CHARGING = "charging"
    PAID = "paid"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"

    @property
    def is_absorbing(self) -> bool:
        return self in (OrderStatus.PAID, OrderStatus.FAILED_TERMINAL)

    @property
    def is_in_flight(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.CHARGING)


_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CHARGING}),
    OrderStatus.CHARGING: frozenset({
        OrderStatus.CHARGING,
        OrderStatus.PAID,
        OrderStatus.FAILED_RETRYABLE,
        OrderStatus.FAILED_TERMINAL,
    }),
    OrderStatus.FAILED_RETRYABLE: frozenset({OrderStatus.CHARGING, OrderStatus.PAID}),
    OrderStatus.PAID: frozenset(),
    OrderStatus.FAILED_TERMINAL: frozenset(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Check whether `current → new` is a legal lifecycle edge."""
    return new in _TRANSITIONS[current]


# ═══════════════════════════════════════════════════════════════════════════════
# Receipt — Opaque Processor Result
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Receipt:
    """
    Result returned by the processor once an order is charged.

    Immutable after the first write to an order; every read agrees.
    """

    receipt_id: str
    order_id: str
    amount: int
    processor: str
    issued_at: datetime

    def to_json(self) -> str:
        return json.dumps({
            "receipt_id": self.receipt_id,
            "order_id": self.order_id,
            "amount": self.amount,
            "processor": self.processor,
            "issued_at": self.issued_at.isoformat(),
        })

    @classmethod
    def from_json(cls, raw: str) -> Receipt:
        data = json.loads(raw)
        return cls(
            receipt_id=data["receipt_id"],
            order_id=data["order_id"],
            amount=int(data["amount"]),
            processor=data["processor"],
            issued_at=datetime.fromisoformat(data["issued_at"]),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Order Draft — What the Caller Submits
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderDraft:
    """
    A settle request.

    order_id is caller-generated and stable across retries — it is the
    idempotency anchor for the store AND the processor's dedup token.
    """

    order_id: str
    user_id: str
    amount: int
    feature_id: str
    artifact_ref: str

    def __post_init__(self) -> None:
        if not self.order_id:
            raise ValueError("order_id must not be empty")
        if not self.user_id:
            raise ValueError("user_id must not be empty")
        if not self.feature_id:
            raise ValueError("feature_id must not be empty")
        if self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")


# ═══════════════════════════════════════════════════════════════════════════════
# Order — Stored State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Order:
    """
    One attempted purchase of one generated artifact.

    Note: amount and feature_id are fixed at creation. Settling the same
    order_id with different values is an integrity violation.
    """

    order_id: str
    user_id: str
    amount: int
    feature_id: str
    artifact_ref: str
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None
    processor_receipt: Receipt | None = None
    failure_reason: str | None = None
    attempts: int = 0

    @classmethod
    def pending(cls, draft: OrderDraft, now: datetime, expires_at: datetime | None) -> Order:
        """Fresh PENDING record for a first-seen order_id."""
        return cls(
            order_id=draft.order_id,
            user_id=draft.user_id,
            amount=draft.amount,
            feature_id=draft.feature_id,
            artifact_ref=draft.artifact_ref,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )

    def matches(self, draft: OrderDraft) -> bool:
        """Same priced purchase as the draft (the economic identity)."""
        return self.amount == draft.amount and self.feature_id == draft.feature_id

    def moved_to(
        self,
        status: OrderStatus,
        now: datetime,
        receipt: Receipt | None = None,
        reason: str | None = None,
    ) -> Order:
        """
        Copy with a new status.

        The receipt is only ever set once; a later value never replaces it.
        """
        return replace(
            self,
            status=status,
            updated_at=now,
            processor_receipt=self.processor_receipt or receipt,
            failure_reason=reason if status != OrderStatus.PAID else None,
            attempts=self.attempts + 1 if status == OrderStatus.CHARGING else self.attempts,
        )

    @property
    def releasable_artifact(self) -> str | None:
        """The artifact reference — only once paid for."""
        if self.status != OrderStatus.PAID:
            return None
        return self.artifact_ref

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) > self.expires_at


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "OrderStatus",
    "can_transition",
    "Receipt",
    "OrderDraft",
    "Order",
)
