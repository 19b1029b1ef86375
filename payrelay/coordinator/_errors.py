"""
Settle outcomes — Settlement on success, SettleError otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from payrelay.orders import Order, Receipt


class SettleErrorKind(Enum):
    """Kinds of settle errors."""

    INTEGRITY_VIOLATION = auto()  # Same order_id, different amount/feature
    REJECTED = auto()  # Processor declined; terminal
    UNAVAILABLE = auto()  # Processor or store down; retry with same order_id
    TIMEOUT = auto()  # Charge outcome unknown; retry with same order_id
    BUSY = auto()  # Lost too many races; retry immediately
    NOT_FOUND = auto()  # Unknown order_id (status lookup)


_RETRYABLE = frozenset({
    SettleErrorKind.UNAVAILABLE,
    SettleErrorKind.TIMEOUT,
    SettleErrorKind.BUSY,
})


@dataclass(frozen=True, slots=True)
class SettleError:
    """
    Settle failure as a value.

    Note: reason — причина от процессора (код отказа), для remediation.
    """

    kind: SettleErrorKind
    order_id: str
    message: str
    reason: str | None = None

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE


@dataclass(frozen=True, slots=True)
class Settlement:
    """
    A PAID order and its receipt.

    from_cache=True: the order was already paid, no charge happened now.
    """

    order: Order
    receipt: Receipt
    from_cache: bool

    @property
    def artifact_ref(self) -> str | None:
        return self.order.releasable_artifact


__all__ = (
    "SettleErrorKind",
    "SettleError",
    "Settlement",
)
