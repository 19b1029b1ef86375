"""
Reconciliation scanner — finds orders abandoned mid-flight.

Read-only. A report is an input for a human or a remediation job; the
scanner itself never changes a record.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog
from kungfu import Result, Ok, Error

from payrelay._types import Clock, utcnow
from payrelay.orders import Order, OrderStatus
from payrelay.store import Store, StoreError

logger = structlog.get_logger(__name__)

AT_RISK_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CHARGING})


# ═══════════════════════════════════════════════════════════════════════════════
# Report Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class AtRiskOrder:
    order_id: str
    user_id: str
    status: OrderStatus
    amount: int
    attempts: int
    updated_at: datetime
    idle: timedelta

    @classmethod
    def of(cls, order: Order, now: datetime) -> AtRiskOrder:
        return cls(
            order_id=order.order_id,
            user_id=order.user_id,
            status=order.status,
            amount=order.amount,
            attempts=order.attempts,
            updated_at=order.updated_at,
            idle=now - order.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "user_id": self.user_id,
            "status": self.status.value,
            "amount": self.amount,
            "attempts": self.attempts,
            "updated_at": self.updated_at.isoformat(),
            "idle_seconds": int(self.idle.total_seconds()),
        }


@dataclass(frozen=True, slots=True)
class AtRiskReport:
    scanned_at: datetime
    threshold: timedelta
    orders: tuple[AtRiskOrder, ...]

    @property
    def empty(self) -> bool:
        return not self.orders

    def to_dict(self) -> dict[str, Any]:
        return {
            "scanned_at": self.scanned_at.isoformat(),
            "threshold_seconds": int(self.threshold.total_seconds()),
            "count": len(self.orders),
            "orders": [o.to_dict() for o in self.orders],
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Scanner
# ═══════════════════════════════════════════════════════════════════════════════


class ReconciliationScanner:
    """
    Example:
        scanner = ReconciliationScanner(store, threshold=timedelta(minutes=15))

        match await scanner.scan():
            case Ok(report):
                for order in report.orders:
                    page_oncall(order)
            case Error(err):
                ...
    """

    def __init__(
        self,
        store: Store,
        threshold: timedelta = timedelta(minutes=15),
        clock: Clock = utcnow,
        limit: int = 500,
    ) -> None:
        if threshold <= timedelta(0):
            raise ValueError(f"threshold must be positive, got {threshold}")
        self._store = store
        self._threshold = threshold
        self._clock = clock
        self._limit = limit

    @property
    def threshold(self) -> timedelta:
        return self._threshold

    async def scan(self) -> Result[AtRiskReport, StoreError]:
        """PENDING/CHARGING orders idle for longer than the threshold."""
        now = self._clock()
        match await self._store.scan(AT_RISK_STATUSES, now - self._threshold, self._limit):
            case Ok(orders):
                return Ok(AtRiskReport(
                    scanned_at=now,
                    threshold=self._threshold,
                    orders=tuple(AtRiskOrder.of(o, now) for o in orders),
                ))
            case Error(err):
                return Error(err)

    async def run_periodically(
        self,
        interval: timedelta,
        stop: asyncio.Event,
        on_report: Callable[[AtRiskReport], Awaitable[None]] | None = None,
    ) -> None:
        """Sweep every `interval` until `stop` is set."""
        seconds = interval.total_seconds()
        while not stop.is_set():
            match await self.scan():
                case Ok(report):
                    for order in report.orders:
                        logger.warning("order_at_risk", **order.to_dict())
                    if on_report is not None:
                        await on_report(report)
                case Error(err):
                    logger.error("reconciliation_scan_failed", error=err.message)

            try:
                await asyncio.wait_for(stop.wait(), seconds)
            except TimeoutError:
                continue


__all__ = (
    "AT_RISK_STATUSES",
    "AtRiskOrder",
    "AtRiskReport",
    "ReconciliationScanner",
)
