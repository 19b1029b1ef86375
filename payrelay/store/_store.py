"""
Idempotency store — typed storage protocol.

All methods return Result for explicit error handling.
create_if_absent and transition are the ONLY mutation primitives; both
are atomic per order_id.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Protocol

from kungfu import Result, Ok, Error

from payrelay._types import Clock, utcnow
from payrelay.orders import Order, OrderDraft, OrderStatus, Receipt, can_transition
from payrelay.store._types import (
    Claim,
    StoreError,
    ConflictError,
    NotFound,
    InvalidTransition,
    TransitionFault,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Store(Protocol):
    """
    Order idempotency store protocol.

    Implementations must make every write durable before returning Ok.
    Expired records stay readable until purge_expired removes them.
    """

    async def get(self, order_id: str) -> Result[Order, NotFound | StoreError]:
        """Get record. Error(NotFound) if absent."""
        ...

    async def create_if_absent(
        self,
        draft: OrderDraft,
        ttl: timedelta | None,
    ) -> Result[Claim, StoreError]:
        """
        Atomically insert a PENDING record.

        If one exists it is returned unchanged (Claim.created=False).
        """
        ...

    async def transition(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        receipt: Receipt | None = None,
        reason: str | None = None,
    ) -> Result[Order, TransitionFault]:
        """Compare-and-swap on status. Error(ConflictError) if not `expected`."""
        ...

    async def scan(
        self,
        statuses: Iterable[OrderStatus],
        updated_before: datetime,
        limit: int = 500,
    ) -> Result[list[Order], StoreError]:
        """Read-only listing of records in `statuses` not touched since `updated_before`."""
        ...

    async def purge_expired(self, now: datetime | None = None) -> Result[int, StoreError]:
        """Delete expired records (never CHARGING ones). Returns count removed."""
        ...


def check_transition(
    current: Order,
    expected: OrderStatus,
    new: OrderStatus,
) -> ConflictError | InvalidTransition | None:
    """Shared CAS guard for every backend."""
    if current.status != expected:
        return ConflictError(current.order_id, expected, current.status)
    if not can_transition(current.status, new):
        return InvalidTransition(current.order_id, current.status, new)
    return None


PURGEABLE = frozenset(s for s in OrderStatus if s != OrderStatus.CHARGING)


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStore:
    """
    In-memory order store.

    Note: Только для single-instance / тестов.
    Почему: Нет durability — данные не переживут рестарт.

    The lock is held only around dict mutation, never across I/O, so
    different order_ids never wait on one another for longer than that.
    """

    def __init__(self, clock: Clock = utcnow) -> None:
        self._records: dict[str, Order] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, order_id: str) -> Result[Order, NotFound | StoreError]:
        async with self._lock:
            record = self._records.get(order_id)
            if record is None:
                return Error(NotFound(order_id))
            return Ok(record)

    async def create_if_absent(
        self,
        draft: OrderDraft,
        ttl: timedelta | None,
    ) -> Result[Claim, StoreError]:
        async with self._lock:
            existing = self._records.get(draft.order_id)
            if existing is not None:
                return Ok(Claim(existing, created=False))

            now = self._clock()
            record = Order.pending(draft, now, now + ttl if ttl else None)
            self._records[draft.order_id] = record
            return Ok(Claim(record, created=True))

    async def transition(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        receipt: Receipt | None = None,
        reason: str | None = None,
    ) -> Result[Order, TransitionFault]:
        async with self._lock:
            current = self._records.get(order_id)
            if current is None:
                return Error(NotFound(order_id))

            if (fault := check_transition(current, expected, new)) is not None:
                return Error(fault)

            updated = current.moved_to(new, self._clock(), receipt=receipt, reason=reason)
            self._records[order_id] = updated
            return Ok(updated)

    async def scan(
        self,
        statuses: Iterable[OrderStatus],
        updated_before: datetime,
        limit: int = 500,
    ) -> Result[list[Order], StoreError]:
        wanted = frozenset(statuses)
        async with self._lock:
            stale = [
                r for r in self._records.values()
                if r.status in wanted and r.updated_at < updated_before
            ]
        stale.sort(key=lambda r: r.updated_at)
        return Ok(stale[:limit])

    async def purge_expired(self, now: datetime | None = None) -> Result[int, StoreError]:
        moment = now or self._clock()
        async with self._lock:
            expired = [
                k for k, r in self._records.items()
                if r.status in PURGEABLE and r.is_expired(moment)
            ]
            for key in expired:
                del self._records[key]
            return Ok(len(expired))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Store",
    "check_transition",
    "PURGEABLE",
    "MemoryStore",
)
