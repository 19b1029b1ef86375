"""
Payment coordinator — pay exactly once, recover from partial failure.

Flow of settle(draft):
    1. create_if_absent            → record for order_id (PENDING if new)
    2. decide(draft, record)       → integrity / paid / terminal / charge
    3. CAS → CHARGING              → lost race: re-read, back to 2
    4. gateway.charge(order_id)    → under gateway_timeout
    5. CAS → PAID / FAILED_*       → first writer wins

No lock is held across the gateway call. Two settlers of the same order
may both reach the processor; the order_id dedup token makes the second
call a replay, never a second charge.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from combinators import lift as L
from kungfu import Result, Ok, Error

from payrelay._types import Clock, utcnow
from payrelay.events import EventSink, LogSink, TransitionEvent
from payrelay.gateway import Gateway, GatewayError, GatewayErrorKind, classify_exception
from payrelay.orders import Order, OrderDraft, OrderStatus, Receipt
from payrelay.retry import retrying
from payrelay.store import Store, StoreError, ConflictError, NotFound, InvalidTransition
from payrelay.coordinator._errors import SettleError, SettleErrorKind, Settlement
from payrelay.coordinator._graph import (
    IntegrityViolation,
    AlreadyPaid,
    AlreadyRejected,
    Charge,
    decide,
)
from payrelay.coordinator._policy import CoordinatorPolicy

logger = structlog.get_logger(__name__)


_GATEWAY_KINDS = {
    GatewayErrorKind.REJECTED: SettleErrorKind.REJECTED,
    GatewayErrorKind.UNAVAILABLE: SettleErrorKind.UNAVAILABLE,
    GatewayErrorKind.TIMEOUT: SettleErrorKind.TIMEOUT,
}


class PaymentCoordinator:
    """
    Settles orders against a Store and a Gateway.

    Example:
        coordinator = PaymentCoordinator(store, gateway)

        match await coordinator.settle(draft):
            case Ok(settlement):
                release(settlement.artifact_ref)
            case Error(err) if err.retryable:
                retry_later(draft.order_id)
            case Error(err):
                show_failure(err.message)
    """

    def __init__(
        self,
        store: Store,
        gateway: Gateway,
        policy: CoordinatorPolicy | None = None,
        events: EventSink | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._policy = policy or CoordinatorPolicy()
        self._events = events or LogSink()
        self._clock = clock
        self._inflight: set[asyncio.Task[Result[Settlement, SettleError]]] = set()

    @property
    def policy(self) -> CoordinatorPolicy:
        return self._policy

    # ═══════════════════════════════════════════════════════════════════════════
    # Public API
    # ═══════════════════════════════════════════════════════════════════════════

    async def settle(self, draft: OrderDraft) -> Result[Settlement, SettleError]:
        """Settle `draft` exactly once. Safe to call any number of times."""
        log = logger.bind(order_id=draft.order_id)

        match await self._retry_store(
            lambda: self._store.create_if_absent(draft, self._policy.record_ttl)
        ):
            case Error(err):
                return Error(self._store_down(draft.order_id, err))
            case Ok(claim):
                pass

        if claim.created:
            self._emit(claim.order)
        order = claim.order

        for _ in range(self._policy.max_restarts + 1):
            match await decide(draft, order):
                case IntegrityViolation(order=stored):
                    log.warning(
                        "integrity_violation",
                        stored_amount=stored.amount,
                        stored_feature=stored.feature_id,
                        requested_amount=draft.amount,
                        requested_feature=draft.feature_id,
                        user_id=draft.user_id,
                    )
                    return Error(SettleError(
                        SettleErrorKind.INTEGRITY_VIOLATION,
                        draft.order_id,
                        "order_id already used for a different purchase",
                    ))

                case AlreadyPaid(order=paid):
                    log.info("settle_cached")
                    return Ok(self._settlement(paid, from_cache=True))

                case AlreadyRejected(order=rejected):
                    return Error(SettleError(
                        SettleErrorKind.REJECTED,
                        draft.order_id,
                        "Payment was declined",
                        rejected.failure_reason,
                    ))

                case Charge(order=chargeable):
                    moved = await self._retry_store(
                        lambda: self._store.transition(
                            draft.order_id, chargeable.status, OrderStatus.CHARGING
                        )
                    )
                    match moved:
                        case Ok(charging):
                            self._emit(charging)
                            return await self._shielded(charging)
                        case Error(ConflictError() | InvalidTransition() as lost):
                            log.debug("charge_claim_lost", reason=lost.message)
                        case Error(NotFound() as missing):
                            return Error(SettleError(
                                SettleErrorKind.UNAVAILABLE, draft.order_id, missing.message
                            ))
                        case Error(err):
                            return Error(self._store_down(draft.order_id, err))

            match await self._retry_store(lambda: self._store.get(draft.order_id)):
                case Ok(fresh):
                    order = fresh
                case Error(err):
                    return Error(self._store_down(draft.order_id, err))

        log.info("settle_busy", restarts=self._policy.max_restarts)
        return Error(SettleError(
            SettleErrorKind.BUSY,
            draft.order_id,
            "Order is being settled concurrently",
        ))

    async def status(self, order_id: str) -> Result[Order, SettleError]:
        """Read-only lookup; never creates a record."""
        match await self._retry_store(lambda: self._store.get(order_id)):
            case Ok(order):
                return Ok(order)
            case Error(NotFound() as missing):
                return Error(SettleError(SettleErrorKind.NOT_FOUND, order_id, missing.message))
            case Error(err):
                return Error(self._store_down(order_id, err))

    async def drain(self) -> None:
        """Wait for charges whose callers went away."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # ═══════════════════════════════════════════════════════════════════════════
    # Charge & Record
    # ═══════════════════════════════════════════════════════════════════════════

    async def _shielded(self, order: Order) -> Result[Settlement, SettleError]:
        """
        Run charge-and-record so caller cancellation cannot interrupt it.

        Note: клиент может отвалиться посреди charge. Outcome всё равно
        должен быть записан, иначе деньги списаны, а заказ висит.
        """
        task = asyncio.ensure_future(self._charge_and_record(order))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def _charge_and_record(self, order: Order) -> Result[Settlement, SettleError]:
        log = logger.bind(order_id=order.order_id, attempt=order.attempts)

        match await self._charge(order):
            case Ok(receipt):
                return await self._record_paid(order, receipt)
            case Error(err):
                log.info("charge_failed", kind=err.kind.name, reason=err.reason)
                return await self._record_failure(order, err)

    async def _charge(self, order: Order) -> Result[Receipt, GatewayError]:
        """One gateway call, bounded; anything raised becomes a GatewayError."""
        timeout = self._policy.gateway_timeout.total_seconds()
        outer = await L.catching_async(
            lambda: asyncio.wait_for(
                self._gateway.charge(order.order_id, order.amount, order.user_id),
                timeout,
            ),
            on_error=classify_exception,
        )
        match outer:
            case Ok(inner):
                return inner
            case Error(err):
                return Error(err)

    async def _record_paid(self, order: Order, receipt: Receipt) -> Result[Settlement, SettleError]:
        log = logger.bind(order_id=order.order_id, receipt_id=receipt.receipt_id)
        expected = OrderStatus.CHARGING

        # At most two hops: CHARGING, then FAILED_RETRYABLE if a concurrent
        # settler recorded a retryable failure in between.
        for _ in range(2):
            recorded = await self._retry_store(
                lambda: self._store.transition(
                    order.order_id, expected, OrderStatus.PAID, receipt=receipt
                )
            )
            match recorded:
                case Ok(paid):
                    self._emit(paid)
                    log.info("settle_paid")
                    return Ok(self._settlement(paid, from_cache=False))

                case Error(ConflictError(actual=OrderStatus.FAILED_RETRYABLE)):
                    expected = OrderStatus.FAILED_RETRYABLE

                case Error(ConflictError(actual=OrderStatus.PAID)):
                    return await self._first_writer(order.order_id, receipt)

                case Error(ConflictError(actual=actual)):
                    log.error("receipt_on_unexpected_status", status=actual.value)
                    return Error(SettleError(
                        SettleErrorKind.UNAVAILABLE,
                        order.order_id,
                        f"Charged but order is {actual.value}; needs reconciliation",
                    ))

                case Error(err):
                    # Stays CHARGING: the next retry replays the same token
                    # and gets this receipt back from the processor.
                    log.error("receipt_unrecorded", error=err.message)
                    return Error(self._store_down(order.order_id, err))

        return await self._first_writer(order.order_id, receipt)

    async def _first_writer(self, order_id: str, in_hand: Receipt) -> Result[Settlement, SettleError]:
        """Another settler recorded PAID first: its receipt is the one."""
        match await self._retry_store(lambda: self._store.get(order_id)):
            case Ok(stored) if stored.status == OrderStatus.PAID:
                if stored.processor_receipt != in_hand:
                    logger.info(
                        "receipt_superseded",
                        order_id=order_id,
                        stored_receipt_id=self._receipt_of(stored).receipt_id,
                        in_hand_receipt_id=in_hand.receipt_id,
                    )
                return Ok(self._settlement(stored, from_cache=True))
            case Ok(stored):
                return Error(SettleError(
                    SettleErrorKind.BUSY,
                    order_id,
                    f"Order moved to {stored.status.value} while recording payment",
                ))
            case Error(err):
                return Error(self._store_down(order_id, err))

    async def _record_failure(self, order: Order, failure: GatewayError) -> Result[Settlement, SettleError]:
        target = OrderStatus.FAILED_RETRYABLE if failure.retryable else OrderStatus.FAILED_TERMINAL
        recorded = await self._retry_store(
            lambda: self._store.transition(
                order.order_id, OrderStatus.CHARGING, target, reason=failure.reason
            )
        )
        match recorded:
            case Ok(failed):
                self._emit(failed)
            case Error(ConflictError(actual=OrderStatus.PAID)):
                # A concurrent settler got the receipt; that wins over our failure.
                match await self._retry_store(lambda: self._store.get(order.order_id)):
                    case Ok(paid) if paid.status == OrderStatus.PAID:
                        return Ok(self._settlement(paid, from_cache=True))
                    case _:
                        pass
            case Error(ConflictError()):
                pass
            case Error(err):
                logger.error(
                    "failure_unrecorded",
                    order_id=order.order_id,
                    kind=failure.kind.name,
                    error=err.message,
                )

        return Error(SettleError(
            _GATEWAY_KINDS[failure.kind],
            order.order_id,
            failure.message,
            failure.reason,
        ))

    # ═══════════════════════════════════════════════════════════════════════════
    # Helpers
    # ═══════════════════════════════════════════════════════════════════════════

    async def _retry_store[T, E](
        self,
        op: Callable[[], Awaitable[Result[T, E]]],
    ) -> Result[T, E]:
        return await retrying(
            op,
            self._policy.store_retry,
            retry_on=lambda e: isinstance(e, StoreError),
        )

    def _store_down(self, order_id: str, err: StoreError) -> SettleError:
        logger.warning("store_unavailable", order_id=order_id, error=err.message)
        return SettleError(SettleErrorKind.UNAVAILABLE, order_id, "Order store unavailable")

    def _settlement(self, order: Order, from_cache: bool) -> Settlement:
        return Settlement(order, self._receipt_of(order), from_cache)

    @staticmethod
    def _receipt_of(order: Order) -> Receipt:
        if order.processor_receipt is None:
            raise RuntimeError(f"PAID order without receipt: {order.order_id}")
        return order.processor_receipt

    def _emit(self, order: Order) -> None:
        try:
            self._events.emit(TransitionEvent.of(order))
        except Exception:
            logger.exception("event_sink_failed", order_id=order.order_id)


__all__ = ("PaymentCoordinator",)
