"""
Functional gateway — adapt a raising client function into a Gateway.

Example:
    async def stripe_charge(order_id: str, amount: int, user_id: str) -> Receipt:
        intent = await stripe.PaymentIntent.create_async(
            amount=amount, idempotency_key=order_id, ...
        )
        return Receipt(...)

    gateway = gateway_from(stripe_charge)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from combinators import lift as L
from kungfu import Result

from payrelay.orders import Receipt
from payrelay.gateway._types import ChargeDeclined, GatewayError, GatewayErrorKind


type ChargeFn = Callable[[str, int, str], Awaitable[Receipt]]
type Classify = Callable[[Exception], GatewayError]


def classify_exception(e: Exception) -> GatewayError:
    """
    Default exception → GatewayError mapping.

    Unknown exceptions are UNAVAILABLE, not REJECTED: only an explicit
    decline may make an order terminal.
    """
    match e:
        case ChargeDeclined(code=code):
            return GatewayError(GatewayErrorKind.REJECTED, str(e), code)
        case asyncio.TimeoutError() | TimeoutError():
            return GatewayError(GatewayErrorKind.TIMEOUT, str(e) or "Processor timed out")
        case ConnectionError() | OSError():
            return GatewayError(GatewayErrorKind.UNAVAILABLE, str(e) or "Processor unreachable")
        case _:
            return GatewayError(GatewayErrorKind.UNAVAILABLE, f"{type(e).__name__}: {e}")


@dataclass(frozen=True, slots=True)
class FunctionalGateway:
    """Gateway backed by a plain async function."""

    fn: ChargeFn
    classify: Classify = classify_exception

    async def charge(
        self,
        order_id: str,
        amount: int,
        user_id: str,
    ) -> Result[Receipt, GatewayError]:
        return await L.catching_async(
            lambda: self.fn(order_id, amount, user_id),
            on_error=self.classify,
        )


def gateway_from(fn: ChargeFn, classify: Classify = classify_exception) -> FunctionalGateway:
    """Wrap `fn(order_id, amount, user_id) -> Receipt` as a Gateway."""
    return FunctionalGateway(fn, classify)


__all__ = (
    "ChargeFn",
    "Classify",
    "classify_exception",
    "FunctionalGateway",
    "gateway_from",
)
