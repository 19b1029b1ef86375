"""
Simulated processor — honours the dedup-token guarantee in-process.

Used by tests and `payrelay serve --simulate`.

    gw = SimulatedGateway()
    gw.script("o1", "unavailable", "lost", "ok")

    await gw.charge("o1", 500, "u1")   # UNAVAILABLE, nothing charged
    await gw.charge("o1", 500, "u1")   # charged, response lost → TIMEOUT
    await gw.charge("o1", 500, "u1")   # dedup: same receipt, no new charge

    gw.charges["o1"]  # 1

Outcomes:
    ok            charge (or replay the existing receipt)
    reject:<code> decline; remembered for the token
    unavailable   fail before reaching the processor
    timeout       processor answers "timed out" without charging
    lost          charge, then fail with TIMEOUT
    hang          charge, then never answer
"""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict, deque
from uuid import uuid4

from kungfu import Result, Ok, Error

from payrelay._types import Clock, utcnow
from payrelay.orders import Receipt
from payrelay.gateway._types import GatewayError, GatewayErrorKind


class SimulatedGateway:
    """In-process processor with scriptable per-order outcomes."""

    def __init__(
        self,
        latency: float = 0.0,
        processor: str = "sim",
        clock: Clock = utcnow,
    ) -> None:
        self.latency = latency
        self.processor = processor
        self.calls: Counter[str] = Counter()
        self.charges: Counter[str] = Counter()
        self._clock = clock
        self._receipts: dict[str, Receipt] = {}
        self._declines: dict[str, GatewayError] = {}
        self._scripts: defaultdict[str, deque[str]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    def script(self, order_id: str, *outcomes: str) -> SimulatedGateway:
        """Queue outcomes for the next calls on order_id. Default is ok."""
        for outcome in outcomes:
            if outcome not in ("ok", "unavailable", "timeout", "lost", "hang") and not outcome.startswith("reject:"):
                raise ValueError(f"Unknown outcome: {outcome}")
        self._scripts[order_id].extend(outcomes)
        return self

    def receipt_for(self, order_id: str) -> Receipt | None:
        return self._receipts.get(order_id)

    @property
    def total_charges(self) -> int:
        return sum(self.charges.values())

    async def charge(
        self,
        order_id: str,
        amount: int,
        user_id: str,
    ) -> Result[Receipt, GatewayError]:
        if self.latency:
            await asyncio.sleep(self.latency)

        async with self._lock:
            self.calls[order_id] += 1
            script = self._scripts[order_id]
            outcome = script.popleft() if script else "ok"

            match outcome:
                case "unavailable":
                    return Error(GatewayError(GatewayErrorKind.UNAVAILABLE, "Processor unavailable", "503"))
                case "timeout":
                    return Error(GatewayError(GatewayErrorKind.TIMEOUT, "Processor timed out"))
                case _ if outcome.startswith("reject:"):
                    if order_id not in self._receipts:
                        code = outcome.removeprefix("reject:")
                        self._declines.setdefault(
                            order_id,
                            GatewayError(GatewayErrorKind.REJECTED, "Card declined", code),
                        )

            # Dedup: the token settles to one result forever
            if (existing := self._receipts.get(order_id)) is not None:
                return Ok(existing)
            if (decline := self._declines.get(order_id)) is not None:
                return Error(decline)

            receipt = Receipt(
                receipt_id=f"{self.processor}_{uuid4().hex[:16]}",
                order_id=order_id,
                amount=amount,
                processor=self.processor,
                issued_at=self._clock(),
            )
            self._receipts[order_id] = receipt
            self.charges[order_id] += 1

        match outcome:
            case "lost":
                return Error(GatewayError(GatewayErrorKind.TIMEOUT, "Response lost"))
            case "hang":
                await asyncio.Event().wait()
        return Ok(receipt)


__all__ = ("SimulatedGateway",)
