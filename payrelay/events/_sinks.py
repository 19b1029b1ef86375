"""
Transition events — one per state change, creation included.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import structlog

from payrelay.orders import Order, OrderStatus

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Event
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class TransitionEvent:
    order_id: str
    status: OrderStatus
    amount: int
    timestamp: datetime

    @classmethod
    def of(cls, order: Order) -> TransitionEvent:
        """Event for the state `order` was just moved into."""
        return cls(order.order_id, order.status, order.amount, order.updated_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "amount": self.amount,
            "timestamp": self.timestamp.isoformat(),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Sinks
# ═══════════════════════════════════════════════════════════════════════════════


class EventSink(Protocol):
    def emit(self, event: TransitionEvent) -> None: ...


class LogSink:
    """Structured log line per transition."""

    def __init__(self, event_name: str = "order_transition") -> None:
        self._event_name = event_name

    def emit(self, event: TransitionEvent) -> None:
        logger.info(self._event_name, **event.to_dict())


class MemorySink:
    """Collects events. For tests."""

    def __init__(self) -> None:
        self.events: list[TransitionEvent] = []

    def emit(self, event: TransitionEvent) -> None:
        self.events.append(event)

    def for_order(self, order_id: str) -> list[OrderStatus]:
        return [e.status for e in self.events if e.order_id == order_id]


@dataclass(frozen=True, slots=True)
class FanOut:
    sinks: Sequence[EventSink]

    def emit(self, event: TransitionEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)


def fan_out(*sinks: EventSink) -> FanOut:
    """
    Send every event to all sinks, in order.

    Example:
        sink = E.fan_out(E.LogSink(), audit_sink)
    """
    return FanOut(tuple(sinks))


__all__ = (
    "TransitionEvent",
    "EventSink",
    "LogSink",
    "MemorySink",
    "FanOut",
    "fan_out",
)
