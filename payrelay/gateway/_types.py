"""
Gateway types — processor errors and the charge protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Protocol

from kungfu import Result

from payrelay.orders import Receipt


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway Error
# ═══════════════════════════════════════════════════════════════════════════════


class GatewayErrorKind(Enum):
    """
    Why a charge did not produce a receipt.

    REJECTED: processor declined (card, fraud, limits). Terminal.
    UNAVAILABLE: processor unreachable or 5xx. Retryable.
    TIMEOUT: no answer in time. Retryable — the charge MAY have happened,
             a retry with the same order_id resolves it via processor dedup.
    """

    REJECTED = auto()
    UNAVAILABLE = auto()
    TIMEOUT = auto()


@dataclass(frozen=True, slots=True)
class GatewayError:
    """Processor failure as a value."""

    kind: GatewayErrorKind
    message: str
    code: str | None = None

    @property
    def retryable(self) -> bool:
        return self.kind != GatewayErrorKind.REJECTED

    @property
    def reason(self) -> str:
        """Reason stored on the order for remediation."""
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message


class ChargeDeclined(Exception):
    """
    Raise from a client function to signal a processor decline.

    gateway_from() maps it to GatewayErrorKind.REJECTED.
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Gateway(Protocol):
    """
    External payment processor.

    Note: order_id передаётся как dedup token процессора.
    Почему: повторный charge с тем же token не списывает деньги второй раз,
    это внешняя гарантия, мы её не переизобретаем.
    """

    async def charge(
        self,
        order_id: str,
        amount: int,
        user_id: str,
    ) -> Result[Receipt, GatewayError]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "GatewayErrorKind",
    "GatewayError",
    "ChargeDeclined",
    "Gateway",
)
