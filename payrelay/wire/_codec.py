"""
Wire codec — request/response models shared by HTTP and Lambda.

Request models expose to_domain(), response models from_domain().
Outcome → HTTP status:

    PAID                 200
    REJECTED             402
    NOT_FOUND            404
    BUSY                 409
    INTEGRITY_VIOLATION  422
    UNAVAILABLE/TIMEOUT  503 + Retry-After
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from kungfu import Result, Ok, Error
from pydantic import BaseModel, Field

from payrelay.coordinator import SettleError, SettleErrorKind, Settlement
from payrelay.orders import Order, OrderDraft, Receipt
from payrelay.retry import RetryPolicy


# ═══════════════════════════════════════════════════════════════════════════════
# Request
# ═══════════════════════════════════════════════════════════════════════════════


class SettleIn(BaseModel):
    user_id: str = Field(min_length=1)
    amount: int = Field(gt=0, description="Minor units (cents)")
    feature_id: str = Field(min_length=1)
    artifact_ref: str = Field(min_length=1)

    def to_domain(self, order_id: str) -> OrderDraft:
        return OrderDraft(
            order_id=order_id,
            user_id=self.user_id,
            amount=self.amount,
            feature_id=self.feature_id,
            artifact_ref=self.artifact_ref,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════════


class ReceiptOut(BaseModel):
    receipt_id: str
    processor: str
    amount: int
    issued_at: datetime

    @classmethod
    def from_domain(cls, receipt: Receipt) -> ReceiptOut:
        return cls(
            receipt_id=receipt.receipt_id,
            processor=receipt.processor,
            amount=receipt.amount,
            issued_at=receipt.issued_at,
        )


class SettleOut(BaseModel):
    """
    status is "paid" or the error kind in lower case.

    retry_after/prompt_retry are only set for retryable errors.
    """

    order_id: str
    status: str
    retryable: bool = False
    receipt: ReceiptOut | None = None
    artifact_ref: str | None = None
    from_cache: bool | None = None
    message: str | None = None
    reason: str | None = None
    retry_after: float | None = None
    prompt_retry: bool | None = None

    @classmethod
    def from_domain(
        cls,
        order_id: str,
        dom: Result[Settlement, SettleError],
        attempt: int,
        policy: RetryPolicy,
    ) -> SettleOut:
        match dom:
            case Ok(settlement):
                return cls(
                    order_id=order_id,
                    status="paid",
                    receipt=ReceiptOut.from_domain(settlement.receipt),
                    artifact_ref=settlement.artifact_ref,
                    from_cache=settlement.from_cache,
                )
            case Error(err):
                out = cls(
                    order_id=order_id,
                    status=err.kind.name.lower(),
                    retryable=err.retryable,
                    message=err.message,
                    reason=err.reason,
                )
                if err.retryable:
                    advice = policy.advise(attempt)
                    # BUSY: someone else is mid-charge, come back right away
                    delay = 0.0 if err.kind == SettleErrorKind.BUSY else advice.delay
                    out.retry_after = delay
                    out.prompt_retry = advice.prompt
                return out


class OrderOut(BaseModel):
    order_id: str
    user_id: str
    amount: int
    feature_id: str
    status: str
    attempts: int
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None = None
    receipt: ReceiptOut | None = None
    failure_reason: str | None = None
    artifact_ref: str | None = None

    @classmethod
    def from_domain(cls, order: Order) -> OrderOut:
        return cls(
            order_id=order.order_id,
            user_id=order.user_id,
            amount=order.amount,
            feature_id=order.feature_id,
            status=order.status.value,
            attempts=order.attempts,
            created_at=order.created_at,
            updated_at=order.updated_at,
            expires_at=order.expires_at,
            receipt=ReceiptOut.from_domain(order.processor_receipt) if order.processor_receipt else None,
            failure_reason=order.failure_reason,
            artifact_ref=order.releasable_artifact,
        )


class ErrorOut(BaseModel):
    order_id: str
    status: str
    message: str
    retryable: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# Reply — transport-neutral HTTP answer
# ═══════════════════════════════════════════════════════════════════════════════


_STATUS_CODES = {
    SettleErrorKind.REJECTED: 402,
    SettleErrorKind.NOT_FOUND: 404,
    SettleErrorKind.BUSY: 409,
    SettleErrorKind.INTEGRITY_VIOLATION: 422,
    SettleErrorKind.UNAVAILABLE: 503,
    SettleErrorKind.TIMEOUT: 503,
}


def status_code(err: SettleError) -> int:
    return _STATUS_CODES[err.kind]


@dataclass(frozen=True, slots=True)
class Reply:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


def settle_reply(
    order_id: str,
    dom: Result[Settlement, SettleError],
    attempt: int,
    policy: RetryPolicy,
) -> Reply:
    out = SettleOut.from_domain(order_id, dom, attempt, policy)
    body = out.model_dump(mode="json", exclude_none=True)
    match dom:
        case Ok(_):
            return Reply(200, body)
        case Error(err):
            headers: dict[str, str] = {}
            code = status_code(err)
            if code == 503 and out.retry_after is not None:
                headers["Retry-After"] = str(math.ceil(out.retry_after))
            return Reply(code, body, headers)


def order_reply(order_id: str, dom: Result[Order, SettleError]) -> Reply:
    match dom:
        case Ok(order):
            return Reply(200, OrderOut.from_domain(order).model_dump(mode="json", exclude_none=True))
        case Error(err):
            out = ErrorOut(
                order_id=order_id,
                status=err.kind.name.lower(),
                message=err.message,
                retryable=err.retryable,
            )
            return Reply(status_code(err), out.model_dump(mode="json"))


__all__ = (
    "SettleIn",
    "ReceiptOut",
    "SettleOut",
    "OrderOut",
    "ErrorOut",
    "status_code",
    "Reply",
    "settle_reply",
    "order_reply",
)
