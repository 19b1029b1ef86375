"""
Wire — transport edge: request/response codec and the Lambda adapter.

    from payrelay import wire as W

    draft = W.SettleIn.model_validate_json(raw).to_domain(order_id)
    reply = W.settle_reply(order_id, result, attempt, policy)   # status, body, headers
"""

from payrelay.wire._codec import (
    SettleIn,
    ReceiptOut,
    SettleOut,
    OrderOut,
    ErrorOut,
    status_code,
    Reply,
    settle_reply,
    order_reply,
)

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
