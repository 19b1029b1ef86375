"""
Orders — the settlement data model.

    from payrelay import orders as O

    draft = O.OrderDraft(
        order_id="o1",
        user_id="u1",
        amount=500,
        feature_id="hd-render",
        artifact_ref="s3://renders/o1.png",
    )
"""

from payrelay.orders._types import (
    OrderStatus,
    can_transition,
    Receipt,
    OrderDraft,
    Order,
)

__all__ = (
    "OrderStatus",
    "can_transition",
    "Receipt",
    "OrderDraft",
    "Order",
)
