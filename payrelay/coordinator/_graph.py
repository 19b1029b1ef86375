"""
Settle decision graph — routing of a stored order as nodnod nodes.

Pure decision: reads nothing, writes nothing. The coordinator performs
whatever the decision says.

Architecture:
    SettleSpec (injected)
         │
         ▼
    SpecNode
         │
         ├──────────────────────────────┐
         ▼                              ▼
    MatchedRecordNode            MismatchedRecordNode
         │                              │
         ├── PaidRecordNode ─────┐      │
         ├── TerminalRecordNode ─┼──────┴── SettleDecision (@polymorphic)
         └── ChargeableRecordNode┘                │
                                                  ▼
                                            DecisionNode

Note: НЕ используем 'from __future__ import annotations' потому что
nodnod использует type hints в runtime для dependency resolution.
"""

from dataclasses import dataclass

from nodnod import NodeError, polymorphic, case

from payrelay import graph as G
from payrelay.orders import Order, OrderDraft, OrderStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Input — Spec (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SettleSpec:
    """A settle request next to the record the store holds for it."""

    draft: OrderDraft
    order: Order


@G.node
class SpecNode:
    def __init__(self, spec: SettleSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec: SettleSpec) -> "SpecNode":
        return cls(spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Integrity Nodes
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class MatchedRecordNode:
    """Validates: stored amount/feature_id equal the request's."""

    def __init__(self, order: Order) -> None:
        self.order = order

    @classmethod
    def __compose__(cls, spec_node: SpecNode) -> "MatchedRecordNode":
        spec = spec_node.spec
        if not spec.order.matches(spec.draft):
            raise NodeError("Record mismatch")
        return cls(spec.order)


@G.node
class MismatchedRecordNode:
    """Validates: same order_id, different priced purchase."""

    def __init__(self, order: Order, draft: OrderDraft) -> None:
        self.order = order
        self.draft = draft

    @classmethod
    def __compose__(cls, spec_node: SpecNode) -> "MismatchedRecordNode":
        spec = spec_node.spec
        if spec.order.matches(spec.draft):
            raise NodeError("Record matches")
        return cls(spec.order, spec.draft)


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes — each validates one status family
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class PaidRecordNode:
    def __init__(self, order: Order) -> None:
        self.order = order

    @classmethod
    def __compose__(cls, matched: MatchedRecordNode) -> "PaidRecordNode":
        if matched.order.status != OrderStatus.PAID:
            raise NodeError("Not paid")
        return cls(matched.order)


@G.node
class TerminalRecordNode:
    def __init__(self, order: Order) -> None:
        self.order = order

    @classmethod
    def __compose__(cls, matched: MatchedRecordNode) -> "TerminalRecordNode":
        if matched.order.status != OrderStatus.FAILED_TERMINAL:
            raise NodeError("Not terminal")
        return cls(matched.order)


@G.node
class ChargeableRecordNode:
    """
    Validates: PENDING, CHARGING or FAILED_RETRYABLE.

    Note: CHARGING тоже chargeable — это либо краш посреди charge, либо
    параллельный settler. Повторный charge с тем же order_id безопасен.
    """

    def __init__(self, order: Order) -> None:
        self.order = order

    @classmethod
    def __compose__(cls, matched: MatchedRecordNode) -> "ChargeableRecordNode":
        if matched.order.status.is_absorbing:
            raise NodeError("Absorbing status")
        return cls(matched.order)


# ═══════════════════════════════════════════════════════════════════════════════
# Decision Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IntegrityViolation:
    order: Order
    draft: OrderDraft


@dataclass(frozen=True, slots=True)
class AlreadyPaid:
    order: Order


@dataclass(frozen=True, slots=True)
class AlreadyRejected:
    order: Order


@dataclass(frozen=True, slots=True)
class Charge:
    """Move `order` to CHARGING (CAS from its current status) and charge."""

    order: Order


type Decision = IntegrityViolation | AlreadyPaid | AlreadyRejected | Charge


@polymorphic[Decision]
class SettleDecision:
    """Exactly one case applies — the state nodes are mutually exclusive."""

    @case
    def integrity(cls, node: MismatchedRecordNode) -> Decision:
        return IntegrityViolation(node.order, node.draft)

    @case
    def cached_paid(cls, node: PaidRecordNode) -> Decision:
        return AlreadyPaid(node.order)

    @case
    def terminal(cls, node: TerminalRecordNode) -> Decision:
        return AlreadyRejected(node.order)

    @case
    def charge(cls, node: ChargeableRecordNode) -> Decision:
        return Charge(node.order)


@G.node
class DecisionNode:
    def __init__(self, decision: Decision) -> None:
        self.decision = decision

    @classmethod
    def __compose__(cls, decision: SettleDecision) -> "DecisionNode":
        return cls(decision.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


_DECISIONS = G.compile(DecisionNode)


async def decide(draft: OrderDraft, order: Order) -> Decision:
    """Route a settle request against the stored record."""
    node = await _DECISIONS.inject(SettleSpec(draft, order))
    return node.decision


__all__ = (
    "SettleSpec",
    "SpecNode",
    "MatchedRecordNode",
    "MismatchedRecordNode",
    "PaidRecordNode",
    "TerminalRecordNode",
    "ChargeableRecordNode",
    "IntegrityViolation",
    "AlreadyPaid",
    "AlreadyRejected",
    "Charge",
    "Decision",
    "SettleDecision",
    "DecisionNode",
    "decide",
)
