"""
Graph — declarative decision graphs on nodnod.

    from payrelay import graph as G

    @G.node
    class PaidRecordNode:
        @classmethod
        def __compose__(cls, matched: MatchedRecordNode) -> "PaidRecordNode":
            if matched.order.status != OrderStatus.PAID:
                raise NodeError("Not paid")
            return cls(matched.order)

    decisions = G.compile(DecisionNode)       # once, at import
    result = await decisions.inject(spec)     # per request
"""

from nodnod import scalar_node as node

from payrelay.graph._run import (
    Run,
    Graph,
    compile,
)

__all__ = (
    "node",
    "Run",
    "Graph",
    "compile",
)
