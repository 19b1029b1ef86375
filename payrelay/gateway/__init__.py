"""
Gateway — the external payment processor behind a typed protocol.

    from payrelay import gateway as GW

    gw = GW.gateway_from(my_client_charge)     # raising fn → Result
    gw = GW.SimulatedGateway()                 # tests / --simulate

    match await gw.charge("o1", 500, "u1"):
        case Ok(receipt): ...
        case Error(GW.GatewayError(kind=GW.GatewayErrorKind.REJECTED)): ...
"""

from payrelay.gateway._types import (
    GatewayErrorKind,
    GatewayError,
    ChargeDeclined,
    Gateway,
)
from payrelay.gateway._functional import (
    ChargeFn,
    Classify,
    classify_exception,
    FunctionalGateway,
    gateway_from,
)
from payrelay.gateway._simulated import SimulatedGateway

__all__ = (
    # Types
    "GatewayErrorKind",
    "GatewayError",
    "ChargeDeclined",
    "Gateway",
    # Functional
    "ChargeFn",
    "Classify",
    "classify_exception",
    "FunctionalGateway",
    "gateway_from",
    # Simulated
    "SimulatedGateway",
)
