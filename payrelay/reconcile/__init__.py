"""
Reconcile — audit of abandoned in-flight orders.

    from payrelay import reconcile as RC

    scanner = RC.ReconciliationScanner(store, threshold=timedelta(minutes=15))
    match await scanner.scan():
        case Ok(report): ...
        case Error(err): ...
"""

from payrelay.reconcile._scanner import (
    AT_RISK_STATUSES,
    AtRiskOrder,
    AtRiskReport,
    ReconciliationScanner,
)

__all__ = (
    "AT_RISK_STATUSES",
    "AtRiskOrder",
    "AtRiskReport",
    "ReconciliationScanner",
)
