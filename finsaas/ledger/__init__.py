"""Ledger consistency package: balance reconciliation and bill status."""

from finsaas.ledger.errors import (
    InvalidStateError,
    LedgerError,
    ValidationFailedError,
)
from finsaas.ledger.reconciler import (
    BalanceBreakdown,
    BalanceReconciler,
    compute_balance,
    summarize_balance,
)
from finsaas.ledger.status import derive_display_status, with_display_status

__all__ = [
    "BalanceBreakdown",
    "BalanceReconciler",
    "InvalidStateError",
    "LedgerError",
    "ValidationFailedError",
    "compute_balance",
    "derive_display_status",
    "summarize_balance",
    "with_display_status",
]
