"""
Ledger Core

Pure, synchronous functions and classes over a LedgerSnapshot:
splitting, balance folding, settlement reconciliation, archival and history.
No I/O happens in this package.
"""

from splitledger.ledger.archival import EXPENSE_DELETED_REASON, ArchivalPolicy
from splitledger.ledger.balances import BalanceLedger
from splitledger.ledger.history import TransactionHistoryView
from splitledger.ledger.reconciler import SETTLED_EPSILON, SettlementReconciler
from splitledger.ledger.splits import (
    adjust_custom_splits,
    calculate_split,
    compute_equal_split,
    compute_percentage_split,
    compute_weighted_split,
    validate_exact_split,
)

__all__ = [
    "ArchivalPolicy",
    "BalanceLedger",
    "EXPENSE_DELETED_REASON",
    "SETTLED_EPSILON",
    "SettlementReconciler",
    "TransactionHistoryView",
    "adjust_custom_splits",
    "calculate_split",
    "compute_equal_split",
    "compute_percentage_split",
    "compute_weighted_split",
    "validate_exact_split",
]
