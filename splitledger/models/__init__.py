"""
Data Models Package

This package contains all Pydantic models used in the Split Ledger system.
All data flowing through the ledger must conform to these schemas.
"""

from splitledger.models.archival import (
    ActiveState,
    ArchivableRecord,
    ArchivalState,
    ArchivedState,
)
from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from splitledger.models.draft import ExpenseDraft, ValidationIssue, ValidationResult
from splitledger.models.expense import Expense, SplitType
from splitledger.models.group import GroupRoster
from splitledger.models.settlement import (
    Settlement,
    SettlementStatus,
    SettlementSuggestion,
)
from splitledger.models.snapshot import (
    ArchivalResult,
    BalancePartition,
    HistoryEntry,
    LedgerChangeSet,
    LedgerSnapshot,
    Reconciliation,
    SettlementRecordResult,
)

__all__ = [
    # Archival state
    "ActiveState",
    "ArchivableRecord",
    "ArchivalState",
    "ArchivedState",
    # Ledger records
    "Expense",
    "GroupRoster",
    "Settlement",
    "SettlementStatus",
    "SettlementSuggestion",
    "SplitType",
    # Snapshot and results
    "ArchivalResult",
    "BalancePartition",
    "HistoryEntry",
    "LedgerChangeSet",
    "LedgerSnapshot",
    "Reconciliation",
    "SettlementRecordResult",
    # Drafts and validation
    "ExpenseDraft",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
