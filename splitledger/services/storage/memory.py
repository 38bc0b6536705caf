"""
In-Memory Storage Implementation

Reference implementation of the storage interfaces. Each record type has an
active partition and a history partition, mirroring the "expenses" /
"expense_history" collections a document store would use.

Change sets are applied copy-then-swap: the new partitions are built aside
and only replace the live ones once the whole batch has been checked. A
failing batch leaves storage exactly as it was.
"""

import asyncio
from typing import Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.expense import Expense
from splitledger.models.group import GroupRoster
from splitledger.models.settlement import Settlement
from splitledger.models.snapshot import LedgerChangeSet, LedgerSnapshot
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    LedgerStorageInterface,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger storage held in dictionaries keyed by record id."""

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None):
        snapshot = snapshot or LedgerSnapshot()
        self._expenses: dict[str, Expense] = {e.id: e for e in snapshot.expenses}
        self._settlements: dict[str, Settlement] = {s.id: s for s in snapshot.settlements}
        self._expense_history: dict[str, Expense] = {e.id: e for e in snapshot.expense_history}
        self._settlement_history: dict[str, Settlement] = {
            s.id: s for s in snapshot.settlement_history
        }
        self._groups: dict[str, GroupRoster] = {g.id: g for g in snapshot.groups}
        self._archived_groups: dict[str, GroupRoster] = {
            g.id: g for g in snapshot.archived_groups
        }
        self._lock = asyncio.Lock()

    async def load_snapshot(self) -> LedgerSnapshot:
        async with self._lock:
            return LedgerSnapshot(
                expenses=list(self._expenses.values()),
                settlements=list(self._settlements.values()),
                expense_history=list(self._expense_history.values()),
                settlement_history=list(self._settlement_history.values()),
                groups=list(self._groups.values()),
                archived_groups=list(self._archived_groups.values()),
            )

    async def apply_changes(self, changes: LedgerChangeSet) -> bool:
        async with self._lock:
            expenses = dict(self._expenses)
            settlements = dict(self._settlements)
            expense_history = dict(self._expense_history)
            settlement_history = dict(self._settlement_history)
            groups = dict(self._groups)
            archived_groups = dict(self._archived_groups)

            for expense in changes.upsert_expenses:
                if expense.id in expense_history:
                    raise ConflictError(f"Expense {expense.id} is archived")
                expenses[expense.id] = expense

            for settlement in changes.upsert_settlements:
                if settlement.id in settlement_history:
                    raise ConflictError(f"Settlement {settlement.id} is archived")
                settlements[settlement.id] = settlement

            for group in changes.upsert_groups:
                groups[group.id] = group

            for expense in changes.archive_expenses:
                self._move(expense, expenses, expense_history, "Expense")

            for settlement in changes.archive_settlements:
                self._move(settlement, settlements, settlement_history, "Settlement")

            for group in changes.archive_groups:
                self._move(group, groups, archived_groups, "Group")

            # Swap only after every change has been checked
            self._expenses = expenses
            self._settlements = settlements
            self._expense_history = expense_history
            self._settlement_history = settlement_history
            self._groups = groups
            self._archived_groups = archived_groups
            return True

    @staticmethod
    def _move(record, active: dict, history: dict, label: str) -> None:
        """Move a record from the active partition to history (idempotent)."""
        if record.id in history:
            return
        if record.id not in active:
            raise ConflictError(f"{label} {record.id} is not stored")
        del active[record.id]
        history[record.id] = record


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
