"""
Snapshot and Result Models

DESIGN DECISION: The ledger core only ever sees a complete, consistent
snapshot assembled by the caller. It never listens to partial streams.
Every core operation returns new values; it never mutates the snapshot it
was given.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from splitledger.errors import NotFoundError
from splitledger.models.expense import Expense
from splitledger.models.group import GroupRoster
from splitledger.models.settlement import Settlement


# =============================================================================
# SNAPSHOT
# =============================================================================

class LedgerSnapshot(BaseModel):
    """
    Everything the ledger knows at one point in time.

    Active and historical records are kept in separate partitions, the same
    way storage keeps "expenses" apart from "expense_history".
    """
    model_config = ConfigDict(frozen=True)

    expenses: list[Expense] = Field(default_factory=list)
    settlements: list[Settlement] = Field(default_factory=list)
    expense_history: list[Expense] = Field(default_factory=list)
    settlement_history: list[Settlement] = Field(default_factory=list)
    groups: list[GroupRoster] = Field(default_factory=list)
    archived_groups: list[GroupRoster] = Field(default_factory=list)

    def get_expense(self, expense_id: str) -> Expense:
        """Find an active expense by ID."""
        for expense in self.expenses:
            if expense.id == expense_id:
                return expense
        raise NotFoundError(f"Expense {expense_id} not found")

    def find_archived_expense(self, expense_id: str) -> Optional[Expense]:
        for expense in self.expense_history:
            if expense.id == expense_id:
                return expense
        return None

    def get_settlement(self, settlement_id: str) -> Settlement:
        """Find an active settlement by ID."""
        for settlement in self.settlements:
            if settlement.id == settlement_id:
                return settlement
        raise NotFoundError(f"Settlement {settlement_id} not found")

    def get_group(self, group_id: str) -> GroupRoster:
        """Find a live group by ID."""
        for group in self.groups:
            if group.id == group_id:
                return group
        raise NotFoundError(f"Group {group_id} not found")

    def find_group(self, group_id: Optional[str]) -> Optional[GroupRoster]:
        """Live or archived roster, or None."""
        if group_id is None:
            return None
        for group in [*self.groups, *self.archived_groups]:
            if group.id == group_id:
                return group
        return None

    def is_group_archived(self, group_id: str) -> bool:
        return any(group.id == group_id for group in self.archived_groups)

    def all_expenses(self) -> list[Expense]:
        """Active and historical expenses together."""
        return [*self.expenses, *self.expense_history]


# =============================================================================
# CHANGE SET (what the caller has to persist)
# =============================================================================

class LedgerChangeSet(BaseModel):
    """
    Record states produced by one core operation.

    Storage must apply a change set atomically: either every record lands
    or none does.
    """
    model_config = ConfigDict(frozen=True)

    upsert_expenses: list[Expense] = Field(default_factory=list)
    upsert_settlements: list[Settlement] = Field(default_factory=list)
    upsert_groups: list[GroupRoster] = Field(default_factory=list)
    archive_expenses: list[Expense] = Field(
        default_factory=list,
        description="Archived expense states; removed from active, added to history"
    )
    archive_settlements: list[Settlement] = Field(default_factory=list)
    archive_groups: list[GroupRoster] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any([
            self.upsert_expenses,
            self.upsert_settlements,
            self.upsert_groups,
            self.archive_expenses,
            self.archive_settlements,
            self.archive_groups,
        ])


# =============================================================================
# RESULTS
# =============================================================================

class BalancePartition(BaseModel):
    """Balances split by direction, relative to one viewer."""
    model_config = ConfigDict(frozen=True)

    viewer_id: str
    owed_to_viewer: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Participant -> amount they owe the viewer"
    )
    viewer_owes: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Participant -> amount the viewer owes them"
    )

    @property
    def total_owed_to_viewer(self) -> Decimal:
        return sum(self.owed_to_viewer.values(), Decimal("0.00"))

    @property
    def total_viewer_owes(self) -> Decimal:
        return sum(self.viewer_owes.values(), Decimal("0.00"))

    @property
    def is_settled_up(self) -> bool:
        return not self.owed_to_viewer and not self.viewer_owes


class Reconciliation(BalancePartition):
    """Full reconciliation: closed-ledger net balances plus the viewer's partition."""

    net_balances: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Global net positions after completed settlements"
    )


class SettlementRecordResult(BaseModel):
    """Outcome of recording a settlement."""
    model_config = ConfigDict(frozen=True)

    settlement: Settlement
    snapshot: LedgerSnapshot
    created_group: Optional[GroupRoster] = None
    changes: LedgerChangeSet


class ArchivalResult(BaseModel):
    """
    Outcome of an archival request.

    When nothing had to change (the record was already archived) every list
    is empty and `already_archived` is True.
    """
    model_config = ConfigDict(frozen=True)

    archived_expenses: list[Expense] = Field(default_factory=list)
    archived_settlements: list[Settlement] = Field(default_factory=list)
    cancelled_settlements: list[Settlement] = Field(default_factory=list)
    archived_group: Optional[GroupRoster] = None
    updated_group: Optional[GroupRoster] = None
    already_archived: bool = False
    snapshot: LedgerSnapshot

    @property
    def changes(self) -> LedgerChangeSet:
        return LedgerChangeSet(
            upsert_settlements=self.cancelled_settlements,
            upsert_groups=[self.updated_group] if self.updated_group else [],
            archive_expenses=self.archived_expenses,
            archive_settlements=self.archived_settlements,
            archive_groups=[self.archived_group] if self.archived_group else [],
        )


class HistoryEntry(BaseModel):
    """One line of a participant's transaction history."""
    model_config = ConfigDict(frozen=True)

    record_type: Literal["expense", "settlement"]
    record: Union[Expense, Settlement]
    is_historical: bool

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def date(self) -> datetime:
        return self.record.date

    @property
    def amount(self) -> Decimal:
        return self.record.amount

    @property
    def status(self) -> str:
        """Settlement status, or 'active' / 'deleted' for expenses."""
        if isinstance(self.record, Settlement):
            return self.record.status.value
        return "deleted" if self.record.is_deleted else "active"
