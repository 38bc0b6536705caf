"""
Transaction History View

Read-only composition of active and archived records for one participant,
newest first. Nothing here changes archival state.
"""

from decimal import Decimal
from typing import Optional

import structlog

from splitledger.ledger.balances import BalanceLedger
from splitledger.models.snapshot import HistoryEntry, LedgerSnapshot


class TransactionHistoryView:
    """Merges the active and history partitions into one timeline."""

    def __init__(self, ledger: Optional[BalanceLedger] = None):
        self._ledger = ledger or BalanceLedger()
        self._logger = structlog.get_logger(__name__)

    def get_history(self, snapshot: LedgerSnapshot, participant_id: str) -> list[HistoryEntry]:
        """
        Every expense and settlement touching the participant.

        Sorted by date descending; ties fall back to created_at descending,
        then id, so the order is stable across calls.
        """
        entries: list[HistoryEntry] = []

        for expenses, historical in ((snapshot.expenses, False), (snapshot.expense_history, True)):
            entries.extend(
                HistoryEntry(record_type="expense", record=e, is_historical=historical)
                for e in expenses
                if e.involves(participant_id)
            )

        # Settlements are matched on both sides: paid AND received.
        for settlements, historical in (
            (snapshot.settlements, False),
            (snapshot.settlement_history, True),
        ):
            entries.extend(
                HistoryEntry(record_type="settlement", record=s, is_historical=historical)
                for s in settlements
                if s.involves(participant_id)
            )

        entries.sort(key=lambda entry: entry.id)
        entries.sort(key=lambda entry: (entry.date, entry.record.created_at), reverse=True)

        self._logger.debug(
            "history_built",
            participant_id=participant_id,
            entries=len(entries),
        )
        return entries

    def historical_balances(self, snapshot: LedgerSnapshot) -> dict[str, Decimal]:
        """
        Balances over active AND archived expenses.

        This is the audit view; live balances leave history out.
        """
        return self._ledger.compute_balances(snapshot.all_expenses(), include_history=True)
