"""
Balance Ledger

Folds expenses into a signed balance per participant.

For every expense:
    balance[p]     -= split[p]   for every participant p in the split
    balance[payer] += amount

The payer nets `amount - own share`; everyone else nets `-share`.
Because each split sums exactly to its amount, the balances of any set of
expenses sum to exactly zero (the ledger is closed).

DESIGN DECISION: Balances are always recomputed from the full list of
records. There is no running total to patch, so replaying the same
snapshot can never double count.
"""

from decimal import Decimal
from typing import Iterable

import structlog

from splitledger.models.expense import Expense
from splitledger.models.money import ZERO, money_sum


class BalanceLedger:
    """
    Computes balances from expense records.

    Archived expenses are skipped unless include_history is set.
    """

    def __init__(self):
        self._logger = structlog.get_logger(__name__)

    @staticmethod
    def _select(expenses: Iterable[Expense], include_history: bool) -> list[Expense]:
        if include_history:
            return list(expenses)
        return [expense for expense in expenses if not expense.is_deleted]

    def compute_balances(
        self,
        expenses: Iterable[Expense],
        include_history: bool = False,
    ) -> dict[str, Decimal]:
        """
        Global net balance per participant.

        Positive = the participant is owed money overall,
        negative = the participant owes money overall.
        """
        selected = self._select(expenses, include_history)
        balances: dict[str, Decimal] = {}

        for expense in selected:
            for participant, share in expense.split.items():
                balances[participant] = balances.get(participant, ZERO) - share
            balances[expense.payer] = balances.get(expense.payer, ZERO) + expense.amount

        total = money_sum(balances.values())
        if total != ZERO:
            # Only reachable with records that bypassed model validation
            self._logger.warning(
                "ledger_not_closed",
                total=str(total),
                expense_count=len(selected),
            )

        self._logger.debug(
            "balances_computed",
            expense_count=len(selected),
            participant_count=len(balances),
            include_history=include_history,
        )
        return balances

    def compute_viewer_balances(
        self,
        expenses: Iterable[Expense],
        viewer_id: str,
        include_history: bool = False,
    ) -> dict[str, Decimal]:
        """
        Balances relative to one viewer.

        Positive = that participant owes the viewer,
        negative = the viewer owes that participant.
        Expenses that do not involve the viewer have no effect.
        """
        balances: dict[str, Decimal] = {}

        for expense in self._select(expenses, include_history):
            if expense.payer == viewer_id:
                for participant, share in expense.split.items():
                    if participant != viewer_id:
                        balances[participant] = balances.get(participant, ZERO) + share
            elif viewer_id in expense.split:
                share = expense.split[viewer_id]
                balances[expense.payer] = balances.get(expense.payer, ZERO) - share

        return balances

    def expenses_for(
        self,
        participant_id: str,
        expenses: Iterable[Expense],
        include_history: bool = False,
    ) -> list[Expense]:
        """Expenses where the participant paid or owes a share."""
        return [
            expense
            for expense in self._select(expenses, include_history)
            if expense.involves(participant_id)
        ]

    def total_spent(
        self,
        expenses: Iterable[Expense],
        include_history: bool = False,
    ) -> Decimal:
        """Sum of expense amounts."""
        return money_sum(e.amount for e in self._select(expenses, include_history))
