"""
Settlement Reconciler

Applies completed settlements on top of expense balances and partitions the
result into "owed to the viewer" and "the viewer owes".

CRITICAL RULES:
1. Only settlements that are COMPLETED and not archived move balances.
   Pending and cancelled settlements never do.
2. A participant's settlements are the union of both directions
   (as payer and as receiver). Folding only one side under-applies payments.
3. Effects are derived from status on every run, never from an
   "already applied" flag, so replaying a snapshot is safe.

Two frames are supported:
- Global frame (closed ledger): a completed A -> B payment of X moves A's
  net position up by X and B's down by X. The sum stays zero.
- Viewer frame: balances relative to one viewer, where for the counterparty
  balance[from_user] -= X and balance[to_user] += X.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional

import structlog

from splitledger.errors import InvariantViolation
from splitledger.ledger.balances import BalanceLedger
from splitledger.models.group import GroupRoster
from splitledger.models.money import CENT, ZERO, MoneyLike, to_money
from splitledger.models.settlement import (
    Settlement,
    SettlementStatus,
    SettlementSuggestion,
)
from splitledger.models.snapshot import (
    BalancePartition,
    LedgerChangeSet,
    LedgerSnapshot,
    Reconciliation,
    SettlementRecordResult,
)


# Balances at or below one subunit are treated as settled.
SETTLED_EPSILON = CENT


class SettlementReconciler:
    """
    Folds settlements into balances and manages settlement state.

    Args:
        ledger: BalanceLedger used by reconcile(); a fresh one by default.
        epsilon: Balances with abs value <= epsilon are dropped as settled.
        clock: Returns "now"; injected so tests are deterministic.
    """

    def __init__(
        self,
        ledger: Optional[BalanceLedger] = None,
        epsilon: Decimal = SETTLED_EPSILON,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._ledger = ledger or BalanceLedger()
        self._epsilon = epsilon
        self._clock = clock or datetime.utcnow
        self._logger = structlog.get_logger(__name__)

    # =========================================================================
    # FOLDING
    # =========================================================================

    @staticmethod
    def applicable(settlements: Iterable[Settlement]) -> list[Settlement]:
        """Settlements that move balances: completed and still active."""
        return [
            s for s in settlements
            if s.status == SettlementStatus.COMPLETED and not s.is_deleted
        ]

    @staticmethod
    def settlements_for(
        participant_id: str,
        settlements: Iterable[Settlement],
    ) -> list[Settlement]:
        """Every settlement where the participant paid OR received."""
        return [s for s in settlements if s.involves(participant_id)]

    def settle_balances(
        self,
        balances: Mapping[str, Decimal],
        settlements: Iterable[Settlement],
    ) -> dict[str, Decimal]:
        """
        Apply completed settlements to global net balances.

        Returns a new map; the input is untouched.
        """
        result = dict(balances)
        for settlement in self.applicable(settlements):
            result[settlement.from_user] = result.get(settlement.from_user, ZERO) + settlement.amount
            result[settlement.to_user] = result.get(settlement.to_user, ZERO) - settlement.amount
        return result

    def apply_settlements(
        self,
        viewer_balances: Mapping[str, Decimal],
        settlements: Iterable[Settlement],
        viewer_id: str,
    ) -> BalancePartition:
        """
        Apply the viewer's completed settlements and partition the result.

        `viewer_balances` is relative to the viewer (positive = they owe the
        viewer). Settlements between two other participants do not change
        what either of them owes the viewer.
        """
        result = dict(viewer_balances)
        relevant = self.settlements_for(viewer_id, self.applicable(settlements))

        for settlement in relevant:
            if settlement.to_user == viewer_id:
                other = settlement.from_user
                result[other] = result.get(other, ZERO) - settlement.amount
            else:
                other = settlement.to_user
                result[other] = result.get(other, ZERO) + settlement.amount

        self._logger.debug(
            "settlements_applied",
            viewer_id=viewer_id,
            applied=len(relevant),
        )
        return self.partition(result, viewer_id)

    def partition(
        self,
        balances: Mapping[str, Decimal],
        viewer_id: str,
    ) -> BalancePartition:
        """Drop settled entries and split the rest by sign."""
        owed_to_viewer: dict[str, Decimal] = {}
        viewer_owes: dict[str, Decimal] = {}

        for participant, balance in balances.items():
            if participant == viewer_id or abs(balance) <= self._epsilon:
                continue
            if balance > 0:
                owed_to_viewer[participant] = balance
            else:
                viewer_owes[participant] = -balance

        return BalancePartition(
            viewer_id=viewer_id,
            owed_to_viewer=owed_to_viewer,
            viewer_owes=viewer_owes,
        )

    def reconcile(self, snapshot: LedgerSnapshot, viewer_id: str) -> Reconciliation:
        """Run the whole pipeline for one viewer from a snapshot."""
        net = self.settle_balances(
            self._ledger.compute_balances(snapshot.expenses),
            snapshot.settlements,
        )
        partition = self.apply_settlements(
            self._ledger.compute_viewer_balances(snapshot.expenses, viewer_id),
            snapshot.settlements,
            viewer_id,
        )
        return Reconciliation(
            viewer_id=viewer_id,
            net_balances=net,
            owed_to_viewer=partition.owed_to_viewer,
            viewer_owes=partition.viewer_owes,
        )

    # =========================================================================
    # RECOMMENDATIONS
    # =========================================================================

    def suggest_settlements(
        self,
        balances: Mapping[str, Decimal],
    ) -> list[SettlementSuggestion]:
        """
        Payments that would close the ledger.

        Greedy: the largest debtor pays the largest creditor until one of
        them is settled, then move on. Ties are broken by participant id.
        """
        creditors = sorted(
            ((p, b) for p, b in balances.items() if b > self._epsilon),
            key=lambda item: (-item[1], item[0]),
        )
        debtors = sorted(
            ((p, -b) for p, b in balances.items() if b < -self._epsilon),
            key=lambda item: (-item[1], item[0]),
        )

        suggestions = []
        ci = di = 0
        creditor_left = creditors[0][1] if creditors else ZERO
        debtor_left = debtors[0][1] if debtors else ZERO

        while ci < len(creditors) and di < len(debtors):
            amount = min(creditor_left, debtor_left)
            if amount > self._epsilon:
                suggestions.append(SettlementSuggestion(
                    from_user=debtors[di][0],
                    to_user=creditors[ci][0],
                    amount=to_money(amount),
                ))
            creditor_left -= amount
            debtor_left -= amount

            if creditor_left <= self._epsilon:
                ci += 1
                if ci < len(creditors):
                    creditor_left = creditors[ci][1]
            if debtor_left <= self._epsilon:
                di += 1
                if di < len(debtors):
                    debtor_left = debtors[di][1]

        return suggestions

    @staticmethod
    def pending_total(user_id: str, settlements: Iterable[Settlement]) -> Decimal:
        """
        Net amount of pending settlements for a user.

        Positive = the user still has to pay, negative = the user is waiting
        to receive.
        """
        total = ZERO
        for settlement in settlements:
            if not settlement.is_pending or settlement.is_deleted:
                continue
            if settlement.from_user == user_id:
                total += settlement.amount
            elif settlement.to_user == user_id:
                total -= settlement.amount
        return total

    # =========================================================================
    # STATE TRANSITIONS
    # =========================================================================

    def record_settlement(
        self,
        snapshot: LedgerSnapshot,
        from_user: str,
        to_user: str,
        amount: MoneyLike,
        *,
        completed: bool = True,
        group_id: Optional[str] = None,
        related_expense_id: Optional[str] = None,
        from_user_name: Optional[str] = None,
        to_user_name: Optional[str] = None,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> SettlementRecordResult:
        """
        "Mark as settled": create a settlement, pending or already completed.

        A settlement outside any group is filed under the personal group of
        the two participants, which is created if it does not exist yet.
        """
        now = self._clock()
        created_group = None

        if group_id is not None:
            group = snapshot.get_group(group_id)
        else:
            group = next(
                (g for g in snapshot.groups if g.is_pair(from_user, to_user)),
                None,
            )
            if group is None:
                group = GroupRoster.personal(from_user, from_user_name, to_user, to_user_name)
                created_group = group

        if related_expense_id is not None:
            snapshot.get_expense(related_expense_id)

        settlement = Settlement.create(
            from_user=from_user,
            from_user_name=from_user_name or group.display_name(from_user),
            to_user=to_user,
            to_user_name=to_user_name or group.display_name(to_user),
            amount=to_money(amount),
            group_id=group.id,
            group_name=group.name,
            status=SettlementStatus.COMPLETED if completed else SettlementStatus.PENDING,
            completed_at=now if completed else None,
            related_expense_id=related_expense_id,
            payment_method=payment_method,
            notes=notes,
            date=date or now,
            created_at=now,
            updated_at=now,
        )

        groups = snapshot.groups + [created_group] if created_group else snapshot.groups
        new_snapshot = snapshot.model_copy(update={
            "settlements": snapshot.settlements + [settlement],
            "groups": groups,
        })

        self._logger.info(
            "settlement_recorded",
            settlement_id=settlement.id,
            status=settlement.status.value,
            created_group=created_group.id if created_group else None,
        )
        return SettlementRecordResult(
            settlement=settlement,
            snapshot=new_snapshot,
            created_group=created_group,
            changes=LedgerChangeSet(
                upsert_settlements=[settlement],
                upsert_groups=[created_group] if created_group else [],
            ),
        )

    def complete_settlement(
        self,
        snapshot: LedgerSnapshot,
        settlement_id: str,
    ) -> SettlementRecordResult:
        """pending -> completed. Raises PreconditionFailed if already terminal."""
        updated = snapshot.get_settlement(settlement_id).mark_completed(self._clock())
        return self._replace(snapshot, updated)

    def cancel_settlement(
        self,
        snapshot: LedgerSnapshot,
        settlement_id: str,
        reason: str,
    ) -> SettlementRecordResult:
        """pending -> cancelled. Raises PreconditionFailed if already terminal."""
        if not reason:
            raise InvariantViolation("A cancellation needs a reason")
        updated = snapshot.get_settlement(settlement_id).cancel(reason, self._clock())
        return self._replace(snapshot, updated)

    def _replace(self, snapshot: LedgerSnapshot, updated: Settlement) -> SettlementRecordResult:
        settlements = [updated if s.id == updated.id else s for s in snapshot.settlements]
        self._logger.info(
            "settlement_status_changed",
            settlement_id=updated.id,
            status=updated.status.value,
        )
        return SettlementRecordResult(
            settlement=updated,
            snapshot=snapshot.model_copy(update={"settlements": settlements}),
            changes=LedgerChangeSet(upsert_settlements=[updated]),
        )
