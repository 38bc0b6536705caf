"""
Archival Policy

Decides what happens to records when an expense or a whole group is deleted.

DESIGN DECISION: Nothing is physically erased. A deleted record leaves the
active partition and enters the history partition with provenance (when,
and from which group). Balances ignore history; audit views include it.

GUARANTEES:
- All-or-nothing: every new record state is computed before the new
  snapshot is built. The input snapshot is never mutated, so a failure
  part-way leaves the caller holding the untouched original.
- Idempotent: archiving something already archived returns an empty result
  flagged `already_archived`, not an error.
- Cascade: archiving an expense cancels every PENDING settlement that was
  made against it. Completed settlements are terminal and are left alone.
"""

from datetime import datetime
from typing import Callable, Optional, Union

import structlog

from splitledger.errors import NotFoundError
from splitledger.models.expense import Expense
from splitledger.models.group import GroupRoster
from splitledger.models.settlement import Settlement
from splitledger.models.snapshot import ArchivalResult, LedgerSnapshot


EXPENSE_DELETED_REASON = "expense deleted"


class ArchivalPolicy:
    """
    Soft-delete rules for expenses, groups and group membership.

    Args:
        clock: Returns "now"; injected so tests are deterministic.
        expense_deleted_reason: Recorded on settlements cancelled by cascade.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        expense_deleted_reason: str = EXPENSE_DELETED_REASON,
    ):
        self._clock = clock or datetime.utcnow
        self._reason = expense_deleted_reason
        self._logger = structlog.get_logger(__name__)

    def archive_expense(self, snapshot: LedgerSnapshot, expense_id: str) -> ArchivalResult:
        """
        Move one expense to history and cancel its pending settlements.

        Raises:
            NotFoundError: The id is neither active nor archived.
        """
        active = next((e for e in snapshot.expenses if e.id == expense_id), None)
        if active is None:
            if snapshot.find_archived_expense(expense_id) is not None:
                self._logger.debug("expense_already_archived", expense_id=expense_id)
                return ArchivalResult(already_archived=True, snapshot=snapshot)
            raise NotFoundError(f"Expense {expense_id} not found")

        now = self._clock()
        group = snapshot.find_group(active.group_id)
        group_name = group.name if group else active.group_name
        archived = active.archived(now, active.group_id, group_name)

        cancelled = [
            s.cancel(self._reason, now)
            for s in snapshot.settlements
            if s.related_expense_id == expense_id and s.is_pending
        ]
        cancelled_by_id = {s.id: s for s in cancelled}

        new_snapshot = snapshot.model_copy(update={
            "expenses": [e for e in snapshot.expenses if e.id != expense_id],
            "expense_history": snapshot.expense_history + [archived],
            "settlements": [cancelled_by_id.get(s.id, s) for s in snapshot.settlements],
        })

        self._logger.info(
            "expense_archived",
            expense_id=expense_id,
            group_id=active.group_id,
            cancelled_settlements=sorted(cancelled_by_id),
        )
        return ArchivalResult(
            archived_expenses=[archived],
            cancelled_settlements=cancelled,
            snapshot=new_snapshot,
        )

    def archive_group(self, snapshot: LedgerSnapshot, group_id: str) -> ArchivalResult:
        """
        Move a group and every record it owns to history.

        Raises:
            NotFoundError: The group is neither live nor archived.
        """
        group = next((g for g in snapshot.groups if g.id == group_id), None)
        if group is None:
            if snapshot.is_group_archived(group_id):
                self._logger.debug("group_already_archived", group_id=group_id)
                return ArchivalResult(already_archived=True, snapshot=snapshot)
            raise NotFoundError(f"Group {group_id} not found")

        now = self._clock()
        archived_expenses = [
            e.archived(now, group_id, group.name)
            for e in snapshot.expenses
            if e.group_id == group_id
        ]
        archived_settlements = [
            s.archived(now, group_id, group.name)
            for s in snapshot.settlements
            if s.group_id == group_id
        ]

        new_snapshot = snapshot.model_copy(update={
            "expenses": [e for e in snapshot.expenses if e.group_id != group_id],
            "settlements": [s for s in snapshot.settlements if s.group_id != group_id],
            "expense_history": snapshot.expense_history + archived_expenses,
            "settlement_history": snapshot.settlement_history + archived_settlements,
            "groups": [g for g in snapshot.groups if g.id != group_id],
            "archived_groups": snapshot.archived_groups + [group],
        })

        self._logger.info(
            "group_archived",
            group_id=group_id,
            expense_count=len(archived_expenses),
            settlement_count=len(archived_settlements),
        )
        return ArchivalResult(
            archived_expenses=archived_expenses,
            archived_settlements=archived_settlements,
            archived_group=group,
            snapshot=new_snapshot,
        )

    def remove_member(
        self,
        snapshot: LedgerSnapshot,
        group_id: str,
        member_id: str,
    ) -> ArchivalResult:
        """
        Drop a participant from a live roster.

        Historical splits are not touched: the member id stays a valid key in
        every expense it already appears in. Removing someone who is no
        longer a member is a no-op.
        """
        group = snapshot.get_group(group_id)
        if not group.has_member(member_id):
            return ArchivalResult(already_archived=True, snapshot=snapshot)

        updated = group.without_member(member_id)
        new_snapshot = snapshot.model_copy(update={
            "groups": [updated if g.id == group_id else g for g in snapshot.groups],
        })

        self._logger.info("member_removed", group_id=group_id, member_id=member_id)
        return ArchivalResult(updated_group=updated, snapshot=new_snapshot)

    @staticmethod
    def resolve_name(
        participant_id: str,
        record: Union[Expense, Settlement],
        roster: Optional[GroupRoster] = None,
    ) -> str:
        """
        Display name for a participant on a record.

        Archived records use the names captured on the record itself; the
        live roster may no longer know the person. Active records prefer the
        roster, then fall back to the captured names, then to the raw id.
        """
        recorded = _recorded_name(participant_id, record)

        if record.is_deleted:
            return recorded or participant_id

        if roster is not None:
            live = roster.display_name(participant_id)
            if live:
                return live
        return recorded or participant_id


def _recorded_name(participant_id: str, record: Union[Expense, Settlement]) -> Optional[str]:
    if isinstance(record, Expense):
        if participant_id == record.payer and record.payer_name:
            return record.payer_name
        return record.participant_names.get(participant_id)

    if participant_id == record.from_user:
        return record.from_user_name
    if participant_id == record.to_user:
        return record.to_user_name
    return None
