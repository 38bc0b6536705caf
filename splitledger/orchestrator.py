"""
Ledger Service

This module ties the pure ledger core to storage and the audit log, and
defines the end-to-end flows for:
1. Expenses (draft -> validate -> split -> persist)
2. Deletion (archive -> cascade -> persist)
3. Settlements (record -> complete or cancel -> persist)
4. Reads (balances, history, suggestions)

DESIGN DECISION: Every write follows the same shape:
- Load one consistent snapshot
- Let the core compute the new record states
- Persist the resulting change set atomically (retried on storage errors)
- Audit what happened

Writes are serialized so two concurrent edits cannot both read the same
snapshot and silently overwrite each other.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from splitledger.audit import AuditLogger, configure_logging, create_correlation_id
from splitledger.config import LedgerSettings, StorageSettings, get_settings
from splitledger.errors import InvariantViolation, PreconditionFailed
from splitledger.ledger import (
    ArchivalPolicy,
    BalanceLedger,
    SettlementReconciler,
    TransactionHistoryView,
)
from splitledger.models.draft import ExpenseDraft, ValidationResult
from splitledger.models.expense import Expense
from splitledger.models.group import GroupRoster
from splitledger.models.money import MoneyLike, to_money
from splitledger.models.settlement import Settlement, SettlementSuggestion
from splitledger.models.snapshot import (
    ArchivalResult,
    HistoryEntry,
    LedgerChangeSet,
    LedgerSnapshot,
    Reconciliation,
)
from splitledger.services.storage import (
    ConflictError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)
from splitledger.validation import ExpenseValidator


class LedgerService:
    """
    Async facade over the ledger core.

    Collaborators are injected; nothing here is a global.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        ledger_settings: Optional[LedgerSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = ledger_settings or get_settings().ledger
        self._storage_settings = storage_settings or get_settings().storage
        self._clock = clock or datetime.utcnow

        self._ledger = BalanceLedger()
        self._reconciler = SettlementReconciler(
            ledger=self._ledger,
            epsilon=self._settings.settlement_epsilon,
            clock=self._clock,
        )
        self._archival = ArchivalPolicy(
            clock=self._clock,
            expense_deleted_reason=self._settings.expense_deleted_reason,
        )
        self._history = TransactionHistoryView(self._ledger)
        self._validator = ExpenseValidator(self._settings, clock=self._clock)

        self._write_lock = asyncio.Lock()
        self._logger = structlog.get_logger(__name__)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _commit(
        self,
        changes: LedgerChangeSet,
        operation: str,
        correlation_id: UUID,
    ) -> None:
        """
        Persist a change set, retrying transient storage failures.

        Conflicts are not retried: the same batch would fail again.
        """
        if changes.is_empty:
            return

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._storage_settings.retry_attempts),
                wait=wait_exponential(
                    multiplier=1,
                    min=self._storage_settings.retry_wait_min,
                    max=self._storage_settings.retry_wait_max,
                ),
                retry=(
                    retry_if_exception_type(StorageError)
                    & retry_if_not_exception_type(ConflictError)
                ),
                reraise=True,
            ):
                with attempt:
                    await self._storage.apply_changes(changes)
        except StorageError as e:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

    # =========================================================================
    # GROUPS
    # =========================================================================

    async def create_group(
        self,
        name: str,
        members: dict[str, str],
        correlation_id: Optional[UUID] = None,
    ) -> GroupRoster:
        """Create a named group with its initial members (id -> display name)."""
        correlation_id = correlation_id or create_correlation_id()
        now = self._clock()

        try:
            group = GroupRoster(name=name, members=members, created_at=now, updated_at=now)
        except ValidationError as e:
            raise InvariantViolation(f"Invalid group: {e}") from e

        async with self._write_lock:
            await self._commit(
                LedgerChangeSet(upsert_groups=[group]),
                "create_group",
                correlation_id,
            )

        await self._audit_logger.log_group_created(
            group_id=group.id,
            name=group.name,
            is_personal=False,
            correlation_id=correlation_id,
        )
        return group

    async def delete_group(
        self,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> ArchivalResult:
        """Archive a group with every expense and settlement it owns."""
        correlation_id = correlation_id or create_correlation_id()

        async with self._write_lock:
            snapshot = await self._storage.load_snapshot()
            result = self._archival.archive_group(snapshot, group_id)
            await self._commit(result.changes, "delete_group", correlation_id)

        if not result.already_archived:
            await self._audit_logger.log_group_archived(
                group_id=group_id,
                expense_count=len(result.archived_expenses),
                settlement_count=len(result.archived_settlements),
                correlation_id=correlation_id,
            )
        return result

    async def remove_member(
        self,
        group_id: str,
        member_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> ArchivalResult:
        """Drop a member from a live group. Their past splits are kept."""
        correlation_id = correlation_id or create_correlation_id()

        async with self._write_lock:
            snapshot = await self._storage.load_snapshot()
            result = self._archival.remove_member(snapshot, group_id, member_id)
            await self._commit(result.changes, "remove_member", correlation_id)

        if not result.already_archived:
            await self._audit_logger.log_member_removed(
                group_id=group_id,
                member_id=member_id,
                correlation_id=correlation_id,
            )
        return result

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def _validate_draft(
        self,
        draft: ExpenseDraft,
        correlation_id: UUID,
    ) -> ValidationResult:
        """Run the validator; refuse drafts with errors."""
        result = self._validator.validate(draft)
        if result.errors:
            await self._audit_logger.log_validation_failed(
                issues=[issue.model_dump() for issue in result.errors],
                correlation_id=correlation_id,
            )
            raise InvariantViolation(ExpenseValidator.get_user_friendly_summary(result))
        return result

    @staticmethod
    def _names(
        draft: ExpenseDraft,
        split: dict[str, Decimal],
        group: Optional[GroupRoster],
    ) -> tuple[Optional[str], dict[str, str]]:
        """Payer name and participant names, filled in from the roster."""
        names = dict(draft.participant_names)
        payer_name = draft.payer_name
        if group is not None:
            for participant in split:
                known = group.display_name(participant)
                if known and participant not in names:
                    names[participant] = known
            payer_name = payer_name or group.display_name(draft.payer)
        return payer_name, names

    async def add_expense(
        self,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Validate a draft, compute its split and persist the new expense.

        Raises:
            InvariantViolation: The draft has validation errors.
            NotFoundError: The draft names a group that does not exist.
        """
        correlation_id = correlation_id or create_correlation_id()
        validation = await self._validate_draft(draft, correlation_id)

        async with self._write_lock:
            snapshot = await self._storage.load_snapshot()
            group = snapshot.get_group(draft.group_id) if draft.group_id else None
            payer_name, names = self._names(draft, validation.split, group)

            now = self._clock()
            expense = Expense.create(
                group_id=draft.group_id,
                group_name=group.name if group else draft.group_name,
                payer=draft.payer,
                payer_name=payer_name,
                amount=to_money(draft.amount),
                split=validation.split,
                split_type=draft.split_type,
                participant_names=names,
                description=draft.description,
                category=draft.category,
                date=draft.date or now,
                created_at=now,
                updated_at=now,
            )
            await self._commit(
                LedgerChangeSet(upsert_expenses=[expense]),
                "add_expense",
                correlation_id,
            )

        await self._audit_logger.log_expense_added(
            expense_id=expense.id,
            amount=str(expense.amount),
            payer=expense.payer,
            correlation_id=correlation_id,
        )
        return expense

    async def edit_expense(
        self,
        expense_id: str,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Replace an active expense with the contents of a draft.

        Raises:
            PreconditionFailed: The expense has been archived.
            NotFoundError: No such expense.
        """
        correlation_id = correlation_id or create_correlation_id()
        validation = await self._validate_draft(draft, correlation_id)

        async with self._write_lock:
            snapshot = await self._storage.load_snapshot()
            if snapshot.find_archived_expense(expense_id) is not None:
                raise PreconditionFailed(f"Expense {expense_id} is archived and cannot be edited")

            existing = snapshot.get_expense(expense_id)
            group = snapshot.get_group(draft.group_id) if draft.group_id else None
            payer_name, names = self._names(draft, validation.split, group)

            updated = existing.edit(
                group_id=draft.group_id,
                group_name=group.name if group else draft.group_name,
                payer=draft.payer,
                payer_name=payer_name,
                amount=to_money(draft.amount),
                split=validation.split,
                split_type=draft.split_type,
                participant_names=names,
                description=draft.description,
                category=draft.category,
                date=draft.date or existing.date,
                updated_at=self._clock(),
            )
            await self._commit(
                LedgerChangeSet(upsert_expenses=[updated]),
                "edit_expense",
                correlation_id,
            )

        await self._audit_logger.log_expense_edited(
            expense_id=expense_id,
            amount=str(updated.amount),
            correlation_id=correlation_id,
        )
        return updated

    async def delete_expense(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> ArchivalResult:
        """Archive an expense and cancel its pending settlements."""
        correlation_id = correlation_id or create_correlation_id()

        async with self._write_lock:
            snapshot = await self._storage.load_snapshot()
            result = self._archival.archive_expense(snapshot, expense_id)
            await self._commit(result.changes, "delete_expense", correlation_id)

        if not result.already_archived:
            cancelled_ids = [s.id for s in result.cancelled_settlements]
            await self._audit_logger.log_expense_archived(
                expense_id=expense_id,
                cancelled_settlements=cancelled_ids,
                correlation_id=correlation_id,
            )
            for settlement in result.cancelled_settlements:
                await self._audit_logger.log_settlement_cancelled(
                    settlement_id=settlement.id,
                    reason=settlement.cancelled_reason,
                    correlation_id=correlation_id,
                )
        return result

    # =========================================================================
    # SETTLEMENTS
    # =========================================================================

    async def record_settlement(
        self,
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
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """
        Record a payment between two participants.

        Raises:
            InvariantViolation: Amount out of range, or paying oneself.
            NotFoundError: Unknown group or related expense.
        """
        correlation_id = correlation_id or create_correlation_id()

        value = to_money(amount)
        if value > self._settings.max_settlement_amount:
            raise InvariantViolation(
                f"Settlement amount {value} exceeds the maximum of "
                f"{self._settings.max_settlement_amount}"
            )

        async with self._write_lock:
            snapshot = await self._storage.load_snapshot()
            result = self._reconciler.record_settlement(
                snapshot,
                from_user,
                to_user,
                value,
                completed=completed,
                group_id=group_id,
                related_expense_id=related_expense_id,
                from_user_name=from_user_name,
                to_user_name=to_user_name,
                payment_method=payment_method,
                notes=notes,
                date=date,
            )
            await self._commit(result.changes, "record_settlement", correlation_id)

        if result.created_group is not None:
            await self._audit_logger.log_group_created(
                group_id=result.created_group.id,
                name=result.created_group.name,
                is_personal=True,
                correlation_id=correlation_id,
            )

        settlement = result.settlement
        await self._audit_logger.log_settlement_recorded(
            settlement_id=settlement.id,
            from_user=settlement.from_user,
            to_user=settlement.to_user,
            amount=str(settlement.amount),
            status=settlement.status.value,
            correlation_id=correlation_id,
        )
        return settlement

    async def complete_settlement(
        self,
        settlement_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """Mark a pending settlement as completed."""
        correlation_id = correlation_id or create_correlation_id()

        async with self._write_lock:
            snapshot = await self._storage.load_snapshot()
            result = self._reconciler.complete_settlement(snapshot, settlement_id)
            await self._commit(result.changes, "complete_settlement", correlation_id)

        await self._audit_logger.log_settlement_completed(
            settlement_id=settlement_id,
            correlation_id=correlation_id,
        )
        return result.settlement

    async def cancel_settlement(
        self,
        settlement_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """Cancel a pending settlement. Completed settlements cannot be cancelled."""
        correlation_id = correlation_id or create_correlation_id()

        async with self._write_lock:
            snapshot = await self._storage.load_snapshot()
            result = self._reconciler.cancel_settlement(snapshot, settlement_id, reason)
            await self._commit(result.changes, "cancel_settlement", correlation_id)

        await self._audit_logger.log_settlement_cancelled(
            settlement_id=settlement_id,
            reason=reason,
            correlation_id=correlation_id,
        )
        return result.settlement

    # =========================================================================
    # READS
    # =========================================================================

    async def get_snapshot(self) -> LedgerSnapshot:
        return await self._storage.load_snapshot()

    async def get_balances(self, viewer_id: str) -> Reconciliation:
        """Live balances for one viewer, settlements applied."""
        snapshot = await self._storage.load_snapshot()
        return self._reconciler.reconcile(snapshot, viewer_id)

    async def get_history(self, participant_id: str) -> list[HistoryEntry]:
        """Active and archived records for a participant, newest first."""
        snapshot = await self._storage.load_snapshot()
        return self._history.get_history(snapshot, participant_id)

    async def get_historical_balances(self) -> dict[str, Decimal]:
        """Expense balances including archived records (audit view)."""
        snapshot = await self._storage.load_snapshot()
        return self._history.historical_balances(snapshot)

    async def suggest_settlements(self) -> list[SettlementSuggestion]:
        """Payments that would settle every live balance."""
        snapshot = await self._storage.load_snapshot()
        net = self._reconciler.settle_balances(
            self._ledger.compute_balances(snapshot.expenses),
            snapshot.settlements,
        )
        return self._reconciler.suggest_settlements(net)

    async def get_pending_total(self, user_id: str) -> Decimal:
        """Net pending settlements for a user (positive = still to pay)."""
        snapshot = await self._storage.load_snapshot()
        return self._reconciler.pending_total(user_id, snapshot.settlements)


def create_ledger_service(
    snapshot: Optional[LedgerSnapshot] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> LedgerService:
    """
    Factory function for an in-memory service.

    Logging is configured from AppSettings (LOG_JSON, DEBUG_MODE) here,
    where the service starts.

    Args:
        snapshot: Initial ledger contents (empty by default).
        clock: Returns "now"; defaults to utcnow.
    """
    app_settings = get_settings().app
    configure_logging(json_logs=app_settings.log_json, debug=app_settings.debug_mode)

    return LedgerService(
        storage=InMemoryLedgerStorage(snapshot),
        audit_logger=AuditLogger(InMemoryAuditStorage()),
        clock=clock,
    )
