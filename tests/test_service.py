"""
Tests for the ledger service.

End-to-end flows over in-memory storage. Async methods are driven with
asyncio.run so no async test plugin is needed.
"""

import asyncio
from decimal import Decimal

import pytest

from splitledger.audit import AuditLogger, create_correlation_id
from splitledger.config import LedgerSettings, StorageSettings
from splitledger.errors import InvariantViolation, NotFoundError, PreconditionFailed
from splitledger.models import AuditEventType, ExpenseDraft, SettlementStatus, SplitType
from splitledger.orchestrator import LedgerService, create_ledger_service
from splitledger.services.storage import (
    ConflictError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageError,
)


class FlakyStorage(InMemoryLedgerStorage):
    """Fails the first `failures` writes, then behaves normally."""

    def __init__(self, failures, error=StorageError):
        super().__init__()
        self.failures = failures
        self.error = error
        self.calls = 0

    async def apply_changes(self, changes):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error("storage unavailable")
        return await super().apply_changes(changes)


def make_service(clock, storage=None, **ledger_overrides):
    audit_storage = InMemoryAuditStorage()
    service = LedgerService(
        storage=storage or InMemoryLedgerStorage(),
        audit_logger=AuditLogger(audit_storage),
        ledger_settings=LedgerSettings(**ledger_overrides),
        storage_settings=StorageSettings(retry_attempts=3, retry_wait_min=0, retry_wait_max=0),
        clock=clock,
    )
    return service, audit_storage


def draft(group_id, amount, payer, participants, **extra):
    return ExpenseDraft(
        amount=Decimal(amount),
        payer=payer,
        group_id=group_id,
        participants=participants,
        **extra,
    )


MEMBERS = {"U1": "Asha", "U2": "Ben", "U3": "Chen"}


class TestExpenseFlow:
    """Adding, editing and deleting expenses."""

    def test_add_expense_and_balances(self, clock):
        service, _ = make_service(clock)

        async def scenario():
            group = await service.create_group("Dinner club", MEMBERS)
            expense = await service.add_expense(draft(group.id, "15.00", "U1", ["U1", "U2", "U3"]))
            return expense, await service.get_balances("U1")

        expense, balances = asyncio.run(scenario())

        assert expense.split == {
            "U1": Decimal("5.00"),
            "U2": Decimal("5.00"),
            "U3": Decimal("5.00"),
        }
        assert expense.payer_name == "Asha"
        assert expense.participant_names["U2"] == "Ben"
        assert expense.group_name == "Dinner club"
        assert balances.owed_to_viewer == {"U2": Decimal("5.00"), "U3": Decimal("5.00")}
        assert balances.net_balances["U1"] == Decimal("10.00")

    def test_invalid_draft_is_refused_and_audited(self, clock):
        service, audit_storage = make_service(clock)
        correlation_id = create_correlation_id()

        async def scenario():
            with pytest.raises(InvariantViolation):
                await service.add_expense(
                    ExpenseDraft(payer="U1", participants=["U1", "U2"]),
                    correlation_id=correlation_id,
                )
            return (
                await service.get_snapshot(),
                await audit_storage.get_events_by_correlation_id(correlation_id),
            )

        snapshot, events = asyncio.run(scenario())
        assert snapshot.expenses == []
        assert [e.event_type for e in events] == [AuditEventType.EXPENSE_VALIDATION_FAILED]

    def test_unknown_group(self, clock):
        service, _ = make_service(clock)
        with pytest.raises(NotFoundError):
            asyncio.run(service.add_expense(draft("missing", "10.00", "U1", ["U1", "U2"])))

    def test_ad_hoc_expense(self, clock):
        service, _ = make_service(clock)
        expense = asyncio.run(service.add_expense(ExpenseDraft(
            amount=Decimal("9.00"),
            payer="U1",
            split_type=SplitType.SHARES,
            ratios={"U1": Decimal("1"), "U2": Decimal("2")},
        )))
        assert expense.is_ad_hoc
        assert expense.split == {"U1": Decimal("3.00"), "U2": Decimal("6.00")}

    def test_edit_expense(self, clock):
        service, _ = make_service(clock)

        async def scenario():
            group = await service.create_group("Trip", MEMBERS)
            expense = await service.add_expense(draft(group.id, "10.00", "U1", ["U1", "U2"]))
            edited = await service.edit_expense(
                expense.id, draft(group.id, "30.00", "U1", ["U1", "U2", "U3"])
            )
            return expense, edited, await service.get_snapshot()

        expense, edited, snapshot = asyncio.run(scenario())
        assert edited.id == expense.id
        assert edited.amount == Decimal("30.00")
        assert snapshot.get_expense(expense.id).split["U3"] == Decimal("10.00")

    def test_edit_archived_expense_fails(self, clock):
        service, _ = make_service(clock)

        async def scenario():
            group = await service.create_group("Trip", MEMBERS)
            expense = await service.add_expense(draft(group.id, "10.00", "U1", ["U1", "U2"]))
            await service.delete_expense(expense.id)
            await service.edit_expense(expense.id, draft(group.id, "12.00", "U1", ["U1", "U2"]))

        with pytest.raises(PreconditionFailed):
            asyncio.run(scenario())

    def test_delete_expense_cascades_and_audits(self, clock):
        service, audit_storage = make_service(clock)
        correlation_id = create_correlation_id()

        async def scenario():
            group = await service.create_group("Trip", MEMBERS)
            expense = await service.add_expense(draft(group.id, "10.00", "U1", ["U1", "U2"]))
            pending = await service.record_settlement(
                "U2", "U1", "5.00",
                completed=False,
                group_id=group.id,
                related_expense_id=expense.id,
            )
            result = await service.delete_expense(expense.id, correlation_id=correlation_id)
            again = await service.delete_expense(expense.id)
            return (
                pending,
                result,
                again,
                await service.get_snapshot(),
                await audit_storage.get_events_by_correlation_id(correlation_id),
            )

        pending, result, again, snapshot, events = asyncio.run(scenario())

        assert [s.id for s in result.cancelled_settlements] == [pending.id]
        assert snapshot.get_settlement(pending.id).status == SettlementStatus.CANCELLED
        assert snapshot.expenses == []
        assert len(snapshot.expense_history) == 1
        assert again.already_archived
        assert [e.event_type for e in events] == [
            AuditEventType.EXPENSE_ARCHIVED,
            AuditEventType.SETTLEMENT_CANCELLED,
        ]


class TestGroupFlow:
    """Deleting groups and removing members."""

    def test_delete_group_keeps_history(self, clock):
        service, _ = make_service(clock)

        async def scenario():
            group = await service.create_group("Trip", MEMBERS)
            await service.add_expense(draft(group.id, "15.00", "U1", ["U1", "U2", "U3"]))
            await service.record_settlement("U2", "U1", "5.00", group_id=group.id)
            result = await service.delete_group(group.id)
            return (
                result,
                await service.get_balances("U1"),
                await service.get_historical_balances(),
                await service.get_history("U2"),
            )

        result, balances, historical, history = asyncio.run(scenario())

        assert len(result.archived_expenses) == 1
        assert len(result.archived_settlements) == 1
        assert balances.is_settled_up
        assert historical["U1"] == Decimal("10.00")
        assert all(entry.is_historical for entry in history)
        assert len(history) == 2

    def test_remove_member(self, clock):
        service, _ = make_service(clock)

        async def scenario():
            group = await service.create_group("Trip", MEMBERS)
            await service.remove_member(group.id, "U3")
            return group, await service.get_snapshot()

        group, snapshot = asyncio.run(scenario())
        assert not snapshot.get_group(group.id).has_member("U3")


class TestSettlementFlow:
    """Recording, completing and cancelling settlements."""

    def test_worked_example(self, clock):
        service, _ = make_service(clock)

        async def scenario():
            group = await service.create_group("Dinner", MEMBERS)
            await service.add_expense(draft(group.id, "15.00", "U1", ["U1", "U2", "U3"]))
            await service.record_settlement("U2", "U1", "5.00", group_id=group.id)
            return await service.get_balances("U1"), await service.suggest_settlements()

        balances, suggestions = asyncio.run(scenario())

        assert balances.net_balances == {
            "U1": Decimal("5.00"),
            "U2": Decimal("0.00"),
            "U3": Decimal("-5.00"),
        }
        assert balances.owed_to_viewer == {"U3": Decimal("5.00")}
        assert balances.viewer_owes == {}
        assert [(s.from_user, s.to_user, s.amount) for s in suggestions] == [
            ("U3", "U1", Decimal("5.00")),
        ]

    def test_ad_hoc_settlement_creates_personal_group(self, clock):
        service, audit_storage = make_service(clock)

        async def scenario():
            settlement = await service.record_settlement(
                "U1", "U2", "20.00", from_user_name="Asha", to_user_name="Ben",
            )
            events = await audit_storage.get_recent_events()
            return settlement, await service.get_snapshot(), events

        settlement, snapshot, events = asyncio.run(scenario())

        [group] = snapshot.groups
        assert group.is_personal
        assert settlement.group_id == group.id
        assert {e.event_type for e in events} == {
            AuditEventType.GROUP_CREATED,
            AuditEventType.SETTLEMENT_RECORDED,
        }

    def test_settlement_amount_limit(self, clock):
        service, _ = make_service(clock, max_settlement_amount=Decimal("100"))
        with pytest.raises(InvariantViolation, match="exceeds"):
            asyncio.run(service.record_settlement("U1", "U2", "100.01"))

    def test_complete_then_cancel_fails(self, clock):
        service, _ = make_service(clock)

        async def scenario():
            pending = await service.record_settlement("U1", "U2", "5.00", completed=False)
            total_before = await service.get_pending_total("U1")
            completed = await service.complete_settlement(pending.id)
            with pytest.raises(PreconditionFailed):
                await service.cancel_settlement(pending.id, "too late")
            return total_before, completed, await service.get_pending_total("U1")

        total_before, completed, total_after = asyncio.run(scenario())
        assert total_before == Decimal("5.00")
        assert completed.is_completed
        assert total_after == Decimal("0.00")

    def test_cancel_pending(self, clock):
        service, _ = make_service(clock)

        async def scenario():
            pending = await service.record_settlement("U1", "U2", "5.00", completed=False)
            cancelled = await service.cancel_settlement(pending.id, "wrong person")
            return cancelled, await service.get_balances("U1")

        cancelled, balances = asyncio.run(scenario())
        assert cancelled.cancelled_reason == "wrong person"
        assert balances.is_settled_up


class TestStorageRetry:
    """Writes are retried on transient storage errors."""

    def test_transient_failures_are_retried(self, clock):
        storage = FlakyStorage(failures=2)
        service, _ = make_service(clock, storage=storage)

        group = asyncio.run(service.create_group("Trip", MEMBERS))

        assert storage.calls == 3
        assert asyncio.run(storage.load_snapshot()).get_group(group.id).name == "Trip"

    def test_gives_up_and_audits(self, clock):
        storage = FlakyStorage(failures=10)
        service, audit_storage = make_service(clock, storage=storage)
        correlation_id = create_correlation_id()

        with pytest.raises(StorageError):
            asyncio.run(service.create_group("Trip", MEMBERS, correlation_id=correlation_id))

        assert storage.calls == 3
        assert asyncio.run(storage.load_snapshot()).groups == []
        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_type for e in events] == [AuditEventType.STORAGE_ERROR]

    def test_conflicts_are_not_retried(self, clock):
        storage = FlakyStorage(failures=10, error=ConflictError)
        service, _ = make_service(clock, storage=storage)

        with pytest.raises(ConflictError):
            asyncio.run(service.create_group("Trip", MEMBERS))
        assert storage.calls == 1


class TestFactory:
    """Tests for create_ledger_service."""

    def test_creates_working_service(self, clock):
        service = create_ledger_service(clock=clock)
        settlement = asyncio.run(service.record_settlement("U1", "U2", "1.00"))
        assert settlement.is_completed
