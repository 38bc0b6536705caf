"""
Tests for Split Ledger models

Test strategy:
1. Records reject broken invariants at construction
2. State transitions return new records and leave the old ones alone
3. No storage or network in these tests
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from conftest import FIXED_NOW, make_expense, make_settlement
from splitledger.errors import InvariantViolation, NotFoundError, PreconditionFailed
from splitledger.ledger import BalanceLedger
from splitledger.models import (
    ActiveState,
    ArchivedState,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Expense,
    GroupRoster,
    HistoryEntry,
    LedgerSnapshot,
    Settlement,
    SettlementStatus,
)


class TestExpenseModel:
    """Tests for the Expense model."""

    def test_expense_creation(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        assert expense.amount == Decimal("10.00")
        assert expense.participants == ["u1", "u2"]
        assert isinstance(expense.archival, ActiveState)
        assert not expense.is_deleted

    def test_amount_is_quantized(self):
        expense = make_expense("u1", {"u1": "5", "u2": "5"}, amount="10")
        assert str(expense.amount) == "10.00"
        assert str(expense.split["u1"]) == "5.00"

    def test_split_must_sum_to_amount(self):
        with pytest.raises(ValidationError, match="Split sums to"):
            make_expense("u1", {"u1": "5.00", "u2": "4.00"}, amount="10.00")

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_expense("u1", {"u1": "0.00"}, amount="0.00")

    def test_negative_share_rejected(self):
        with pytest.raises(ValidationError):
            make_expense("u1", {"u1": "11.00", "u2": "-1.00"}, amount="10.00")

    def test_ad_hoc_needs_two_participants(self):
        with pytest.raises(ValidationError, match="at least two"):
            make_expense("u1", {"u1": "10.00"}, group_id=None)

    def test_empty_group_id_means_ad_hoc(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"}, group_id="  ")
        assert expense.group_id is None
        assert expense.is_ad_hoc

    def test_create_reports_invariant_violation(self):
        with pytest.raises(InvariantViolation):
            Expense.create(payer="u1", amount=Decimal("10.00"), split={})

    def test_amount_for_and_involves(self):
        expense = make_expense("u1", {"u2": "6.00", "u3": "4.00"})
        assert expense.amount_for("u2") == Decimal("6.00")
        assert expense.amount_for("u9") == Decimal("0.00")
        assert expense.involves("u1")
        assert expense.involves("u3")
        assert not expense.involves("u9")

    def test_edit_revalidates(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        edited = expense.edit(amount=Decimal("12.00"), split={"u1": "6.00", "u2": "6.00"})
        assert edited.id == expense.id
        assert edited.amount == Decimal("12.00")
        assert expense.amount == Decimal("10.00")

    def test_edit_rejects_bad_split(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        with pytest.raises(InvariantViolation):
            expense.edit(amount=Decimal("12.00"))

    def test_edit_cannot_change_id(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        with pytest.raises(InvariantViolation, match="immutable"):
            expense.edit(id="other")

    def test_assignment_cannot_break_the_split(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        with pytest.raises(ValidationError):
            expense.amount = Decimal("99.00")
        assert expense.amount == Decimal("10.00")
        balances = BalanceLedger().compute_balances([expense])
        assert sum(balances.values(), Decimal("0")) == Decimal("0")

    def test_aware_dates_are_stored_as_naive_utc(self):
        local = timezone(timedelta(hours=5, minutes=30))
        expense = make_expense(
            "u1", {"u1": "5.00", "u2": "5.00"},
            date=datetime(2025, 3, 1, 17, 30, tzinfo=local),
        )
        assert expense.date == datetime(2025, 3, 1, 12, 0)
        assert expense.date.tzinfo is None

    def test_archived_expense_cannot_be_edited(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"}).archived(FIXED_NOW, "g1")
        with pytest.raises(PreconditionFailed):
            expense.edit(description="late edit")


class TestArchivalState:
    """Tests for the tagged archival state."""

    def test_archived_copy_carries_provenance(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        archived = expense.archived(FIXED_NOW, "g1", "Trip")

        assert isinstance(archived.archival, ArchivedState)
        assert archived.is_deleted
        assert archived.deleted_at == FIXED_NOW
        assert archived.deleted_from_group == "g1"
        assert archived.archival.deleted_group_name == "Trip"
        assert not expense.is_deleted

    def test_archiving_twice_is_a_no_op(self):
        archived = make_expense("u1", {"u1": "5.00", "u2": "5.00"}).archived(FIXED_NOW, "g1")
        again = archived.archived(datetime(2030, 1, 1), "other")
        assert again is archived

    def test_state_round_trips_through_json(self):
        archived = make_expense("u1", {"u1": "5.00", "u2": "5.00"}).archived(FIXED_NOW, "g1")
        restored = Expense.model_validate_json(archived.model_dump_json())
        assert isinstance(restored.archival, ArchivedState)
        assert restored.deleted_from_group == "g1"


class TestSettlementModel:
    """Tests for the Settlement state machine."""

    def test_cannot_settle_with_self(self):
        with pytest.raises(ValidationError, match="themselves"):
            make_settlement("u1", "u1", "5.00")

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_settlement("u1", "u2", "0")

    def test_pending_to_completed(self):
        pending = make_settlement("u1", "u2", "5.00", status=SettlementStatus.PENDING)
        completed = pending.mark_completed(FIXED_NOW)
        assert completed.is_completed
        assert completed.completed_at == FIXED_NOW
        assert pending.is_pending

    def test_pending_to_cancelled(self):
        pending = make_settlement("u1", "u2", "5.00", status=SettlementStatus.PENDING)
        cancelled = pending.cancel("wrong amount", FIXED_NOW)
        assert cancelled.is_cancelled
        assert cancelled.cancelled_reason == "wrong amount"

    def test_completed_is_terminal(self):
        completed = make_settlement("u1", "u2", "5.00")
        with pytest.raises(PreconditionFailed):
            completed.cancel("changed my mind")
        with pytest.raises(PreconditionFailed):
            completed.mark_completed()

    def test_archived_pending_cannot_complete(self):
        pending = make_settlement("u1", "u2", "5.00", status=SettlementStatus.PENDING)
        with pytest.raises(PreconditionFailed, match="archived"):
            pending.archived(FIXED_NOW, "g1").mark_completed()

    def test_assignment_cannot_make_self_settlement(self):
        settlement = make_settlement("u1", "u2", "5.00")
        with pytest.raises(ValidationError):
            settlement.to_user = "u1"
        assert settlement.to_user == "u2"

    def test_aware_transition_time_is_normalized(self):
        pending = make_settlement("u1", "u2", "5.00", status=SettlementStatus.PENDING)
        completed = pending.mark_completed(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))
        assert completed.completed_at == datetime(2025, 3, 1, 12, 0)

    def test_counterparty(self):
        settlement = make_settlement("u1", "u2", "5.00")
        assert settlement.counterparty("u1") == "u2"
        assert settlement.counterparty("u2") == "u1"
        assert settlement.counterparty("u3") is None

    def test_create_reports_invariant_violation(self):
        with pytest.raises(InvariantViolation):
            Settlement.create(from_user="u1", to_user="u1", amount=Decimal("1.00"))


class TestGroupRoster:
    """Tests for GroupRoster."""

    def test_membership_changes_return_copies(self, trip_group):
        bigger = trip_group.with_member("u4", "Dara")
        smaller = trip_group.without_member("u3")
        assert bigger.has_member("u4")
        assert not smaller.has_member("u3")
        assert trip_group.has_member("u3")
        assert not trip_group.has_member("u4")

    def test_removing_unknown_member(self, trip_group):
        with pytest.raises(NotFoundError):
            trip_group.without_member("u9")

    def test_personal_group(self):
        group = GroupRoster.personal("u1", "Asha", "u2", None)
        assert group.is_personal
        assert group.name == "Asha & u2"
        assert group.is_pair("u2", "u1")
        assert not group.is_pair("u1", "u3")


class TestSnapshot:
    """Tests for LedgerSnapshot lookups and HistoryEntry."""

    def test_lookups(self, trip_group):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        snapshot = LedgerSnapshot(expenses=[expense], groups=[trip_group])
        assert snapshot.get_expense(expense.id) == expense
        assert snapshot.get_group("g1") == trip_group
        assert snapshot.find_group("missing") is None
        with pytest.raises(NotFoundError):
            snapshot.get_expense("missing")
        with pytest.raises(NotFoundError):
            snapshot.get_settlement("missing")

    def test_history_entry_status(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        settlement = make_settlement("u2", "u1", "5.00", status=SettlementStatus.PENDING)

        assert HistoryEntry(record_type="expense", record=expense, is_historical=False).status == "active"
        archived = HistoryEntry(
            record_type="expense",
            record=expense.archived(FIXED_NOW, "g1"),
            is_historical=True,
        )
        assert archived.status == "deleted"
        assert HistoryEntry(
            record_type="settlement", record=settlement, is_historical=False
        ).status == "pending"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            description="Test expense added",
        )
        assert event.event_type == AuditEventType.EXPENSE_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            description="Settlement recorded",
            details={"amount": "5.00"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "settlement_recorded"
        assert log_dict["details"]["amount"] == "5.00"

    def test_builder_expense_added(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.expense_added(
            expense_id="e1",
            amount="10.00",
            payer="u1",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.EXPENSE_ADDED
        assert event.entity_id == "e1"
        assert event.correlation_id == correlation_id
        assert event.actor_id == "u1"

    def test_builder_storage_error_is_error(self):
        event = AuditEventBuilder.storage_error(
            operation="add_expense",
            error_message="timeout",
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.ERROR
