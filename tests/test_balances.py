"""
Tests for the balance ledger.

Balances are recomputed from records every time and must always close
(sum to zero).
"""

from decimal import Decimal

from conftest import FIXED_NOW, make_expense
from splitledger.ledger import BalanceLedger
from splitledger.ledger.splits import compute_equal_split


class TestComputeBalances:
    """Tests for global balances."""

    def test_single_expense(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00", "u3": "5.00"})
        balances = BalanceLedger().compute_balances([expense])
        assert balances == {
            "u1": Decimal("10.00"),
            "u2": Decimal("-5.00"),
            "u3": Decimal("-5.00"),
        }

    def test_payer_outside_split(self):
        expense = make_expense("u1", {"u2": "4.00", "u3": "6.00"})
        balances = BalanceLedger().compute_balances([expense])
        assert balances["u1"] == Decimal("10.00")
        assert balances["u2"] == Decimal("-4.00")

    def test_ledger_always_closes(self):
        ledger = BalanceLedger()
        expenses = [
            make_expense("u1", compute_equal_split(Decimal("10.00"), ["u1", "u2", "u3"])),
            make_expense("u2", compute_equal_split(Decimal("7.31"), ["u1", "u2"])),
            make_expense("u3", compute_equal_split(Decimal("99.99"), ["u1", "u2", "u3", "u4"])),
        ]
        balances = ledger.compute_balances(expenses)
        assert sum(balances.values(), Decimal("0")) == Decimal("0")

    def test_archived_expenses_are_skipped(self):
        live = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        gone = make_expense("u2", {"u1": "50.00", "u2": "50.00"}).archived(FIXED_NOW, "g1")
        ledger = BalanceLedger()

        assert ledger.compute_balances([live, gone]) == {
            "u1": Decimal("5.00"),
            "u2": Decimal("-5.00"),
        }
        with_history = ledger.compute_balances([live, gone], include_history=True)
        assert with_history["u1"] == Decimal("-45.00")

    def test_recomputing_never_double_counts(self):
        ledger = BalanceLedger()
        expenses = [make_expense("u1", {"u1": "5.00", "u2": "5.00"})]
        assert ledger.compute_balances(expenses) == ledger.compute_balances(expenses)

    def test_no_expenses(self):
        assert BalanceLedger().compute_balances([]) == {}


class TestViewerBalances:
    """Tests for balances relative to one viewer."""

    def test_viewer_paid(self):
        expense = make_expense("u1", {"u1": "5.00", "u2": "5.00", "u3": "5.00"})
        balances = BalanceLedger().compute_viewer_balances([expense], "u1")
        assert balances == {"u2": Decimal("5.00"), "u3": Decimal("5.00")}

    def test_viewer_owes(self):
        expense = make_expense("u2", {"u1": "3.00", "u2": "3.00"})
        balances = BalanceLedger().compute_viewer_balances([expense], "u1")
        assert balances == {"u2": Decimal("-3.00")}

    def test_unrelated_expense_ignored(self):
        expense = make_expense("u2", {"u2": "3.00", "u3": "3.00"})
        assert BalanceLedger().compute_viewer_balances([expense], "u1") == {}


class TestQueries:
    """Tests for expenses_for and total_spent."""

    def test_expenses_for(self):
        ledger = BalanceLedger()
        mine = make_expense("u1", {"u1": "5.00", "u2": "5.00"})
        other = make_expense("u2", {"u2": "5.00", "u3": "5.00"})
        assert ledger.expenses_for("u1", [mine, other]) == [mine]
        assert ledger.expenses_for("u2", [mine, other]) == [mine, other]

    def test_total_spent(self):
        ledger = BalanceLedger()
        expenses = [
            make_expense("u1", {"u1": "5.00", "u2": "5.00"}),
            make_expense("u2", {"u1": "1.50", "u2": "1.50"}),
        ]
        assert ledger.total_spent(expenses) == Decimal("13.00")
