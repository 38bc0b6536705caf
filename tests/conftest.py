"""Shared fixtures for ledger tests."""

from datetime import datetime
from decimal import Decimal

import pytest

from splitledger.models import Expense, GroupRoster, Settlement, SettlementStatus


FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0)


def make_expense(payer, split, amount=None, group_id="g1", **extra):
    """Build an expense; amount defaults to the sum of the split."""
    split = {k: Decimal(str(v)) for k, v in split.items()}
    if amount is None:
        amount = sum(split.values(), Decimal("0.00"))
    return Expense(
        payer=payer,
        amount=Decimal(str(amount)),
        split=split,
        group_id=group_id,
        **extra,
    )


def make_settlement(from_user, to_user, amount, status=SettlementStatus.COMPLETED, **extra):
    return Settlement(
        from_user=from_user,
        to_user=to_user,
        amount=Decimal(str(amount)),
        status=status,
        **extra,
    )


@pytest.fixture
def clock():
    """A clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def trip_group():
    return GroupRoster(
        id="g1",
        name="Trip",
        members={"u1": "Asha", "u2": "Ben", "u3": "Chen"},
    )
