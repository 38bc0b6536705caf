"""Expense draft validation."""

from splitledger.validation.validator import ExpenseValidator

__all__ = ["ExpenseValidator"]
