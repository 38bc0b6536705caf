"""
Split Ledger - Source Package

A shared-expense ledger that splits expenses, folds them into balances,
reconciles settlements and keeps an audit trail of everything deleted.

DESIGN PRINCIPLES:
1. Money is Decimal, never float
2. Balances are recomputed from a full snapshot, never patched in place
3. Nothing is physically deleted - records move to history
4. Fail early, fail visibly
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Split Ledger Team"
