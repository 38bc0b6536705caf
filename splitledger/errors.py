"""
Ledger Error Taxonomy

Every failure raised by the ledger core is one of these.
The core never coerces bad input into something valid; it rejects it.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class InvariantViolation(LedgerError, ValueError):
    """
    A record or operation would break a ledger invariant.

    Examples: split does not sum to the amount, negative amount or share,
    a settlement from a participant to themselves.
    """
    pass


class NotFoundError(LedgerError, LookupError):
    """An expense, settlement or group id is not in the supplied snapshot."""
    pass


class PreconditionFailed(LedgerError):
    """The record is in a state that does not allow the requested transition."""
    pass
