"""
Money helpers.

DESIGN DECISION: All amounts are Decimal quantized to the currency subunit
(0.01). Arithmetic that has to be exact (splitting, remainders) is done on
integer subunits and converted back at the edges.
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from splitledger.errors import InvariantViolation

CENT = Decimal("0.01")
SUBUNITS_PER_UNIT = 100
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, float, str]


def to_decimal(value: MoneyLike) -> Decimal:
    """
    Convert input to a finite Decimal. Floats go through str to avoid binary noise.

    Raises:
        InvariantViolation: The value is not a number, or is NaN or infinite.
    """
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvariantViolation(f"Not a monetary amount: {value!r}") from e

    if not result.is_finite():
        raise InvariantViolation(f"Amount must be finite, got {value!r}")
    return result


def to_money(value: MoneyLike) -> Decimal:
    """Round to the subunit (half up, like a cash register)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_subunits(value: MoneyLike) -> int:
    """Amount in whole subunits, rounded half up."""
    return int(to_money(value) * SUBUNITS_PER_UNIT)


def floor_subunits(value: MoneyLike) -> tuple[int, Decimal]:
    """
    Floor an amount to whole subunits.

    Returns (subunits, dropped_fraction) where the fraction is in [0, 1).
    """
    exact = to_decimal(value) * SUBUNITS_PER_UNIT
    floored = exact.to_integral_value(rounding=ROUND_FLOOR)
    return int(floored), exact - floored


def from_subunits(subunits: int) -> Decimal:
    return (Decimal(subunits) / SUBUNITS_PER_UNIT).quantize(CENT)


def money_sum(values) -> Decimal:
    return sum((to_decimal(v) for v in values), ZERO)
