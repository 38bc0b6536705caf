"""
Split Calculator

Turns an expense amount plus a participant list (or participant -> weight
map) into a per-participant split that sums EXACTLY to the amount.

DESIGN DECISION: All arithmetic is on integer subunits (cents). Remainders
are handed out one subunit at a time in a deterministic order, so the same
input always produces the same split.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional

import structlog

from splitledger.errors import InvariantViolation
from splitledger.models.expense import SplitType
from splitledger.models.money import (
    MoneyLike,
    floor_subunits,
    from_subunits,
    to_decimal,
    to_money,
    to_subunits,
)


logger = structlog.get_logger(__name__)

HUNDRED = Decimal("100")


def _require_non_negative(amount: MoneyLike) -> Decimal:
    value = to_decimal(amount)
    if value < 0:
        raise InvariantViolation(f"Amount cannot be negative: {value}")
    return value


def compute_equal_split(
    amount: MoneyLike,
    participants: Iterable[str],
) -> dict[str, Decimal]:
    """
    Split `amount` equally across `participants`.

    Every participant gets floor(subunits / n); the first `remainder`
    participants (in input order) get one extra subunit each.

    Example: 10.00 across [a, b, c] gives a=3.34, b=3.33, c=3.33.
    """
    _require_non_negative(amount)
    # Duplicates collapse onto their first position.
    members = list(dict.fromkeys(participants))
    if not members:
        return {}

    total = to_subunits(amount)
    base, remainder = divmod(total, len(members))

    return {
        member: from_subunits(base + (1 if index < remainder else 0))
        for index, member in enumerate(members)
    }


def adjust_custom_splits(
    amount: MoneyLike,
    proposed: Mapping[str, MoneyLike],
) -> dict[str, Decimal]:
    """
    Normalize a proposed split so it sums exactly to `amount`.

    1. Floor every share to the subunit; negative shares become zero.
    2. If short, add one subunit at a time, largest dropped fraction first.
    3. If over, take one subunit at a time, smallest dropped fraction first,
       never taking a share below zero.

    Ties keep input order. Running the result through again is a no-op.
    """
    _require_non_negative(amount)
    if not proposed:
        return {}

    target = to_subunits(amount)
    keys = list(proposed)
    cents: dict[str, int] = {}
    fractions: dict[str, Decimal] = {}

    for key in keys:
        floored, fraction = floor_subunits(proposed[key])
        if floored < 0:
            floored, fraction = 0, Decimal("0")
        cents[key] = floored
        fractions[key] = fraction

    delta = target - sum(cents.values())

    if delta > 0:
        # sorted() is stable, so equal fractions keep input order
        order = sorted(keys, key=lambda k: fractions[k], reverse=True)
        index = 0
        while delta > 0:
            cents[order[index % len(order)]] += 1
            delta -= 1
            index += 1
    elif delta < 0:
        order = sorted(keys, key=lambda k: fractions[k])
        index = 0
        while delta < 0:
            key = order[index % len(order)]
            if cents[key] > 0:
                cents[key] -= 1
                delta += 1
            index += 1

    return {key: from_subunits(cents[key]) for key in keys}


def compute_percentage_split(
    amount: MoneyLike,
    percentages: Mapping[str, MoneyLike],
) -> dict[str, Decimal]:
    """Split by percentage. Percentages must be non-negative and total 100."""
    value = _require_non_negative(amount)
    if not percentages:
        return {}

    pcts = {k: to_decimal(v) for k, v in percentages.items()}
    if any(p < 0 for p in pcts.values()):
        raise InvariantViolation("Percentages cannot be negative")

    total = sum(pcts.values(), Decimal("0"))
    if total != HUNDRED:
        raise InvariantViolation(f"Percentages must total 100, got {total}")

    raw = {k: value * p / HUNDRED for k, p in pcts.items()}
    return adjust_custom_splits(value, raw)


def compute_weighted_split(
    amount: MoneyLike,
    weights: Mapping[str, MoneyLike],
) -> dict[str, Decimal]:
    """Split proportionally to `weights` (shares). Weights must have a positive total."""
    value = _require_non_negative(amount)
    if not weights:
        return {}

    parsed = {k: to_decimal(v) for k, v in weights.items()}
    if any(w < 0 for w in parsed.values()):
        raise InvariantViolation("Share weights cannot be negative")

    total = sum(parsed.values(), Decimal("0"))
    if total == 0:
        raise InvariantViolation("Share weights must not all be zero")

    raw = {k: value * w / total for k, w in parsed.items()}
    return adjust_custom_splits(value, raw)


def validate_exact_split(
    amount: MoneyLike,
    exact: Mapping[str, MoneyLike],
) -> dict[str, Decimal]:
    """Accept an exact split only if it already sums to the amount."""
    value = to_money(_require_non_negative(amount))
    if not exact:
        return {}

    shares = {k: to_money(v) for k, v in exact.items()}
    if any(share < 0 for share in shares.values()):
        raise InvariantViolation("Split shares cannot be negative")

    total = sum(shares.values(), Decimal("0.00"))
    if total != value:
        raise InvariantViolation(
            f"Sum of exact amounts ({total}) must equal total amount ({value})"
        )
    return shares


def calculate_split(
    amount: MoneyLike,
    split_type: SplitType,
    participants: Optional[Iterable[str]] = None,
    ratios: Optional[Mapping[str, MoneyLike]] = None,
) -> dict[str, Decimal]:
    """
    Dispatch to the right split strategy.

    EQUAL uses `participants`; PERCENTAGE, SHARES and EXACT use `ratios`.
    """
    if split_type == SplitType.EQUAL:
        result = compute_equal_split(amount, participants or [])
    elif ratios is None:
        raise InvariantViolation(f"{split_type.value} split needs ratios")
    elif split_type == SplitType.PERCENTAGE:
        result = compute_percentage_split(amount, ratios)
    elif split_type == SplitType.SHARES:
        result = compute_weighted_split(amount, ratios)
    elif split_type == SplitType.EXACT:
        result = validate_exact_split(amount, ratios)
    else:
        raise InvariantViolation(f"Unsupported split type: {split_type}")

    logger.debug(
        "split_calculated",
        split_type=split_type.value,
        amount=str(amount),
        participants=len(result),
    )
    return result
