"""
Timestamp helpers.

Every datetime stored on a record is naive UTC. Aware inputs are converted
on the way in so comparisons and sorting never mix the two kinds.
"""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


UtcDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]
