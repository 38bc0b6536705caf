"""
Expense Models

An expense is one payment fronted by a single payer and owed back by the
participants in its split.

CRITICAL: `split` must sum EXACTLY to `amount`. This is checked when the
record is built and every time it is edited. Nothing here rounds a bad split
into a good one - rounding belongs to the split calculator, before the
record exists.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from splitledger.errors import InvariantViolation, PreconditionFailed
from splitledger.models.archival import ArchivableRecord
from splitledger.models.money import CENT, money_sum
from splitledger.models.timestamps import UtcDateTime


Money = Annotated[Decimal, Field(ge=0, decimal_places=2)]


class SplitType(str, Enum):
    """How the split was produced. Informational once the split exists."""
    EQUAL = "equal"
    EXACT = "exact"
    PERCENTAGE = "percentage"
    SHARES = "shares"


class Expense(ArchivableRecord):
    """
    A shared expense.

    An expense without a group is "ad hoc" and must name at least two
    participants in its split.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    # Identity
    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        description="Unique expense ID (immutable)"
    )

    # Ownership
    group_id: Optional[str] = Field(
        default=None,
        description="Owning group; None for an ad hoc expense"
    )
    group_name: Optional[str] = Field(
        default=None,
        description="Group name when the expense was recorded"
    )

    # Money
    payer: str = Field(
        ...,
        min_length=1,
        description="Participant who fronted the money"
    )
    payer_name: Optional[str] = None
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Total amount (required)")
    ]
    split: dict[str, Money] = Field(
        ...,
        description="Participant -> amount owed; sums to amount"
    )
    split_type: SplitType = SplitType.EQUAL
    participant_names: dict[str, str] = Field(
        default_factory=dict,
        description="Display names captured when the expense was recorded"
    )

    # Descriptive
    description: str = Field(default="", max_length=500)
    category: Optional[str] = Field(default=None, max_length=50)

    # Timestamps
    date: UtcDateTime = Field(
        default_factory=datetime.utcnow,
        description="User-facing transaction date"
    )
    created_at: UtcDateTime = Field(
        default_factory=datetime.utcnow,
        description="Ledger insertion time"
    )
    updated_at: UtcDateTime = Field(default_factory=datetime.utcnow)

    @field_validator("group_id", mode="before")
    @classmethod
    def empty_group_is_ad_hoc(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return v.quantize(CENT)

    @field_validator("split")
    @classmethod
    def quantize_split(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        return {participant: share.quantize(CENT) for participant, share in v.items()}

    @model_validator(mode="after")
    def validate_split(self) -> "Expense":
        """The split must cover someone and sum exactly to the amount."""
        if not self.split:
            raise InvariantViolation("Split must name at least one participant")

        total = money_sum(self.split.values())
        if total != self.amount:
            raise InvariantViolation(
                f"Split sums to {total} but expense amount is {self.amount}"
            )

        if self.group_id is None and len(self.split) < 2:
            raise InvariantViolation(
                "Ad hoc expenses need at least two participants"
            )

        return self

    @property
    def is_ad_hoc(self) -> bool:
        return self.group_id is None

    @property
    def participants(self) -> list[str]:
        return list(self.split)

    def amount_for(self, participant_id: str) -> Decimal:
        """What this participant owes for the expense (0 if not in the split)."""
        return self.split.get(participant_id, Decimal("0.00"))

    def involves(self, participant_id: str) -> bool:
        return self.payer == participant_id or participant_id in self.split

    @classmethod
    def create(cls, **data: Any) -> "Expense":
        """Build an expense, reporting any broken rule as InvariantViolation."""
        try:
            return cls(**data)
        except ValidationError as e:
            raise InvariantViolation(f"Invalid expense: {e}") from e

    def edit(self, **changes: Any) -> "Expense":
        """
        Full-replacement edit.

        The result is re-validated from scratch. On failure the original
        record is untouched and InvariantViolation is raised.
        """
        if self.is_deleted:
            raise PreconditionFailed(f"Expense {self.id} is archived and cannot be edited")
        if "id" in changes and changes["id"] != self.id:
            raise InvariantViolation("Expense id is immutable")
        if "archival" in changes:
            raise InvariantViolation("Use the archival policy to delete an expense")

        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = changes.get("updated_at") or datetime.utcnow()
        return type(self).create(**data)
