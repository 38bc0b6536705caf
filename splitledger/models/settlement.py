"""
Settlement Models

A settlement records that one participant paid (or intends to pay) another.

State machine:

    pending --> completed   (terminal)
    pending --> cancelled   (terminal)

Completed settlements are never voided. Undoing a payment means recording a
new settlement in the opposite direction.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from splitledger.errors import InvariantViolation, PreconditionFailed
from splitledger.models.archival import ArchivableRecord
from splitledger.models.money import CENT
from splitledger.models.timestamps import UtcDateTime, to_naive_utc


class SettlementStatus(str, Enum):
    """Lifecycle of a settlement."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({SettlementStatus.COMPLETED, SettlementStatus.CANCELLED})


class Settlement(ArchivableRecord):
    """A payment between two participants."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
    )

    from_user: str = Field(..., min_length=1, description="Who paid")
    from_user_name: Optional[str] = None
    to_user: str = Field(..., min_length=1, description="Who received")
    to_user_name: Optional[str] = None
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Amount paid")
    ]

    group_id: Optional[str] = None
    group_name: Optional[str] = None

    status: SettlementStatus = SettlementStatus.PENDING
    payment_method: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=1000)
    related_expense_id: Optional[str] = Field(
        default=None,
        description="Expense this payment was made against, if any"
    )

    date: UtcDateTime = Field(default_factory=datetime.utcnow)
    created_at: UtcDateTime = Field(default_factory=datetime.utcnow)
    updated_at: UtcDateTime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[UtcDateTime] = None
    cancelled_at: Optional[UtcDateTime] = None
    cancelled_reason: Optional[str] = None

    @field_validator("group_id", mode="before")
    @classmethod
    def empty_group_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return v.quantize(CENT)

    @model_validator(mode="after")
    def validate_parties(self) -> "Settlement":
        if self.from_user == self.to_user:
            raise InvariantViolation("A participant cannot settle with themselves")
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == SettlementStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status == SettlementStatus.COMPLETED

    @property
    def is_cancelled(self) -> bool:
        return self.status == SettlementStatus.CANCELLED

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def involves(self, participant_id: str) -> bool:
        return self.from_user == participant_id or self.to_user == participant_id

    def counterparty(self, participant_id: str) -> Optional[str]:
        if participant_id == self.from_user:
            return self.to_user
        if participant_id == self.to_user:
            return self.from_user
        return None

    def mark_completed(self, at: Optional[datetime] = None) -> "Settlement":
        """pending -> completed. Returns the new record."""
        self._require_pending("complete")
        at = to_naive_utc(at or datetime.utcnow())
        return self.model_copy(update={
            "status": SettlementStatus.COMPLETED,
            "completed_at": at,
            "updated_at": at,
        })

    def cancel(self, reason: str, at: Optional[datetime] = None) -> "Settlement":
        """pending -> cancelled. Returns the new record."""
        self._require_pending("cancel")
        at = to_naive_utc(at or datetime.utcnow())
        return self.model_copy(update={
            "status": SettlementStatus.CANCELLED,
            "cancelled_at": at,
            "cancelled_reason": reason,
            "updated_at": at,
        })

    def _require_pending(self, action: str) -> None:
        if self.is_terminal:
            raise PreconditionFailed(
                f"Cannot {action} settlement {self.id}: already {self.status.value}"
            )
        if self.is_deleted:
            raise PreconditionFailed(
                f"Cannot {action} settlement {self.id}: it is archived"
            )

    @classmethod
    def create(cls, **data: Any) -> "Settlement":
        """Build a settlement, reporting any broken rule as InvariantViolation."""
        try:
            return cls(**data)
        except ValidationError as e:
            raise InvariantViolation(f"Invalid settlement: {e}") from e


class SettlementSuggestion(BaseModel):
    """A payment that would close part of the ledger."""
    model_config = ConfigDict(frozen=True)

    from_user: str
    to_user: str
    amount: Decimal
