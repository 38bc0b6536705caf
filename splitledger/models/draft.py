"""
Expense Draft and Validation Models

An ExpenseDraft is what a user submits before it becomes an Expense.
Unlike Expense, every field here may be missing or wrong: the validator
reports problems instead of the model rejecting the input outright.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from splitledger.models.expense import SplitType
from splitledger.models.timestamps import UtcDateTime


class ExpenseDraft(BaseModel):
    """
    Unvalidated expense input.

    EQUAL splits use `participants`; PERCENTAGE, SHARES and EXACT use
    `ratios` (percent, weight or amount per participant).
    """

    draft_id: UUID = Field(default_factory=uuid4)

    amount: Optional[Decimal] = Field(
        default=None,
        description="Total amount as entered"
    )
    payer: Optional[str] = None
    payer_name: Optional[str] = None

    group_id: Optional[str] = Field(
        default=None,
        description="Owning group; None for an ad hoc expense"
    )
    group_name: Optional[str] = None

    split_type: SplitType = SplitType.EQUAL
    participants: list[str] = Field(default_factory=list)
    ratios: Optional[dict[str, Decimal]] = None
    participant_names: dict[str, str] = Field(default_factory=dict)

    description: str = ""
    category: Optional[str] = None
    date: Optional[UtcDateTime] = None

    @property
    def participant_ids(self) -> list[str]:
        """Participants named by whichever split input applies."""
        if self.split_type == SplitType.EQUAL:
            return list(dict.fromkeys(self.participants))
        return list(self.ratios or {})


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (presence, positivity, split shape)
    Stage 2: Semantic validation (dates, sanity checks)
    """

    draft_id: UUID
    validated_at: UtcDateTime = Field(default_factory=datetime.utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    split: Optional[dict[str, Decimal]] = Field(
        default=None,
        description="Computed split when the schema stage passed"
    )

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]
