"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Positive amount
- A split that can actually be computed
- Ad hoc expenses naming at least two participants

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Absurd amount detection
- Payer missing from the split
- Participants with a zero share

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the service refuses drafts with errors.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from splitledger.config import LedgerSettings, get_settings
from splitledger.errors import InvariantViolation
from splitledger.ledger.splits import calculate_split
from splitledger.models.draft import ExpenseDraft, ValidationIssue, ValidationResult
from splitledger.models.expense import SplitType


class ExpenseValidator:
    """
    Validates expense drafts through a two-stage pipeline.
    """

    def __init__(
        self,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize validator.

        Args:
            settings: Thresholds to check against. Defaults to the
                     environment-loaded ledger settings.
            clock: Returns "now" for future date checks.
        """
        self._settings = settings or get_settings().ledger
        self._clock = clock or datetime.utcnow

    def _validate_schema(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue], Optional[dict[str, Decimal]]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues, computed_split)
        """
        issues = []

        if draft.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        elif draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter a positive amount",
            ))

        if not draft.payer:
            issues.append(ValidationIssue(
                field="payer",
                issue_type="missing",
                message="Someone has to have paid for this expense",
                severity="error",
            ))

        participants = draft.participant_ids
        if not participants:
            field = "participants" if draft.split_type == SplitType.EQUAL else "ratios"
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="At least one participant is required",
                severity="error",
            ))
        elif draft.group_id is None and len(participants) < 2:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="invalid_value",
                message="Expenses outside a group need at least two participants",
                severity="error",
                suggested_fix="Add another participant or pick a group",
            ))

        split = None
        if not issues:
            try:
                split = calculate_split(
                    draft.amount,
                    draft.split_type,
                    participants=draft.participants,
                    ratios=draft.ratios,
                )
            except InvariantViolation as e:
                issues.append(ValidationIssue(
                    field="split",
                    issue_type="invalid_value",
                    message=str(e),
                    severity="error",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues, split

    def _validate_semantic(
        self,
        draft: ExpenseDraft,
        split: dict[str, Decimal],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        tolerance = timedelta(days=self._settings.future_date_tolerance_days)
        if draft.date and draft.date > self._clock() + tolerance:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Expense date ({draft.date:%Y-%m-%d}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if draft.amount > self._settings.max_expense_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({draft.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if draft.payer not in split:
            issues.append(ValidationIssue(
                field="payer",
                issue_type="not_in_split",
                message="The payer is not part of the split",
                severity="warning",
                suggested_fix="Add the payer if they shared the expense",
            ))

        zero_shares = sorted(p for p, share in split.items() if share == 0)
        if zero_shares:
            issues.append(ValidationIssue(
                field="split",
                issue_type="zero_share",
                message=f"Participants with a zero share: {', '.join(zero_shares)}",
                severity="warning",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(self, draft: ExpenseDraft) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Returns:
            ValidationResult with all issues found and, when the schema
            stage passed, the computed split.
        """
        all_issues = []

        schema_valid, schema_issues, split = self._validate_schema(draft)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(draft, split)
            all_issues.extend(semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            draft_id=draft.draft_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
            split=split,
        )

    @staticmethod
    def get_user_friendly_summary(result: ValidationResult) -> str:
        """One message per issue, errors first."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        for issue in result.errors:
            lines.append(f"Error: {issue.message}")
        for message in result.warnings:
            lines.append(f"Warning: {message}")
        return "\n".join(lines)
