"""
Audit Models for Split Ledger

Every change to the ledger is logged for audit purposes.
This provides:
1. A trail of who deleted or settled what, and when
2. Debugging information when balances look wrong
3. Ability to reconstruct history alongside the archived records

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every write path in the ledger has its own event type.
    """
    # Expenses
    EXPENSE_ADDED = "expense_added"
    EXPENSE_EDITED = "expense_edited"
    EXPENSE_ARCHIVED = "expense_archived"
    EXPENSE_VALIDATION_FAILED = "expense_validation_failed"

    # Groups
    GROUP_CREATED = "group_created"
    GROUP_ARCHIVED = "group_archived"
    MEMBER_REMOVED = "member_removed"

    # Settlements
    SETTLEMENT_RECORDED = "settlement_recorded"
    SETTLEMENT_COMPLETED = "settlement_completed"
    SETTLEMENT_CANCELLED = "settlement_cancelled"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger write creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'settlement', 'group')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a group deletion and its cascade)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    actor_id: Optional[str] = Field(
        default=None,
        description="Participant who triggered the change, when known"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "actor_id": self.actor_id,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id, amount, correlation_id)
        event = AuditEventBuilder.group_archived(group_id, 4, 2, correlation_id)
    """

    @staticmethod
    def expense_added(
        expense_id: str,
        amount: str,
        payer: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense added: {amount} paid by {payer}",
            details={
                "amount": amount,
                "payer": payer,
            },
            actor_id=payer,
        )

    @staticmethod
    def expense_edited(
        expense_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_EDITED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense edited, amount now {amount}",
            details={"amount": amount},
        )

    @staticmethod
    def expense_archived(
        expense_id: str,
        cancelled_settlements: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ARCHIVED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=(
                f"Expense moved to history; "
                f"{len(cancelled_settlements)} related settlement(s) cancelled"
            ),
            details={"cancelled_settlements": cancelled_settlements},
        )

    @staticmethod
    def expense_validation_failed(
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            correlation_id=correlation_id,
            description=f"Expense rejected with {len(issues)} issue(s)",
            details={"issues": issues},
        )

    @staticmethod
    def group_created(
        group_id: str,
        name: str,
        is_personal: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Group created: {name}",
            details={"name": name, "is_personal": is_personal},
        )

    @staticmethod
    def group_archived(
        group_id: str,
        expense_count: int,
        settlement_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_ARCHIVED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=(
                f"Group deleted; {expense_count} expense(s) and "
                f"{settlement_count} settlement(s) moved to history"
            ),
            details={
                "expense_count": expense_count,
                "settlement_count": settlement_count,
            },
        )

    @staticmethod
    def member_removed(
        group_id: str,
        member_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Member {member_id} removed from group",
            details={"member_id": member_id},
        )

    @staticmethod
    def settlement_recorded(
        settlement_id: str,
        from_user: str,
        to_user: str,
        amount: str,
        status: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            entity_type="settlement",
            entity_id=settlement_id,
            correlation_id=correlation_id,
            description=f"Settlement recorded: {from_user} -> {to_user} {amount} ({status})",
            details={
                "from_user": from_user,
                "to_user": to_user,
                "amount": amount,
                "status": status,
            },
            actor_id=from_user,
        )

    @staticmethod
    def settlement_completed(
        settlement_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_COMPLETED,
            entity_type="settlement",
            entity_id=settlement_id,
            correlation_id=correlation_id,
            description="Settlement marked as completed",
        )

    @staticmethod
    def settlement_cancelled(
        settlement_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_CANCELLED,
            entity_type="settlement",
            entity_id=settlement_id,
            correlation_id=correlation_id,
            description=f"Settlement cancelled: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
