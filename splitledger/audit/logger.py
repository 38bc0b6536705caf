"""
Audit Logger

DESIGN DECISION: Every ledger write is logged.
This provides:
1. Complete traceability of deletions and settlements
2. Debugging capability when a balance looks wrong
3. A trail that survives even when records move to history

The audit logger:
- Is async to match the storage layer
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitledger.models.audit import AuditEvent, AuditEventBuilder
from splitledger.services.storage import AuditStorageInterface


def configure_logging(json_logs: bool = True, debug: bool = False) -> None:
    """
    Configure structlog on top of the standard library logger.

    Called once at import with defaults; applications may call it again at
    startup with values from AppSettings.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    if debug:
        logging.basicConfig(level=logging.DEBUG)


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit failures must not undo a ledger write that already happened
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_added(
        self,
        expense_id: str,
        amount: str,
        payer: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_added(
            expense_id=expense_id,
            amount=amount,
            payer=payer,
            correlation_id=correlation_id,
        ))

    async def log_expense_edited(
        self,
        expense_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_edited(
            expense_id=expense_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_expense_archived(
        self,
        expense_id: str,
        cancelled_settlements: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_archived(
            expense_id=expense_id,
            cancelled_settlements=cancelled_settlements,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_validation_failed(
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_group_created(
        self,
        group_id: str,
        name: str,
        is_personal: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.group_created(
            group_id=group_id,
            name=name,
            is_personal=is_personal,
            correlation_id=correlation_id,
        ))

    async def log_group_archived(
        self,
        group_id: str,
        expense_count: int,
        settlement_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.group_archived(
            group_id=group_id,
            expense_count=expense_count,
            settlement_count=settlement_count,
            correlation_id=correlation_id,
        ))

    async def log_member_removed(
        self,
        group_id: str,
        member_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.member_removed(
            group_id=group_id,
            member_id=member_id,
            correlation_id=correlation_id,
        ))

    async def log_settlement_recorded(
        self,
        settlement_id: str,
        from_user: str,
        to_user: str,
        amount: str,
        status: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_recorded(
            settlement_id=settlement_id,
            from_user=from_user,
            to_user=to_user,
            amount=amount,
            status=status,
            correlation_id=correlation_id,
        ))

    async def log_settlement_completed(
        self,
        settlement_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_completed(
            settlement_id=settlement_id,
            correlation_id=correlation_id,
        ))

    async def log_settlement_cancelled(
        self,
        settlement_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_cancelled(
            settlement_id=settlement_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., deleting a group).
    Pass it through all subsequent operations.
    """
    return uuid4()
