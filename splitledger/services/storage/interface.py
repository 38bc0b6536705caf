"""
Abstract Storage Interface

DESIGN DECISION: The ledger core never writes anything. It returns new
record states; storage persists them. This interface is the seam, so we can:
1. Use in-memory storage for tests and demos
2. Swap in a document database or SQL later
3. Keep business logic decoupled from storage implementation

Storage keeps two partitions per record type: active and history.
The interface is intentionally small - load a snapshot, apply a change set.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.snapshot import LedgerChangeSet, LedgerSnapshot


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def load_snapshot(self) -> LedgerSnapshot:
        """
        Load a complete, consistent snapshot of every partition.

        Returns:
            The current snapshot

        Raises:
            StorageError: If the snapshot cannot be read
        """
        pass

    @abstractmethod
    async def apply_changes(self, changes: LedgerChangeSet) -> bool:
        """
        Persist a change set atomically.

        Archived records are removed from the active partition and written to
        the history partition in the same batch. Either every change lands or
        none does.

        Args:
            changes: Record states produced by a ledger operation

        Returns:
            True if applied

        Raises:
            StorageError: If the batch fails (nothing was applied)
            ConflictError: If the batch contradicts stored state
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one group deletion).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConflictError(StorageError):
    """Change set contradicts what is stored (e.g. archiving an unknown record)."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
