"""
Storage Services Package

Provides abstract interfaces and an in-memory implementation for ledger and
audit storage. Designed to be swappable.
"""

from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)
from splitledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
]
