"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; the in-memory store backs tests
and unconfigured local runs.
"""

from fundledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    LedgerTransaction,
    StorageConnectionError,
    StorageError,
    TransactionConflict,
)
from fundledger.services.storage.memory import InMemoryLedgerStorage
from fundledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "LedgerTransaction",
    # Exceptions
    "DuplicateError",
    "StorageConnectionError",
    "StorageError",
    "TransactionConflict",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryLedgerStorage",
]
