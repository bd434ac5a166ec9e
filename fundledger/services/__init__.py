"""Services package."""

from fundledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    LedgerTransaction,
    StorageConnectionError,
    StorageError,
    TransactionConflict,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "DuplicateError",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "LedgerTransaction",
    "StorageConnectionError",
    "StorageError",
    "TransactionConflict",
]
