"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Every mutation goes through a LedgerTransaction. The transaction remembers
the version of each balance it read; `commit` applies all staged writes
only if none of those versions has moved, otherwise nothing is written.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

from fundledger.models.audit import AuditEvent
from fundledger.models.ledger import (
    BalanceRecord,
    ExpenseRecord,
    HistoryEntry,
    IncomeTransaction,
)


class LedgerTransaction:
    """
    One unit of work against the ledger.

    Collects the versions of the balances it read and the writes it wants
    to make. The transaction id doubles as the id of its single audit
    event, which is how a store recognises a transaction it has already
    committed.
    """

    def __init__(self, transaction_id: Optional[UUID] = None):
        self.transaction_id = transaction_id or uuid4()
        self.read_versions: dict[str, int] = {}
        self.balance_writes: dict[str, BalanceRecord] = {}
        self.income: list[IncomeTransaction] = []
        self.expenses: list[ExpenseRecord] = []
        self.audit_event: Optional[AuditEvent] = None

    def note_read(self, record_id: str, record: Optional[BalanceRecord]) -> None:
        """Remember what version was seen (0 means the record was absent)."""
        self.read_versions[record_id] = record.version if record else 0

    def put_balance(self, record: BalanceRecord) -> BalanceRecord:
        """Stage a balance write; the record must have been read first."""
        if record.id not in self.read_versions:
            raise ValueError(f"Balance {record.id} was written without being read")
        staged = record.model_copy(update={"version": self.read_versions[record.id] + 1})
        self.balance_writes[record.id] = staged
        return staged

    def add_income(self, income: IncomeTransaction) -> None:
        self.income.append(income)

    def add_expense(self, expense: ExpenseRecord) -> None:
        self.expenses.append(expense)

    def set_audit_event(self, event: AuditEvent) -> AuditEvent:
        """Attach the one audit entry this transaction produces."""
        if self.audit_event is not None:
            raise ValueError("A transaction carries exactly one audit event")
        self.audit_event = event.model_copy(update={"event_id": self.transaction_id})
        return self.audit_event

    def validate(self) -> None:
        """Called by stores before applying anything."""
        if self.audit_event is None:
            raise ValueError("Refusing to commit a transaction without an audit event")
        for record in self.balance_writes.values():
            if record.balance < 0:
                raise ValueError(f"Balance {record.id} would become negative")


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the balance store.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def get_balance(self, record_id: str) -> Optional[BalanceRecord]:
        """
        Retrieve one balance record.

        Returns:
            The record if it exists, None otherwise
        """
        pass

    @abstractmethod
    async def get_balances(self, record_ids: list[str]) -> dict[str, BalanceRecord]:
        """
        Retrieve several balance records from one consistent snapshot.

        Absent records are simply missing from the result.
        """
        pass

    @abstractmethod
    async def list_balances(self) -> list[BalanceRecord]:
        """List every balance record that exists."""
        pass

    @abstractmethod
    async def get_history(self, record_id: str, limit: int) -> list[HistoryEntry]:
        """
        Latest movements of one balance, newest first.

        Returns:
            At most `limit` entries; empty if the record has none or is absent
        """
        pass

    @abstractmethod
    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        """
        List expenses with an expense date inside the inclusive range.

        Returns:
            Matching expenses, newest expense date first
        """
        pass

    @abstractmethod
    async def list_income(self, limit: int = 100) -> list[IncomeTransaction]:
        """List income transactions, newest first."""
        pass

    @abstractmethod
    async def commit(self, transaction: LedgerTransaction) -> None:
        """
        Apply every write staged in the transaction, or none of them.

        Raises:
            TransactionConflict: A balance changed since it was read
            DuplicateError: This transaction id was already committed
            StorageConnectionError: Backend unreachable
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> None:
        """
        Append an audit event.

        Raises:
            StorageConnectionError: Backend unreachable
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class TransactionConflict(StorageError):
    """A balance read by the transaction was changed by another writer."""

    def __init__(self, record_ids: list[str]):
        self.record_ids = record_ids
        super().__init__(f"Concurrent update on: {', '.join(sorted(record_ids))}")
