"""
In-Memory Storage Implementation

Used by the test suite and by the app when Google Sheets is not
configured. Commits run under a single lock and swap in a new balance
map, so a reader sees either the state before a commit or after it.
"""

import asyncio
from datetime import date
from typing import Optional

from fundledger.models.audit import AuditEvent
from fundledger.models.ledger import (
    BalanceRecord,
    ExpenseRecord,
    HistoryEntry,
    IncomeTransaction,
)
from fundledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    LedgerTransaction,
    StorageConnectionError,
    TransactionConflict,
)


class InMemoryLedgerStorage(LedgerStorageInterface, AuditStorageInterface):
    """
    Process-local ledger and audit store.

    Args:
        latency: Seconds every call yields to the event loop, which lets
            tests interleave concurrent operations the way real I/O would.
    """

    def __init__(self, latency: float = 0.0):
        self._balances: dict[str, BalanceRecord] = {}
        self._income: list[IncomeTransaction] = []
        self._expenses: list[ExpenseRecord] = []
        self._audit: list[AuditEvent] = []
        self._committed: set = set()
        self._commit_lock = asyncio.Lock()
        self._latency = latency
        self.available = True
        self.commit_count = 0

    async def _io(self) -> None:
        if not self.available:
            raise StorageConnectionError("In-memory store marked unavailable")
        await asyncio.sleep(self._latency)

    async def get_balance(self, record_id: str) -> Optional[BalanceRecord]:
        await self._io()
        record = self._balances.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def get_balances(self, record_ids: list[str]) -> dict[str, BalanceRecord]:
        await self._io()
        snapshot = self._balances
        return {
            record_id: snapshot[record_id].model_copy(deep=True)
            for record_id in record_ids
            if record_id in snapshot
        }

    async def list_balances(self) -> list[BalanceRecord]:
        await self._io()
        return [record.model_copy(deep=True) for record in self._balances.values()]

    async def get_history(self, record_id: str, limit: int) -> list[HistoryEntry]:
        await self._io()
        record = self._balances.get(record_id)
        return record.latest_history(limit) if record else []

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        await self._io()
        expenses = [
            expense for expense in self._expenses
            if (date_from is None or expense.expense_date >= date_from)
            and (date_to is None or expense.expense_date <= date_to)
        ]
        expenses.sort(key=lambda e: (e.expense_date, e.created_at), reverse=True)
        return expenses

    async def list_income(self, limit: int = 100) -> list[IncomeTransaction]:
        await self._io()
        # Reversed first so ties keep newest-first order
        return sorted(reversed(self._income), key=lambda i: i.created_at, reverse=True)[:limit]

    async def commit(self, transaction: LedgerTransaction) -> None:
        transaction.validate()
        async with self._commit_lock:
            await self._io()

            if transaction.transaction_id in self._committed:
                raise DuplicateError(
                    f"Transaction already committed: {transaction.transaction_id}"
                )

            stale = [
                record_id
                for record_id, seen in transaction.read_versions.items()
                if (self._balances[record_id].version if record_id in self._balances else 0) != seen
            ]
            if stale:
                raise TransactionConflict(stale)

            # Nothing below yields, so the swap is atomic for readers
            self._balances = {**self._balances, **transaction.balance_writes}
            self._income.extend(transaction.income)
            self._expenses.extend(transaction.expenses)
            self._audit.append(transaction.audit_event)
            self._committed.add(transaction.transaction_id)
            self.commit_count += 1

    async def append_event(self, event: AuditEvent) -> None:
        await self._io()
        self._audit.append(event)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        await self._io()
        return sorted(reversed(self._audit), key=lambda e: e.timestamp, reverse=True)[:limit]
