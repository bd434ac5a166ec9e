"""
Query Facade

DESIGN DECISION: Reads are DETERMINISTIC and side-effect free.
Every figure the dashboard shows comes from this module, straight from
storage. Nothing here writes, retries or caches.

Reads go through the store's snapshot methods, so a balance is seen
either before or after a commit, never halfway.
"""

from datetime import date
from typing import Optional

from fundledger.audit import AuditLogger
from fundledger.config import LedgerSettings, get_settings
from fundledger.errors import StorageUnavailable, TargetNotFound
from fundledger.ledger.engine import LedgerEngine
from fundledger.models.audit import AuditEvent
from fundledger.models.ledger import (
    EMERGENCY_FUND_ID,
    Allocation,
    BalanceKind,
    BalanceView,
    EmergencyFundStatus,
    HistoryEntry,
    IncomeTransaction,
)
from fundledger.services.storage import LedgerStorageInterface, StorageError


# Display order on the balances page
_KIND_ORDER = {
    BalanceKind.PARTICIPANT: 0,
    BalanceKind.EMERGENCY_FUND: 1,
    BalanceKind.SAVINGS_FUND: 2,
    BalanceKind.CATEGORY: 3,
}


class LedgerQueries:
    """
    Read-only access to balances, history, income, expenses and audit.

    GUARANTEES:
    - Only returns real data from storage
    - Never invents or estimates
    - An absent balance is reported as TargetNotFound, not as zero
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: AuditLogger,
        engine: LedgerEngine,
        settings: Optional[LedgerSettings] = None,
    ):
        settings = settings or get_settings().ledger
        self._storage = storage
        self._audit_logger = audit_logger
        self._engine = engine
        self._history_limit = settings.history_display_limit
        self._roster_order = {name: i for i, name in enumerate(engine.roster)}

    async def get_balance(
        self,
        target_id: str,
        history_limit: Optional[int] = None,
    ) -> BalanceView:
        """One balance with its latest history entries first."""
        try:
            record = await self._storage.get_balance(target_id)
        except StorageError as e:
            raise StorageUnavailable(str(e)) from e
        if record is None:
            raise TargetNotFound(target_id)
        return BalanceView.from_record(record, history_limit or self._history_limit)

    async def list_balances(self, history_limit: Optional[int] = None) -> list[BalanceView]:
        """Every existing balance: participants in roster order, then funds, then categories."""
        try:
            records = await self._storage.list_balances()
        except StorageError as e:
            raise StorageUnavailable(str(e)) from e

        records.sort(key=lambda r: (
            _KIND_ORDER[r.kind],
            self._roster_order.get(r.label, len(self._roster_order)),
            r.label,
        ))
        limit = history_limit or self._history_limit
        return [BalanceView.from_record(record, limit) for record in records]

    async def list_history(self, target_id: str, limit: Optional[int] = None) -> list[HistoryEntry]:
        """Latest movements of one balance, newest first, at most `limit`."""
        try:
            history = await self._storage.get_history(target_id, limit or self._history_limit)
        except StorageError as e:
            raise StorageUnavailable(str(e)) from e
        if not history:
            # An existing record may simply have no movements yet
            await self.get_balance(target_id, history_limit=1)
        return history

    async def list_audit_log(self, limit: int = 50) -> list[AuditEvent]:
        return await self._audit_logger.list_recent(limit=limit)

    async def list_income(self, limit: int = 20) -> list[IncomeTransaction]:
        try:
            return await self._storage.list_income(limit=limit)
        except StorageError as e:
            raise StorageUnavailable(str(e)) from e

    async def category_totals(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> dict[str, int]:
        """
        Expense sums per label within the inclusive date range.

        Labels are grouped case-insensitively under their first spelling;
        the largest total comes first.
        """
        try:
            expenses = await self._storage.list_expenses(date_from=date_from, date_to=date_to)
        except StorageError as e:
            raise StorageUnavailable(str(e)) from e

        spelling: dict[str, str] = {}
        totals: dict[str, int] = {}
        for expense in reversed(expenses):
            key = expense.label.casefold()
            label = spelling.setdefault(key, expense.label)
            totals[label] = totals.get(label, 0) + expense.amount

        return dict(sorted(totals.items(), key=lambda item: (-item[1], item[0])))

    async def period_expense_total(self, on: Optional[date] = None) -> int:
        """Expense total for the calendar month containing `on` (default today)."""
        try:
            return await self._engine.period_expense_total(on or date.today())
        except StorageError as e:
            raise StorageUnavailable(str(e)) from e

    async def preview_distribution(self, gross_amount: int, on: Optional[date] = None) -> Allocation:
        """
        What recording `gross_amount` on `on` would credit, without writing.

        Raises the same errors the real distribution would.
        """
        period_total = await self.period_expense_total(on)
        return self._engine.preview(gross_amount, period_total)

    async def emergency_fund_status(self) -> EmergencyFundStatus:
        """
        Progress toward the emergency fund target.

        With no target set there is nothing to reach, so the fund counts
        as met.
        """
        try:
            record = await self._storage.get_balance(EMERGENCY_FUND_ID)
        except StorageError as e:
            raise StorageUnavailable(str(e)) from e

        total = record.balance if record else 0
        target = record.target if record else 0
        if target == 0:
            return EmergencyFundStatus(total=total, target=0, percent_reached=100, is_met=True)

        return EmergencyFundStatus(
            total=total,
            target=target,
            percent_reached=min(total * 100 // target, 100),
            is_met=total >= target,
        )
