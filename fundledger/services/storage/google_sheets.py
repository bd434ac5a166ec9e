"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. The team can look at balances directly in a spreadsheet
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- No native transactions. A commit re-reads the balance versions, then
  writes every changed range (balances, history, income, expenses, audit)
  in a single values.batchUpdate request, which Sheets applies as one unit.
- A cell holds at most 50,000 characters, so balance history lives in its
  own append-only sheet (one row per movement) rather than on the balance row.
- Version checks and writes are serialized per process with a lock. Two
  processes writing the same spreadsheet at the same instant can still
  race between the re-read and the write.
- Limited query capabilities (we filter in Python)
"""

import asyncio
from datetime import date, datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from fundledger.config import get_settings
from fundledger.models.audit import AuditEvent
from fundledger.models.ledger import (
    Allocation,
    BalanceKind,
    BalanceRecord,
    ExpenseRecord,
    HistoryEntry,
    HistoryKind,
    IncomeTransaction,
)
from fundledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    LedgerTransaction,
    StorageConnectionError,
    StorageError,
    TransactionConflict,
)


logger = structlog.get_logger(__name__)


# Column mappings for the Balances sheet
BALANCE_COLUMNS = [
    "id",
    "kind",
    "label",
    "balance",
    "target",
    "version",
    "created_at",
    "updated_at",
]

# Column mappings for the History sheet
HISTORY_COLUMNS = [
    "record_id",
    "entry_id",
    "timestamp",
    "kind",
    "amount",
    "note",
    "transaction_id",
]

# Column mappings for the Income sheet
INCOME_COLUMNS = [
    "id",
    "created_at",
    "income_date",
    "gross_amount",
    "source_label",
    "note",
    "allocation_json",
]

# Column mappings for the Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "created_at",
    "expense_date",
    "amount",
    "label",
    "note",
]

# Column mappings for the Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "action",
    "severity",
    "target_kind",
    "target_id",
    "summary",
    "details_json",
]


def _safe_getter(row: list):
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _row_range(title: str, row_index: int, width: int) -> str:
    return f"'{title}'!{rowcol_to_a1(row_index, 1)}:{rowcol_to_a1(row_index, width)}"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(FileNotFoundError),
        reraise=True,
    )
    def _authorize(self) -> gspread.Client:
        scopes = [
            "https://www.googleapis.com/auth/spreadsheets",
            "https://www.googleapis.com/auth/drive",
        ]
        credentials = Credentials.from_service_account_file(
            self._settings.credentials_path,
            scopes=scopes,
        )
        return gspread.authorize(credentials)

    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                self._client = self._authorize()
            except FileNotFoundError as e:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_balances_sheet(self) -> gspread.Worksheet:
        """Get or create the Balances worksheet."""
        return self._get_or_create(self._settings.balances_sheet_name, BALANCE_COLUMNS, 100)

    def get_history_sheet(self) -> gspread.Worksheet:
        """Get or create the History worksheet."""
        return self._get_or_create(self._settings.history_sheet_name, HISTORY_COLUMNS, 5000)

    def get_income_sheet(self) -> gspread.Worksheet:
        """Get or create the Income worksheet."""
        return self._get_or_create(self._settings.income_sheet_name, INCOME_COLUMNS, 1000)

    def get_expenses_sheet(self) -> gspread.Worksheet:
        """Get or create the Expenses worksheet."""
        return self._get_or_create(self._settings.expenses_sheet_name, EXPENSE_COLUMNS, 1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        # More rows for audit log
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface, AuditStorageInterface):
    """
    Google Sheets implementation of the balance store and audit log.

    Balances are one row per record. Every credit and debit is a row of
    the History sheet keyed by record id. History, income, expenses and
    audit entries are append-only sheets.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _balance_to_row(self, record: BalanceRecord) -> list:
        return [
            record.id,
            record.kind.value,
            record.label,
            str(record.balance),
            str(record.target),
            str(record.version),
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
        ]

    def _row_to_balance(self, row: list, history: list[HistoryEntry]) -> BalanceRecord:
        safe_get = _safe_getter(row)
        return BalanceRecord(
            id=safe_get(0),
            kind=BalanceKind(safe_get(1)),
            label=safe_get(2),
            balance=int(safe_get(3, "0")),
            target=int(safe_get(4, "0")),
            version=int(safe_get(5, "0")),
            created_at=datetime.fromisoformat(safe_get(6)),
            updated_at=datetime.fromisoformat(safe_get(7)),
            history=history,
        )

    def _history_to_row(self, record_id: str, entry: HistoryEntry) -> list:
        return [
            record_id,
            str(entry.id),
            entry.timestamp.isoformat(),
            entry.kind.value,
            str(entry.amount),
            entry.note,
            str(entry.transaction_id) if entry.transaction_id else "",
        ]

    def _row_to_history(self, row: list) -> HistoryEntry:
        safe_get = _safe_getter(row)
        return HistoryEntry(
            id=UUID(safe_get(1)),
            timestamp=datetime.fromisoformat(safe_get(2)),
            kind=HistoryKind(safe_get(3)),
            amount=int(safe_get(4)),
            note=safe_get(5),
            transaction_id=UUID(safe_get(6)) if safe_get(6) else None,
        )

    def _income_to_row(self, income: IncomeTransaction) -> list:
        return [
            str(income.id),
            income.created_at.isoformat(),
            income.income_date.isoformat(),
            str(income.gross_amount),
            income.source_label,
            income.note or "",
            income.allocation.model_dump_json() if income.allocation else "",
        ]

    def _row_to_income(self, row: list) -> IncomeTransaction:
        safe_get = _safe_getter(row)
        return IncomeTransaction(
            id=UUID(safe_get(0)),
            created_at=datetime.fromisoformat(safe_get(1)),
            income_date=date.fromisoformat(safe_get(2)),
            gross_amount=int(safe_get(3)),
            source_label=safe_get(4),
            note=safe_get(5) or None,
            allocation=Allocation.model_validate_json(safe_get(6)) if safe_get(6) else None,
        )

    def _expense_to_row(self, expense: ExpenseRecord) -> list:
        return [
            str(expense.id),
            expense.created_at.isoformat(),
            expense.expense_date.isoformat(),
            str(expense.amount),
            expense.label,
            expense.note or "",
        ]

    def _row_to_expense(self, row: list) -> ExpenseRecord:
        safe_get = _safe_getter(row)
        return ExpenseRecord(
            id=UUID(safe_get(0)),
            created_at=datetime.fromisoformat(safe_get(1)),
            expense_date=date.fromisoformat(safe_get(2)),
            amount=int(safe_get(3)),
            label=safe_get(4),
            note=safe_get(5) or None,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _read_history(self, record_ids: Optional[set] = None) -> dict[str, list[HistoryEntry]]:
        """Entries per record id, oldest first."""
        history: dict[str, list[HistoryEntry]] = {}
        for idx, row in enumerate(self._client.get_history_sheet().get_all_values()[1:], start=2):
            if not row or not row[0]:
                continue
            if record_ids is not None and row[0] not in record_ids:
                continue
            try:
                history.setdefault(row[0], []).append(self._row_to_history(row))
            except ValueError as e:
                raise StorageError(f"Malformed history row {idx}: {e}") from e
        return history

    def _read_balances(
        self,
        sheet: gspread.Worksheet,
        history: Optional[dict[str, list[HistoryEntry]]] = None,
    ) -> dict[str, tuple[int, BalanceRecord]]:
        """
        Map record id to (sheet row number, record).

        Records carry the entries given in `history`; without it they come
        back with an empty history (enough for version checks).
        """
        history = history or {}
        found = {}
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # Row 1 is header
            if not row or not row[0]:
                continue
            try:
                found[row[0]] = (idx, self._row_to_balance(row, history.get(row[0], [])))
            except ValueError as e:
                raise StorageError(f"Malformed balance row {idx}: {e}") from e
        return found

    async def get_balance(self, record_id: str) -> Optional[BalanceRecord]:
        balances = await self.get_balances([record_id])
        return balances.get(record_id)

    async def get_balances(self, record_ids: list[str]) -> dict[str, BalanceRecord]:
        try:
            current = self._read_balances(
                self._client.get_balances_sheet(),
                self._read_history(set(record_ids)),
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageConnectionError(f"Failed to read balances: {e}") from e
        return {
            record_id: current[record_id][1]
            for record_id in record_ids
            if record_id in current
        }

    async def list_balances(self) -> list[BalanceRecord]:
        try:
            current = self._read_balances(self._client.get_balances_sheet(), self._read_history())
        except StorageError:
            raise
        except Exception as e:
            raise StorageConnectionError(f"Failed to list balances: {e}") from e
        return [record for _, record in current.values()]

    async def get_history(self, record_id: str, limit: int) -> list[HistoryEntry]:
        try:
            entries = self._read_history({record_id}).get(record_id, [])
        except StorageError:
            raise
        except Exception as e:
            raise StorageConnectionError(f"Failed to read history: {e}") from e
        return list(reversed(entries))[:limit]

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        try:
            all_rows = self._client.get_expenses_sheet().get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageConnectionError(f"Failed to list expenses: {e}") from e

        expenses = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                expense = self._row_to_expense(row)
            except ValueError as e:
                # A dropped row would silently shrink the period total
                raise StorageError(f"Malformed expense row {row[0]}: {e}") from e

            if date_from and expense.expense_date < date_from:
                continue
            if date_to and expense.expense_date > date_to:
                continue
            expenses.append(expense)

        expenses.sort(key=lambda e: (e.expense_date, e.created_at), reverse=True)
        return expenses

    async def list_income(self, limit: int = 100) -> list[IncomeTransaction]:
        try:
            all_rows = self._client.get_income_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageConnectionError(f"Failed to list income: {e}") from e

        income = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                income.append(self._row_to_income(row))
            except ValueError as e:
                raise StorageError(f"Malformed income row {row[0]}: {e}") from e

        income.sort(key=lambda i: i.created_at, reverse=True)
        return income[:limit]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_rows(sheet: gspread.Worksheet, last_row: int) -> None:
        if last_row > sheet.row_count:
            sheet.add_rows(last_row - sheet.row_count + 100)

    def _append_ranges(
        self,
        sheet: gspread.Worksheet,
        rows: list[list],
        width: int,
    ) -> list[dict]:
        """Ranges for rows placed directly after the last used row."""
        if not rows:
            return []
        first_free = len(sheet.col_values(1)) + 1
        self._ensure_rows(sheet, first_free + len(rows) - 1)
        return [
            {"range": _row_range(sheet.title, first_free + offset, width), "values": [row]}
            for offset, row in enumerate(rows)
        ]

    async def commit(self, transaction: LedgerTransaction) -> None:
        transaction.validate()
        async with self._write_lock:
            try:
                spreadsheet = self._client.get_spreadsheet()
                balances_sheet = self._client.get_balances_sheet()
                audit_sheet = self._client.get_audit_sheet()

                if str(transaction.transaction_id) in audit_sheet.col_values(1):
                    raise DuplicateError(
                        f"Transaction already committed: {transaction.transaction_id}"
                    )

                current = self._read_balances(balances_sheet)
                stale = [
                    record_id
                    for record_id, seen in transaction.read_versions.items()
                    if (current[record_id][1].version if record_id in current else 0) != seen
                ]
                if stale:
                    raise TransactionConflict(stale)

                data = []
                next_new_row = len(balances_sheet.col_values(1)) + 1
                for record in transaction.balance_writes.values():
                    if record.id in current:
                        row_index = current[record.id][0]
                    else:
                        row_index = next_new_row
                        next_new_row += 1
                    data.append({
                        "range": _row_range(balances_sheet.title, row_index, len(BALANCE_COLUMNS)),
                        "values": [self._balance_to_row(record)],
                    })
                self._ensure_rows(balances_sheet, next_new_row - 1)

                # Only movements not already on the History sheet are appended
                history_sheet = self._client.get_history_sheet()
                recorded = set(history_sheet.col_values(2))
                data += self._append_ranges(
                    history_sheet,
                    [
                        self._history_to_row(record.id, entry)
                        for record in transaction.balance_writes.values()
                        for entry in record.history
                        if str(entry.id) not in recorded
                    ],
                    len(HISTORY_COLUMNS),
                )

                data += self._append_ranges(
                    self._client.get_income_sheet(),
                    [self._income_to_row(income) for income in transaction.income],
                    len(INCOME_COLUMNS),
                )
                data += self._append_ranges(
                    self._client.get_expenses_sheet(),
                    [self._expense_to_row(expense) for expense in transaction.expenses],
                    len(EXPENSE_COLUMNS),
                )
                data += self._append_ranges(
                    audit_sheet,
                    [transaction.audit_event.to_sheets_row()],
                    len(AUDIT_COLUMNS),
                )

                # One request: Sheets applies every range or none
                spreadsheet.values_batch_update({
                    "valueInputOption": "RAW",
                    "data": data,
                })
            except StorageError:
                raise
            except Exception as e:
                raise StorageConnectionError(f"Failed to commit transaction: {e}") from e

    async def append_event(self, event: AuditEvent) -> None:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageConnectionError(f"Failed to write audit event: {e}") from e

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageConnectionError(f"Failed to get audit events: {e}") from e

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(AuditEvent.from_sheets_row(row))
                except ValueError as e:
                    logger.warning("audit_row_skipped", event_id=row[0], error=str(e))

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
