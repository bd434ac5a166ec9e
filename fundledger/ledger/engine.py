"""
Ledger Engine

Runs each ledger operation as one transaction against the balance store:
record an expense, record an income and distribute it, withdraw from a
balance, and set the emergency fund target.

GUARANTEES:
- Validation happens before anything is read
- A rejected operation writes nothing
- Every committed operation carries exactly one audit entry
- Read-modify-write on a balance is never interleaved with another
  operation on the same balance: in-process by per-balance locks, across
  processes by the store's version check plus bounded retries
"""

import asyncio
import calendar
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from fundledger.audit import AuditLogger
from fundledger.config import LedgerSettings, get_settings
from fundledger.errors import (
    Contention,
    InsufficientFunds,
    InvalidAmount,
    LedgerError,
    SavingsLocked,
    StorageUnavailable,
    TargetNotFound,
)
from fundledger.ledger.distribution import (
    POLICIES,
    DistributionPolicy,
    bucket_targets,
    distribute,
    get_policy,
)
from fundledger.models.audit import AuditEventBuilder
from fundledger.models.ledger import (
    EMERGENCY_FUND_ID,
    SAVINGS_FUND_ID,
    Allocation,
    BalanceKind,
    BalanceRecord,
    ExpenseRecord,
    IncomeTransaction,
    RecordExpenseRequest,
    RecordIncomeRequest,
    SetTargetRequest,
    WithdrawRequest,
    utc_now,
)
from fundledger.services.storage import (
    DuplicateError,
    LedgerStorageInterface,
    LedgerTransaction,
    StorageError,
    TransactionConflict,
)


T = TypeVar("T")
RequestT = TypeVar("RequestT", bound=BaseModel)


def accounting_period(on: date) -> tuple[date, date]:
    """First and last day of the calendar month containing `on`."""
    last_day = calendar.monthrange(on.year, on.month)[1]
    return on.replace(day=1), on.replace(day=last_day)


def _parse(model: type[RequestT], **data) -> RequestT:
    try:
        return model(**data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidAmount(problems) from e


class LedgerEngine:
    """
    Orchestrates ledger operations against the balance store.

    Args:
        storage: Balance store (Google Sheets, in-memory, ...)
        audit_logger: Local echo of committed audit entries
        settings: Ledger settings; defaults to the environment
        policy: Overrides the policy named in settings (tests use this)
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: AuditLogger,
        settings: Optional[LedgerSettings] = None,
        policy: Optional[DistributionPolicy] = None,
    ):
        settings = settings or get_settings().ledger
        self._storage = storage
        self._audit_logger = audit_logger
        self._policy = policy or get_policy(settings.distribution_policy)
        self._roster = settings.roster_list
        self._max_attempts = settings.max_attempts
        self._backoff_max = settings.backoff_max_seconds
        self._lock_savings = settings.lock_savings_until_target
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._logger = structlog.get_logger("fundledger.ledger")

        # Any policy's buckets stay withdrawable after a policy switch
        self._known_targets: dict[str, tuple[str, BalanceKind]] = {
            EMERGENCY_FUND_ID: ("Emergency Fund", BalanceKind.EMERGENCY_FUND),
            SAVINGS_FUND_ID: ("Savings Fund", BalanceKind.SAVINGS_FUND),
        }
        for known_policy in (*POLICIES.values(), self._policy):
            self._known_targets.update(bucket_targets(known_policy, self._roster))

    @property
    def policy(self) -> DistributionPolicy:
        return self._policy

    @property
    def roster(self) -> list[str]:
        return list(self._roster)

    @property
    def known_targets(self) -> dict[str, tuple[str, BalanceKind]]:
        return dict(self._known_targets)

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _locked(self, record_ids: list[str]):
        """Hold the locks for every id, taken in sorted order."""
        async with AsyncExitStack() as stack:
            for record_id in sorted(set(record_ids)):
                await stack.enter_async_context(self._locks[record_id])
            yield

    async def _run(
        self,
        operation: str,
        lock_ids: list[str],
        build: Callable[[LedgerTransaction], Awaitable[T]],
    ) -> T:
        """
        Build and commit one transaction, retrying on version conflicts.

        `build` reads what it needs through the transaction and stages its
        writes; it runs again from scratch on every attempt. The transaction
        id is fixed across attempts so a store can spot a repeat.
        """
        transaction_id = uuid4()
        transaction: Optional[LedgerTransaction] = None
        result = None

        try:
            async with self._locked(lock_ids):
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self._max_attempts),
                    wait=wait_random_exponential(multiplier=0.05, max=self._backoff_max),
                    retry=retry_if_exception_type(TransactionConflict),
                    reraise=True,
                ):
                    with attempt:
                        transaction = LedgerTransaction(transaction_id)
                        result = await build(transaction)
                        try:
                            await self._storage.commit(transaction)
                        except DuplicateError:
                            # An earlier attempt landed after reporting a conflict
                            if attempt.retry_state.attempt_number == 1:
                                raise
                            self._logger.warning(
                                "ledger_commit_already_applied",
                                operation=operation,
                                transaction_id=str(transaction_id),
                            )
        except TransactionConflict as e:
            self._logger.warning(
                "ledger_contention",
                operation=operation,
                attempts=self._max_attempts,
                record_ids=e.record_ids,
            )
            raise Contention(self._max_attempts, e.record_ids) from e
        except StorageError as e:
            self._logger.error("ledger_storage_unavailable", operation=operation, error=str(e))
            raise StorageUnavailable(str(e)) from e
        except LedgerError as e:
            self._logger.warning(
                "ledger_operation_rejected",
                operation=operation,
                code=e.code,
                reason=str(e),
            )
            raise

        self._audit_logger.emit(transaction.audit_event)
        return result

    async def _read(self, transaction: LedgerTransaction, record_ids: list[str]) -> dict[str, BalanceRecord]:
        records = await self._storage.get_balances(record_ids)
        for record_id in record_ids:
            transaction.note_read(record_id, records.get(record_id))
        return records

    def _check_target(self, target_id: str) -> tuple[str, BalanceKind]:
        try:
            return self._known_targets[target_id]
        except KeyError:
            raise TargetNotFound(target_id) from None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def record_expense(
        self,
        amount: int,
        label: str,
        expense_date: Optional[date] = None,
        note: Optional[str] = None,
    ) -> UUID:
        """
        Record an operating expense. No balance changes.

        Raises:
            InvalidAmount: Non-positive amount or empty label
        """
        request = _parse(
            RecordExpenseRequest,
            amount=amount,
            label=label,
            expense_date=expense_date or date.today(),
            note=note,
        )

        async def build(transaction: LedgerTransaction) -> UUID:
            expense = ExpenseRecord(
                id=transaction.transaction_id,
                amount=request.amount,
                label=request.label,
                expense_date=request.expense_date,
                note=request.note,
            )
            transaction.add_expense(expense)
            transaction.set_audit_event(
                AuditEventBuilder.expense_recorded(expense.id, expense.label, expense.amount)
            )
            return expense.id

        return await self._run("record_expense", [], build)

    async def period_expense_total(self, on: date) -> int:
        date_from, date_to = accounting_period(on)
        expenses = await self._storage.list_expenses(date_from=date_from, date_to=date_to)
        return sum(expense.amount for expense in expenses)

    async def record_income_with_distribution(
        self,
        gross_amount: int,
        source_label: str,
        income_date: Optional[date] = None,
        note: Optional[str] = None,
    ) -> UUID:
        """
        Record an income and distribute what is left after this month's
        expenses across the policy's buckets.

        Raises:
            InvalidAmount: Non-positive amount or empty source
            PrerequisiteMissing: No expense recorded in the income's month
            InsufficientRemainder: Expenses consume the whole income
        """
        request = _parse(
            RecordIncomeRequest,
            gross_amount=gross_amount,
            source_label=source_label,
            income_date=income_date or date.today(),
            note=note,
        )
        lock_ids = list(bucket_targets(self._policy, self._roster))

        async def build(transaction: LedgerTransaction) -> UUID:
            period_total = await self.period_expense_total(request.income_date)
            allocation = distribute(
                request.gross_amount,
                period_total,
                policy=self._policy,
                roster=self._roster,
            )

            credits: dict[str, int] = {}
            for line in allocation.lines:
                if line.amount > 0:
                    credits[line.bucket_id] = credits.get(line.bucket_id, 0) + line.amount

            records = await self._read(transaction, list(credits))
            note_text = f"Income from {request.source_label}"
            for bucket_id, amount in credits.items():
                label, kind = self._known_targets[bucket_id]
                record = records.get(bucket_id) or BalanceRecord(id=bucket_id, kind=kind, label=label)
                transaction.put_balance(
                    record.credited(amount, note=note_text, transaction_id=transaction.transaction_id)
                )

            income = IncomeTransaction(
                id=transaction.transaction_id,
                gross_amount=request.gross_amount,
                source_label=request.source_label,
                income_date=request.income_date,
                note=request.note,
                allocation=allocation,
            )
            transaction.add_income(income)
            transaction.set_audit_event(
                AuditEventBuilder.income_distributed(income.id, income.source_label, allocation)
            )
            return income.id

        return await self._run("record_income_with_distribution", lock_ids, build)

    async def withdraw(
        self,
        target_id: str,
        amount: int,
        note: Optional[str] = None,
    ) -> None:
        """
        Take money out of a participant, fund or category balance.

        Raises:
            InvalidAmount: Non-positive amount
            TargetNotFound: Unknown id, or the balance was never credited
            InsufficientFunds: Amount exceeds the balance at commit time
            SavingsLocked: Savings withdrawal before the emergency target is met
        """
        request = _parse(WithdrawRequest, target_id=target_id, amount=amount, note=note or "")
        self._check_target(request.target_id)

        check_emergency = request.target_id == SAVINGS_FUND_ID and self._lock_savings
        lock_ids = [request.target_id, EMERGENCY_FUND_ID] if check_emergency else [request.target_id]

        async def build(transaction: LedgerTransaction) -> None:
            records = await self._read(transaction, lock_ids)
            record = records.get(request.target_id)
            if record is None:
                raise TargetNotFound(request.target_id)

            if check_emergency:
                emergency = records.get(EMERGENCY_FUND_ID)
                if emergency is not None and emergency.target > 0 and emergency.balance < emergency.target:
                    raise SavingsLocked(emergency.balance, emergency.target)

            if request.amount > record.balance:
                raise InsufficientFunds(request.target_id, request.amount, record.balance)

            updated = transaction.put_balance(record.debited(request.amount, note=request.note))
            transaction.set_audit_event(
                AuditEventBuilder.withdrawal(
                    target_id=updated.id,
                    label=updated.label,
                    amount=request.amount,
                    note=request.note,
                    balance_after=updated.balance,
                )
            )

        await self._run("withdraw", lock_ids, build)

    async def set_emergency_target(self, target: int) -> None:
        """
        Set the amount the emergency fund should reach.

        Raises:
            InvalidAmount: Negative or non-integer target
        """
        request = _parse(SetTargetRequest, target=target)

        async def build(transaction: LedgerTransaction) -> None:
            records = await self._read(transaction, [EMERGENCY_FUND_ID])
            label, kind = self._known_targets[EMERGENCY_FUND_ID]
            record = records.get(EMERGENCY_FUND_ID) or BalanceRecord(
                id=EMERGENCY_FUND_ID, kind=kind, label=label
            )
            transaction.put_balance(
                record.model_copy(update={"target": request.target, "updated_at": utc_now()})
            )
            transaction.set_audit_event(
                AuditEventBuilder.target_changed(EMERGENCY_FUND_ID, record.target, request.target)
            )

        await self._run("set_emergency_target", [EMERGENCY_FUND_ID], build)

    def preview(self, gross_amount: int, period_expense_total: int) -> Allocation:
        """Dry-run the configured policy without touching storage."""
        return distribute(
            gross_amount,
            period_expense_total,
            policy=self._policy,
            roster=self._roster,
        )
