"""
Core Data Models for the Fund Ledger

These models define the strict schemas for everything the ledger stores
or accepts. They are designed to:
1. Keep money an exact integer (never a float)
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Make optional fields explicit instead of filtering them at runtime

DESIGN DECISION: Amount fields are strict ints. A float such as 1500.0
is rejected at the boundary rather than silently converted.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# Smallest currency unit, never negative
Money = Annotated[int, Field(strict=True, ge=0)]
PositiveMoney = Annotated[int, Field(strict=True, gt=0)]

EMERGENCY_FUND_ID = "emergency_fund"
SAVINGS_FUND_ID = "savings_fund"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def participant_id(name: str) -> str:
    """Stable balance id for a roster name."""
    return name.strip().lower()


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class BalanceKind(str, Enum):
    """What a balance record represents."""
    PARTICIPANT = "participant"
    EMERGENCY_FUND = "emergency_fund"
    SAVINGS_FUND = "savings_fund"
    CATEGORY = "category"


class HistoryKind(str, Enum):
    """Direction of a single balance movement."""
    CREDIT = "credit"
    DEBIT = "debit"


# =============================================================================
# BALANCE RECORDS
# =============================================================================

class HistoryEntry(BaseModel):
    """
    One credit or debit against a balance.

    Append-only: entries are never edited or reordered once written.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now)
    amount: PositiveMoney
    kind: HistoryKind
    note: str = Field(default="", max_length=500)
    transaction_id: Optional[UUID] = Field(
        default=None,
        description="Income transaction that produced this credit, if any"
    )


class BalanceRecord(BaseModel):
    """
    A keyed balance: a participant, one of the two funds, or a category.

    Records are created lazily on first credit and never deleted.
    `version` increases on every commit that touches the record and is
    what the storage layer checks for conflicting writers.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1, max_length=64)
    kind: BalanceKind
    label: str = Field(..., min_length=1, max_length=100)
    balance: Money = 0
    target: Money = Field(
        default=0,
        description="Savings goal; only meaningful for the emergency fund"
    )
    history: list[HistoryEntry] = Field(default_factory=list)
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_target(self) -> 'BalanceRecord':
        if self.target and self.kind != BalanceKind.EMERGENCY_FUND:
            raise ValueError("Only the emergency fund carries a target")
        return self

    def credited(
        self,
        amount: int,
        note: str = "",
        transaction_id: Optional[UUID] = None,
    ) -> 'BalanceRecord':
        """Return a copy with `amount` added and a credit entry appended."""
        entry = HistoryEntry(
            amount=amount,
            kind=HistoryKind.CREDIT,
            note=note,
            transaction_id=transaction_id,
        )
        return self.model_copy(update={
            "balance": self.balance + amount,
            "history": [*self.history, entry],
            "updated_at": entry.timestamp,
        })

    def debited(self, amount: int, note: str = "") -> 'BalanceRecord':
        """Return a copy with `amount` removed and a debit entry appended."""
        if amount > self.balance:
            raise ValueError("Debit would make the balance negative")
        entry = HistoryEntry(amount=amount, kind=HistoryKind.DEBIT, note=note)
        return self.model_copy(update={
            "balance": self.balance - amount,
            "history": [*self.history, entry],
            "updated_at": entry.timestamp,
        })

    def latest_history(self, limit: int) -> list[HistoryEntry]:
        """Newest entries first, at most `limit` of them."""
        return list(reversed(self.history))[:limit]


# =============================================================================
# ALLOCATION
# =============================================================================

class AllocationLine(BaseModel):
    """One destination bucket and the amount it receives."""
    model_config = ConfigDict(frozen=True)

    bucket_id: str
    label: str
    kind: BalanceKind
    amount: Money


class Allocation(BaseModel):
    """
    The full result of distributing one income.

    `rounding_loss` is what floor division left over; it is retained
    by no bucket.
    """
    model_config = ConfigDict(frozen=True)

    policy: str
    gross_amount: Money
    period_expense_total: Money
    remainder: Money
    lines: tuple[AllocationLine, ...]
    rounding_loss: Money = 0

    @property
    def total_allocated(self) -> int:
        return sum(line.amount for line in self.lines)

    def amount_for(self, bucket_id: str) -> int:
        return sum(line.amount for line in self.lines if line.bucket_id == bucket_id)


# =============================================================================
# APPEND-ONLY COLLECTIONS
# =============================================================================

class IncomeTransaction(BaseModel):
    """A recorded incoming payment together with how it was split."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    gross_amount: PositiveMoney
    source_label: str = Field(..., min_length=1, max_length=200)
    income_date: date
    note: Optional[str] = Field(default=None, max_length=1000)
    allocation: Optional[Allocation] = None
    created_at: datetime = Field(default_factory=utc_now)


class ExpenseRecord(BaseModel):
    """An operating expense; only its sum per month feeds the ledger."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    amount: PositiveMoney
    label: str = Field(..., min_length=1, max_length=200)
    expense_date: date
    note: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# REQUESTS - one explicit shape per operation
# =============================================================================

class RecordExpenseRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: PositiveMoney
    label: str = Field(..., min_length=1, max_length=200)
    expense_date: date
    note: Optional[str] = Field(default=None, max_length=1000)


class RecordIncomeRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    gross_amount: PositiveMoney
    source_label: str = Field(..., min_length=1, max_length=200)
    income_date: date
    note: Optional[str] = Field(default=None, max_length=1000)


class WithdrawRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    target_id: str = Field(..., min_length=1, max_length=64)
    amount: PositiveMoney
    note: str = Field(default="", max_length=500)


class SetTargetRequest(BaseModel):
    target: Money


# =============================================================================
# READ MODELS - what the Query Facade hands to the UI
# =============================================================================

class BalanceView(BaseModel):
    """A balance as shown to callers, with bounded history."""
    id: str
    kind: BalanceKind
    label: str
    amount: Money
    target: Money = 0
    history: list[HistoryEntry] = Field(default_factory=list)
    updated_at: datetime

    @classmethod
    def from_record(cls, record: BalanceRecord, history_limit: int) -> 'BalanceView':
        return cls(
            id=record.id,
            kind=record.kind,
            label=record.label,
            amount=record.balance,
            target=record.target,
            history=record.latest_history(history_limit),
            updated_at=record.updated_at,
        )


class EmergencyFundStatus(BaseModel):
    """Progress of the emergency fund toward its target."""
    total: Money
    target: Money
    percent_reached: int = Field(ge=0, le=100)
    is_met: bool
