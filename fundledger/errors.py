"""
Ledger errors.

Every failure the engine reports is one of these. They are terminal for
the caller: the engine never recovers from them silently. `code` is a
stable identifier the UI (or an HTTP layer) can map to a message/status.
"""

from typing import Optional

from fundledger.models.audit import format_amount


class LedgerError(Exception):
    """Base exception for ledger operations."""
    code = "ledger_error"


class InvalidAmount(LedgerError):
    """Non-positive or malformed input, rejected before any read."""
    code = "invalid_amount"


class PrerequisiteMissing(LedgerError):
    """Income distribution attempted before any expense this period."""
    code = "prerequisite_missing"

    def __init__(self, message: str = "Record this month's operating expenses before distributing income"):
        super().__init__(message)


class InsufficientRemainder(LedgerError):
    """Income does not exceed the period's expense total."""
    code = "insufficient_remainder"

    def __init__(self, gross_amount: int, period_expense_total: int):
        self.gross_amount = gross_amount
        self.period_expense_total = period_expense_total
        super().__init__(
            f"Income {format_amount(gross_amount)} does not exceed this month's "
            f"expenses of {format_amount(period_expense_total)}"
        )


class InsufficientFunds(LedgerError):
    """Withdrawal exceeds the current balance."""
    code = "insufficient_funds"

    def __init__(self, target_id: str, requested: int, current_balance: int):
        self.target_id = target_id
        self.requested = requested
        self.current_balance = current_balance
        super().__init__(
            f"Insufficient funds in {target_id}: requested {format_amount(requested)}, "
            f"current balance {format_amount(current_balance)}"
        )


class TargetNotFound(LedgerError):
    """Unknown participant, fund or category id, or a record not yet created."""
    code = "target_not_found"

    def __init__(self, target_id: str):
        self.target_id = target_id
        super().__init__(f"Balance not found: {target_id}")


class SavingsLocked(LedgerError):
    """Savings withdrawal refused until the emergency fund reaches its target."""
    code = "savings_locked"

    def __init__(self, emergency_total: int, emergency_target: int):
        self.emergency_total = emergency_total
        self.emergency_target = emergency_target
        super().__init__(
            f"Savings unlock once the emergency fund reaches {format_amount(emergency_target)} "
            f"(currently {format_amount(emergency_total)})"
        )


class Contention(LedgerError):
    """Transaction retries exhausted."""
    code = "contention"

    def __init__(self, attempts: int, record_ids: Optional[list[str]] = None):
        self.attempts = attempts
        self.record_ids = record_ids or []
        super().__init__(
            f"Gave up after {attempts} attempts; balances kept changing underneath"
        )


class StorageUnavailable(LedgerError):
    """Backing store unreachable. The caller owns the retry policy."""
    code = "storage_unavailable"
