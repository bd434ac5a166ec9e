"""
Data Models Package

This package contains all Pydantic models used by the fund ledger.
All data flowing through the ledger must conform to these schemas.
"""

from fundledger.models.ledger import (
    EMERGENCY_FUND_ID,
    SAVINGS_FUND_ID,
    Allocation,
    AllocationLine,
    BalanceKind,
    BalanceRecord,
    BalanceView,
    EmergencyFundStatus,
    ExpenseRecord,
    HistoryEntry,
    HistoryKind,
    IncomeTransaction,
    Money,
    PositiveMoney,
    RecordExpenseRequest,
    RecordIncomeRequest,
    SetTargetRequest,
    WithdrawRequest,
    participant_id,
    utc_now,
)
from fundledger.models.audit import (
    AuditAction,
    AuditEvent,
    AuditEventBuilder,
    AuditSeverity,
    format_amount,
)

__all__ = [
    # Ledger models
    "EMERGENCY_FUND_ID",
    "SAVINGS_FUND_ID",
    "Allocation",
    "AllocationLine",
    "BalanceKind",
    "BalanceRecord",
    "BalanceView",
    "EmergencyFundStatus",
    "ExpenseRecord",
    "HistoryEntry",
    "HistoryKind",
    "IncomeTransaction",
    "Money",
    "PositiveMoney",
    "RecordExpenseRequest",
    "RecordIncomeRequest",
    "SetTargetRequest",
    "WithdrawRequest",
    "participant_id",
    "utc_now",
    # Audit models
    "AuditAction",
    "AuditEvent",
    "AuditEventBuilder",
    "AuditSeverity",
    "format_amount",
]
