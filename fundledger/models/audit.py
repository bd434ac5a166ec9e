"""
Audit Models for the Fund Ledger

Every mutating operation writes exactly one audit entry.
This provides:
1. A human-readable trail of who moved what money
2. Debugging information when balances look wrong
3. A feed for the activity page of the dashboard

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
They are independent of the per-balance history kept on each record.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from fundledger.config import get_settings
from fundledger.models.ledger import Allocation, utc_now


def format_amount(amount: int, prefix: Optional[str] = None) -> str:
    """
    Render an integer amount with dot thousands separators, e.g. Rp 1.800.000.

    Without an explicit prefix the configured LEDGER_CURRENCY_PREFIX is used.
    """
    if prefix is None:
        prefix = get_settings().ledger.currency_prefix
    return f"{prefix} {amount:,}".replace(",", ".")


class AuditAction(str, Enum):
    """The kinds of change an audit entry can describe."""
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    WITHDRAW = "withdraw"


class AuditSeverity(str, Enum):
    """Severity level used when the entry is echoed to the local log."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit log entry.

    This is the core unit of the activity trail.
    Every ledger mutation creates exactly one of these.
    """
    model_config = ConfigDict(frozen=True)

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    action: AuditAction = Field(
        ...,
        description="Kind of change"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
    )

    # What was changed
    target_kind: str = Field(
        ...,
        min_length=1,
        description="Kind of object (e.g. 'income', 'expense', 'balance', 'project')"
    )
    target_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the object"
    )

    summary: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured event data (amounts per bucket and so on)"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "severity": self.severity.value,
            "target_kind": self.target_kind,
            "target_id": self.target_id,
            "summary": self.summary,
            "details": self.details,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, action, severity, target_kind, target_id,
         summary, details_json]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.action.value,
            self.severity.value,
            self.target_kind,
            self.target_id,
            self.summary,
            json.dumps(self.details) if self.details else "",
        ]

    @classmethod
    def from_sheets_row(cls, row: list) -> 'AuditEvent':
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return cls(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            action=AuditAction(safe_get(2)),
            severity=AuditSeverity(safe_get(3, "info")),
            target_kind=safe_get(4),
            target_id=safe_get(5),
            summary=safe_get(6),
            details=json.loads(safe_get(7)) if safe_get(7) else {},
        )


class AuditEventBuilder:
    """
    Helper class to build audit events for each ledger operation.

    Usage:
        event = AuditEventBuilder.expense_recorded(expense_id, label, amount)
        event = AuditEventBuilder.withdrawal(target_id, label, amount, note, balance_after)
    """

    @staticmethod
    def expense_recorded(
        expense_id: UUID,
        label: str,
        amount: int,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.ADD,
            target_kind="expense",
            target_id=str(expense_id),
            summary=f"Operating expense {format_amount(amount)} for {label}",
            details={
                "label": label,
                "amount": amount,
            },
        )

    @staticmethod
    def income_distributed(
        transaction_id: UUID,
        source_label: str,
        allocation: Allocation,
    ) -> AuditEvent:
        per_bucket: dict[str, int] = {}
        for line in allocation.lines:
            per_bucket[line.bucket_id] = per_bucket.get(line.bucket_id, 0) + line.amount
        return AuditEvent(
            action=AuditAction.ADD,
            target_kind="income",
            target_id=str(transaction_id),
            summary=(
                f"Income {format_amount(allocation.gross_amount)} from {source_label}, "
                f"{format_amount(allocation.total_allocated)} distributed"
            ),
            details={
                "policy": allocation.policy,
                "gross_amount": allocation.gross_amount,
                "period_expense_total": allocation.period_expense_total,
                "remainder": allocation.remainder,
                "rounding_loss": allocation.rounding_loss,
                "buckets": per_bucket,
            },
        )

    @staticmethod
    def withdrawal(
        target_id: str,
        label: str,
        amount: int,
        note: str,
        balance_after: int,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.WITHDRAW,
            target_kind="balance",
            target_id=target_id,
            summary=f"{label} withdrew {format_amount(amount)}",
            details={
                "amount": amount,
                "note": note,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def target_changed(
        target_id: str,
        old_target: int,
        new_target: int,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.EDIT,
            target_kind="settings",
            target_id=target_id,
            summary=f"Emergency fund target set to {format_amount(new_target)}",
            details={
                "old_target": old_target,
                "new_target": new_target,
            },
        )

    @staticmethod
    def external_change(
        action: AuditAction,
        target_kind: str,
        target_id: str,
        summary: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        """For collaborators outside the ledger (projects, progress notes)."""
        return AuditEvent(
            action=action,
            target_kind=target_kind,
            target_id=target_id,
            summary=summary,
            details=details or {},
        )
