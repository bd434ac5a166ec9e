"""
Tests for the Fund Ledger

Test strategy:
1. Unit tests for individual components (models, calculator)
2. Engine and query tests against the in-memory store
3. No real API calls in tests (the Sheets backend runs against fakes)
"""

from datetime import date
from uuid import uuid4

import pytest

from fundledger.models import (
    BalanceKind,
    BalanceRecord,
    BalanceView,
    ExpenseRecord,
    HistoryKind,
    RecordIncomeRequest,
    WithdrawRequest,
    participant_id,
)


class TestMoneyFields:
    """Tests that amounts stay exact integers."""

    def test_float_amount_is_rejected(self):
        """A float is rejected even when it has no fraction."""
        with pytest.raises(ValueError):
            ExpenseRecord(amount=1500.0, label="Hosting", expense_date=date(2024, 3, 1))

    def test_zero_amount_is_rejected(self):
        with pytest.raises(ValueError):
            WithdrawRequest(target_id="firdaus", amount=0)

    def test_negative_balance_is_rejected(self):
        with pytest.raises(ValueError):
            BalanceRecord(id="faza", kind=BalanceKind.PARTICIPANT, label="Faza", balance=-1)

    def test_request_strips_whitespace(self):
        request = RecordIncomeRequest(gross_amount=10, source_label="  Client X  ", income_date=date(2024, 3, 1))
        assert request.source_label == "Client X"


class TestBalanceRecord:
    """Tests for balance record behaviour."""

    def test_participant_id(self):
        assert participant_id(" Firdaus ") == "firdaus"

    def test_only_emergency_fund_has_target(self):
        with pytest.raises(ValueError):
            BalanceRecord(id="savings_fund", kind=BalanceKind.SAVINGS_FUND, label="Savings Fund", target=10)
        record = BalanceRecord(id="emergency_fund", kind=BalanceKind.EMERGENCY_FUND, label="Emergency Fund", target=10)
        assert record.target == 10

    def test_credit_returns_new_record(self):
        """Crediting leaves the original untouched."""
        record = BalanceRecord(id="rafah", kind=BalanceKind.PARTICIPANT, label="Rafah")
        transaction_id = uuid4()
        credited = record.credited(5_000, note="Income", transaction_id=transaction_id)

        assert record.balance == 0
        assert record.history == []
        assert credited.balance == 5_000
        assert credited.history[0].kind == HistoryKind.CREDIT
        assert credited.history[0].transaction_id == transaction_id

    def test_debit_cannot_overdraw(self):
        record = BalanceRecord(id="rafah", kind=BalanceKind.PARTICIPANT, label="Rafah").credited(100)
        with pytest.raises(ValueError):
            record.debited(101)
        assert record.debited(100).balance == 0

    def test_view_bounds_history(self):
        record = BalanceRecord(id="haikal", kind=BalanceKind.PARTICIPANT, label="Haikal")
        for amount in (1, 2, 3):
            record = record.credited(amount)

        view = BalanceView.from_record(record, history_limit=2)
        assert view.amount == 6
        assert [e.amount for e in view.history] == [3, 2]
