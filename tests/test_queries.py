"""Tests for the read-only query facade."""

from datetime import date

import pytest

from fundledger.errors import PrerequisiteMissing, StorageUnavailable, TargetNotFound
from fundledger.ledger import accounting_period
from fundledger.models import BalanceKind, HistoryKind
from fundledger.services.storage import StorageError


PERIOD_DAY = date(2024, 3, 15)


class TestBalances:
    """Tests for balance reads."""

    async def test_get_balance(self, funded_engine, queries):
        view = await queries.get_balance("emergency_fund")
        assert view.amount == 540_000
        assert view.kind == BalanceKind.EMERGENCY_FUND
        assert view.label == "Emergency Fund"

    async def test_missing_balance(self, queries):
        with pytest.raises(TargetNotFound):
            await queries.get_balance("firdaus")

    async def test_list_balances_order(self, funded_engine, queries):
        """Participants in roster order, then the funds."""
        views = await queries.list_balances()
        assert [v.id for v in views] == [
            "firdaus", "faza", "rafah", "haikal", "emergency_fund", "savings_fund",
        ]

    async def test_reads_are_idempotent(self, funded_engine, queries):
        assert await queries.list_balances() == await queries.list_balances()

    async def test_history_newest_first_and_bounded(self, funded_engine, queries):
        for amount in (1_000, 2_000, 3_000):
            await funded_engine.withdraw("faza", amount)

        history = await queries.list_history("faza", limit=2)
        assert [e.amount for e in history] == [3_000, 2_000]
        assert all(e.kind == HistoryKind.DEBIT for e in history)

        full = await queries.list_history("faza")
        assert [e.amount for e in full] == [3_000, 2_000, 1_000, 180_000]

    async def test_history_of_missing_balance(self, queries):
        with pytest.raises(TargetNotFound):
            await queries.list_history("faza")

    async def test_history_of_balance_without_movements(self, engine, queries):
        """A target-only emergency fund exists but has nothing to list."""
        await engine.set_emergency_target(1_000_000)
        assert await queries.list_history("emergency_fund") == []

    async def test_unavailable_store(self, funded_engine, queries, storage):
        storage.available = False
        with pytest.raises(StorageUnavailable):
            await queries.list_balances()


class TestExpenseReads:
    """Tests for expense aggregates."""

    async def test_period_total_and_category_totals(self, engine, queries):
        await engine.record_expense(200_000, "Hosting", PERIOD_DAY)
        await engine.record_expense(50_000, "hosting", date(2024, 3, 20))
        await engine.record_expense(75_000, "Internet", date(2024, 3, 2))
        await engine.record_expense(999_000, "Hosting", date(2024, 4, 1))

        assert await queries.period_expense_total(PERIOD_DAY) == 325_000

        totals = await queries.category_totals(date(2024, 3, 1), date(2024, 3, 31))
        assert totals == {"Hosting": 250_000, "Internet": 75_000}
        assert list(totals) == ["Hosting", "Internet"]

    async def test_month_totals_agree_for_any_day(self, engine, queries):
        """Per-label totals over the accounting period add up to the period total, even mid-month."""
        await engine.record_expense(75_000, "Internet", date(2024, 3, 2))
        await engine.record_expense(200_000, "Hosting", PERIOD_DAY)
        await engine.record_expense(40_000, "Hosting", date(2024, 3, 28))

        date_from, date_to = accounting_period(PERIOD_DAY)
        assert (date_from, date_to) == (date(2024, 3, 1), date(2024, 3, 31))

        totals = await queries.category_totals(date_from, date_to)
        assert totals == {"Hosting": 240_000, "Internet": 75_000}
        assert sum(totals.values()) == await queries.period_expense_total(PERIOD_DAY)

    async def test_list_income(self, funded_engine, queries):
        income = await queries.list_income()
        assert [i.gross_amount for i in income] == [2_000_000]


class TestPreview:
    """Tests for the distribution dry run."""

    async def test_preview_matches_commit_and_writes_nothing(self, engine, queries, storage):
        await engine.record_expense(200_000, "Hosting", PERIOD_DAY)
        commits = storage.commit_count

        allocation = await queries.preview_distribution(2_000_000, PERIOD_DAY)

        assert allocation.amount_for("savings_fund") == 540_000
        assert storage.commit_count == commits
        assert await storage.list_balances() == []

    async def test_preview_without_expense(self, queries):
        with pytest.raises(PrerequisiteMissing):
            await queries.preview_distribution(2_000_000, PERIOD_DAY)


class TestEmergencyFundStatus:
    """Tests for emergency fund progress."""

    async def test_no_record_no_target(self, queries):
        status = await queries.emergency_fund_status()
        assert status.total == 0
        assert status.is_met

    async def test_progress_is_floored(self, funded_engine, queries):
        await funded_engine.set_emergency_target(1_000_000)
        status = await queries.emergency_fund_status()
        assert status.total == 540_000
        assert status.percent_reached == 54
        assert not status.is_met

    async def test_progress_is_capped(self, funded_engine, queries):
        await funded_engine.set_emergency_target(100_000)
        status = await queries.emergency_fund_status()
        assert status.percent_reached == 100
        assert status.is_met


class TestAuditLog:
    """Tests for the activity feed."""

    async def test_newest_first_and_limited(self, funded_engine, queries):
        await funded_engine.withdraw("haikal", 10_000)
        events = await queries.list_audit_log(limit=2)
        assert [e.target_kind for e in events] == ["balance", "income"]


class TestMalformedStorage:
    """A store that answers with rows it cannot parse is reported as unavailable."""

    @pytest.fixture
    def broken_storage(self, storage, monkeypatch):
        async def malformed(*args, **kwargs):
            raise StorageError("Malformed balance row 3: invalid literal for int()")

        for name in ("get_balance", "list_balances", "get_history", "list_expenses", "list_income"):
            monkeypatch.setattr(storage, name, malformed)
        return storage

    async def test_balance_reads(self, broken_storage, queries):
        with pytest.raises(StorageUnavailable):
            await queries.get_balance("faza")
        with pytest.raises(StorageUnavailable):
            await queries.list_balances()
        with pytest.raises(StorageUnavailable):
            await queries.list_history("faza")
        with pytest.raises(StorageUnavailable):
            await queries.emergency_fund_status()

    async def test_expense_and_income_reads(self, broken_storage, queries):
        with pytest.raises(StorageUnavailable):
            await queries.category_totals(date(2024, 3, 1), date(2024, 3, 31))
        with pytest.raises(StorageUnavailable):
            await queries.period_expense_total(PERIOD_DAY)
        with pytest.raises(StorageUnavailable):
            await queries.preview_distribution(2_000_000, PERIOD_DAY)
        with pytest.raises(StorageUnavailable):
            await queries.list_income()
