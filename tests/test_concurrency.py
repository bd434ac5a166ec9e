"""
Tests for concurrent ledger operations.

A store latency makes every call yield to the event loop, so operations
started together really do interleave their reads and writes.
"""

import asyncio
from datetime import date

import pytest

from fundledger.audit import AuditLogger
from fundledger.errors import Contention, InsufficientFunds
from fundledger.ledger import LedgerEngine
from fundledger.services.storage import InMemoryLedgerStorage, TransactionConflict


PERIOD_DAY = date(2024, 3, 15)


async def seed(engine: LedgerEngine) -> None:
    """Leave every participant with 500000."""
    await engine.record_expense(100_000, "Hosting", PERIOD_DAY)
    await engine.record_income_with_distribution(5_100_000, "Client X", PERIOD_DAY)


class ConflictingStorage(InMemoryLedgerStorage):
    """Reports a conflict for the first `conflicts` commits."""

    def __init__(self, conflicts: int, apply_before_conflict: bool = False):
        super().__init__()
        self.conflicts = conflicts
        self.apply_before_conflict = apply_before_conflict
        self.attempts = 0

    async def commit(self, transaction):
        if transaction.audit_event.target_kind == "expense" or self.attempts >= self.conflicts:
            return await super().commit(transaction)
        self.attempts += 1
        if self.apply_before_conflict:
            # The write lands but the caller is told otherwise
            await super().commit(transaction)
        raise TransactionConflict(list(transaction.read_versions))


class TestConcurrentWithdrawals:
    """Tests that concurrent withdrawals never overdraw."""

    async def test_scenario_d_same_engine(self, ledger_settings):
        """Two withdrawals of 400000 from 500000: exactly one succeeds."""
        storage = InMemoryLedgerStorage(latency=0.01)
        engine = LedgerEngine(storage, AuditLogger(storage), settings=ledger_settings)
        await seed(engine)

        results = await asyncio.gather(
            engine.withdraw("firdaus", 400_000),
            engine.withdraw("firdaus", 400_000),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert results.count(None) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientFunds)
        assert failures[0].current_balance == 100_000
        assert (await storage.get_balance("firdaus")).balance == 100_000

    async def test_scenario_d_separate_engines(self, ledger_settings):
        """Engines that share no locks still cannot both withdraw."""
        storage = InMemoryLedgerStorage(latency=0.01)
        first = LedgerEngine(storage, AuditLogger(storage), settings=ledger_settings)
        second = LedgerEngine(storage, AuditLogger(storage), settings=ledger_settings)
        await seed(first)

        results = await asyncio.gather(
            first.withdraw("firdaus", 400_000),
            second.withdraw("firdaus", 400_000),
            return_exceptions=True,
        )

        assert results.count(None) == 1
        failure = next(r for r in results if r is not None)
        assert isinstance(failure, InsufficientFunds)
        assert failure.current_balance == 100_000

        record = await storage.get_balance("firdaus")
        assert record.balance == 100_000
        assert len(record.history) == 2

    async def test_interleaved_operations_keep_totals(self, ledger_settings):
        """Incomes and withdrawals racing each other sum up exactly."""
        storage = InMemoryLedgerStorage(latency=0.005)
        engine = LedgerEngine(storage, AuditLogger(storage), settings=ledger_settings)
        await seed(engine)

        await asyncio.gather(
            engine.record_income_with_distribution(1_100_000, "Client Y", PERIOD_DAY),
            engine.withdraw("faza", 50_000),
            engine.withdraw("emergency_fund", 10_000),
            engine.record_income_with_distribution(2_100_000, "Client Z", PERIOD_DAY),
            engine.withdraw("faza", 50_000),
        )

        # remainders 1000000 and 2000000: 100000 + 200000 extra per head
        assert (await storage.get_balance("faza")).balance == 500_000 + 300_000 - 100_000
        # 30% of 5000000 + 1000000 + 2000000
        assert (await storage.get_balance("emergency_fund")).balance == 2_400_000 - 10_000
        assert len(await storage.get_recent_events()) == 2 + 5


class TestConflictRetries:
    """Tests for the bounded retry on version conflicts."""

    async def test_conflict_then_success(self, ledger_settings):
        storage = ConflictingStorage(conflicts=2)
        engine = LedgerEngine(storage, AuditLogger(storage), settings=ledger_settings)

        await seed(engine)

        assert storage.attempts == 2
        assert (await storage.get_balance("haikal")).balance == 500_000

    async def test_exhausted_retries_raise_contention(self, ledger_settings):
        storage = ConflictingStorage(conflicts=10)
        engine = LedgerEngine(storage, AuditLogger(storage), settings=ledger_settings)

        with pytest.raises(Contention) as exc_info:
            await seed(engine)

        assert exc_info.value.attempts == ledger_settings.max_attempts
        assert storage.attempts == ledger_settings.max_attempts
        assert await storage.list_balances() == []
        assert await storage.list_income() == []

    async def test_retry_after_landed_commit_does_not_double_credit(self, ledger_settings):
        """A commit that landed but reported a conflict is recognised on retry."""
        storage = ConflictingStorage(conflicts=1, apply_before_conflict=True)
        engine = LedgerEngine(storage, AuditLogger(storage), settings=ledger_settings)

        await seed(engine)

        assert (await storage.get_balance("rafah")).balance == 500_000
        assert len(await storage.list_income()) == 1
        incomes = [e for e in await storage.get_recent_events() if e.target_kind == "income"]
        assert len(incomes) == 1
